import time

import httpx

from shared.clients.store.StoreClientInterface import (
    LIST_ANY_JSON,
    LIST_FOLDERS,
    LIST_IMAGES,
    LIST_ITEM_JSON,
    LIST_NAMED_FOLDER,
    StoreClientInterface,
)
from shared.clients.store.models.StoreObject import StoreObject
from shared.clients.store.models.Upload import ChunkResult, UploadMetadata
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import UpstreamError
from shared.models.config import EnvConfig

FOLDER_MIME = "application/vnd.google-apps.folder"
TOKEN_URL = "https://oauth2.googleapis.com/token"
LIST_FIELDS = "nextPageToken, files(id,name,mimeType,md5Checksum,modifiedTime)"
# refresh the access token this many seconds before Google expires it
TOKEN_EXPIRY_MARGIN = 60


def _quote(value: str) -> str:
    """Escapes a value for use inside a single-quoted Drive query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class StoreClientDrive(StoreClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._client_id = self.get_config_val("OAUTH_CLIENT_ID", default=None, val_type="string")
        self._client_secret = self.get_config_val("OAUTH_CLIENT_SECRET", default=None, val_type="string")
        self._refresh_token = self.get_config_val("OAUTH_REFRESH_TOKEN", default=None, val_type="string")
        self._root_folder_id = self.get_config_val("ROOT_FOLDER_ID", default="", val_type="string") or None
        self._upload_inbox = self.get_config_val("UPLOAD_INBOX_FOLDER", default="", val_type="string") or None
        self._curated_name = self.get_config_val("CURATED_SUBFOLDER", default="sorted", val_type="string")

        # cached OAuth access token
        self._access_token: str | None = None
        self._access_token_expiry: float = 0.0

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Drive"

    def get_root_folder_id(self) -> str | None:
        return self._root_folder_id

    def get_upload_inbox_folder_id(self) -> str | None:
        return self._upload_inbox

    def get_curated_subfolder_name(self) -> str:
        return self._curated_name

    def get_public_view_url(self, object_id: str) -> str:
        return f"https://drive.google.com/uc?export=view&id={object_id}"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="OAUTH_CLIENT_ID", val_type="string", default=None),
            EnvConfig(env_key="OAUTH_CLIENT_SECRET", val_type="string", default=None),
            EnvConfig(env_key="OAUTH_REFRESH_TOKEN", val_type="string", default=None),
            EnvConfig(env_key="ROOT_FOLDER_ID", val_type="string", default=""),
            EnvConfig(env_key="UPLOAD_INBOX_FOLDER", val_type="string", default=""),
            EnvConfig(env_key="CURATED_SUBFOLDER", val_type="string", default="sorted"),
        ]

    ################ AUTH ##################
    async def _get_auth_header(self) -> dict:
        token = await self._get_access_token()
        return {"Authorization": f"Bearer {token}"}

    async def _get_access_token(self) -> str:
        """
        Returns a valid OAuth access token, exchanging the refresh token when the cached one is about to expire.

        Raises:
            UpstreamError: If the token endpoint rejects the refresh token.
        """
        if self._access_token and time.monotonic() < self._access_token_expiry:
            return self._access_token

        resp = await self.do_request(
            method="POST",
            endpoint=TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": self._refresh_token,
                "grant_type": "refresh_token",
            },
            with_auth=False,
        )
        if not resp.is_success:
            self.raise_upstream_error(resp, "Drive OAuth token refresh")
        token_data = resp.json()
        access_token = token_data.get("access_token")
        if not access_token:
            raise UpstreamError("Drive OAuth token response did not contain an access token", upstream_status=resp.status_code)

        expires_in = int(token_data.get("expires_in", 3600))
        self._access_token = access_token
        self._access_token_expiry = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        self.logging.debug("Refreshed Drive access token, valid for %d seconds", expires_in)
        return access_token

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return "https://www.googleapis.com"

    def _get_endpoint_healthcheck(self) -> str:
        return "/drive/v3/about?fields=user"

    def _get_endpoint_list(self) -> str:
        return "/drive/v3/files"

    def _get_endpoint_media(self, object_id: str) -> str:
        return f"/drive/v3/files/{object_id}"

    def _get_endpoint_object_info(self, object_id: str) -> str:
        return f"/drive/v3/files/{object_id}?fields=id,name,mimeType,parents,driveId&supportsAllDrives=true"

    def _get_endpoint_upload_session(self) -> str:
        return "/upload/drive/v3/files"

    ################ PAYLOAD BUILDER ##################
    def _get_list_params(self, parent_id: str, kind: str, name: str | None = None, page_token: str | None = None, page_size: int = 1000) -> dict:
        in_parent = f"'{_quote(parent_id)}' in parents and trashed=false"
        if kind == LIST_FOLDERS:
            query = f"{in_parent} and mimeType='{FOLDER_MIME}'"
        elif kind == LIST_IMAGES:
            query = f"{in_parent} and mimeType contains 'image/'"
        elif kind == LIST_NAMED_FOLDER:
            query = f"{in_parent} and mimeType='{FOLDER_MIME}' and name='{_quote(name or '')}'"
        elif kind == LIST_ITEM_JSON:
            query = f"{in_parent} and name contains 'Item' and name contains '.json'"
        elif kind == LIST_ANY_JSON:
            query = f"{in_parent} and name contains '.json'"
        else:
            raise ValueError(f"Unknown listing kind '{kind}'")

        params = {
            "q": query,
            "fields": LIST_FIELDS,
            "pageSize": page_size,
            "orderBy": "name",
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        if page_token:
            params["pageToken"] = page_token
        return params

    def _get_media_params(self) -> dict:
        return {"alt": "media", "supportsAllDrives": "true"}

    def _get_upload_session_request(self, metadata: UploadMetadata, total_size: int | None) -> tuple[dict, dict, dict]:
        params = {"uploadType": "resumable", "supportsAllDrives": "true"}
        headers = {"X-Upload-Content-Type": metadata.mimeType}
        if total_size is not None:
            headers["X-Upload-Content-Length"] = str(total_size)
        body: dict = {"name": metadata.name, "parents": [metadata.parentId], "mimeType": metadata.mimeType}
        if metadata.appProperties:
            body["appProperties"] = metadata.appProperties
        return params, headers, body

    ################ RESPONSE PARSER ##################
    def _parse_list_response(self, response: dict) -> tuple[list[dict], str | None]:
        return response.get("files", []) or [], response.get("nextPageToken") or None

    def _parse_object(self, raw: dict, parent_id: str | None = None) -> StoreObject:
        return StoreObject(
            id=raw["id"],
            name=raw.get("name"),
            mimeType=raw.get("mimeType"),
            md5Checksum=raw.get("md5Checksum"),
            modifiedTime=raw.get("modifiedTime"),
            parentId=parent_id,
        )

    def _extract_session_handle(self, response: httpx.Response) -> str | None:
        return response.headers.get("Location") or response.headers.get("location")

    def _parse_chunk_response(self, response: httpx.Response) -> ChunkResult | None:
        if response.status_code == 308:
            # Range: bytes=0-<last byte kept>; no Range means nothing was kept
            range_header = response.headers.get("Range")
            acknowledged = 0
            if range_header and "-" in range_header:
                try:
                    acknowledged = int(range_header.rsplit("-", 1)[1]) + 1
                except ValueError:
                    acknowledged = 0
            return ChunkResult(status="partial", acknowledgedOffset=acknowledged)
        if response.status_code in (200, 201):
            try:
                descriptor = response.json()
            except ValueError:
                descriptor = {}
            return ChunkResult(status="done", descriptor=descriptor)
        return None
