"""Store proxy: image links, streamed downloads, streamed uploads and folder diagnostics."""

import json
import time
from typing import Any, AsyncIterator
from urllib.parse import unquote

import httpx

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.Upload import UploadMetadata
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ValidationError
from services.upload.ResumableUploadPipeline import ResumableUploadPipeline


def parse_app_properties(raw: str | None) -> dict[str, str] | None:
    """Parses the X-Upload-Meta header. Anything but a JSON object is ignored."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}


class StoreProxyService:
    def __init__(self, helper_config: HelperConfig, store_client: StoreClientInterface, pipeline: ResumableUploadPipeline) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._pipeline = pipeline

    def _file_links(self, object_id: str, base_url: str) -> dict[str, str]:
        return {
            "media": f"{base_url.rstrip('/')}/file/{object_id}",
            "view": self._store.get_public_view_url(object_id),
        }

    async def do_list_image_links(self, folder_id: str, base_url: str) -> dict:
        """Proxy and direct view URLs for every image in a folder.

        Returns:
            dict: {"media": [...], "view": [...], "count": n, "folderId": folder_id}
        """
        if not folder_id:
            raise ValidationError("folderId required")
        objects = await self._store.do_list_images(folder_id)
        links = [self._file_links(obj.id, base_url) for obj in objects]
        return {
            "media": [link["media"] for link in links],
            "view": [link["view"] for link in links],
            "count": len(links),
            "folderId": folder_id,
        }

    async def do_open_file(self, object_id: str, byte_range: str | None = None) -> httpx.Response:
        """Open a streamed download. The caller must close the returned response."""
        return await self._store.do_open_media_stream(object_id, byte_range)

    async def do_upload_stream(
        self,
        stream: AsyncIterator[bytes],
        base_url: str,
        folder_id: str | None = None,
        file_name: str | None = None,
        content_type: str | None = None,
        declared_size: str | None = None,
        meta_header: str | None = None,
    ) -> dict:
        """Stream a request body into a new store object through a resumable session.

        Args:
            stream (AsyncIterator[bytes]): The request body.
            base_url (str): Public base URL of this service, for the proxy link.
            folder_id (str | None): Target folder, defaults to the configured upload inbox.
            file_name (str | None): URL-encoded object name, defaults to "upload_<ms>".
            content_type (str | None): Mime type of the object.
            declared_size (str | None): Total size header, if the client sent one.
            meta_header (str | None): JSON object stored as the object's app properties.

        Returns:
            dict: {"id", "name", "media", "view"} of the new object.

        Raises:
            ValidationError: If no target folder is known.
            UpstreamError: If the store rejects the session or any chunk.
        """
        target = (folder_id or "").strip() or self._store.get_upload_inbox_folder_id()
        if not target:
            raise ValidationError("folderId required")

        total_size: int | None = None
        if declared_size:
            try:
                total_size = int(declared_size) if int(declared_size) > 0 else None
            except ValueError:
                raise ValidationError(f"Invalid upload size '{declared_size}'")

        metadata = UploadMetadata(
            name=unquote(file_name) if file_name else f"upload_{int(time.time() * 1000)}",
            parentId=target,
            mimeType=content_type or "application/octet-stream",
            appProperties=parse_app_properties(meta_header),
        )
        descriptor = await self._pipeline.do_upload(metadata, stream, total_size)
        object_id = str(descriptor.get("id", ""))
        self.logging.info("Uploaded '%s' (%s) to folder %s", metadata.name, object_id, target)
        return {"id": object_id, "name": descriptor.get("name", metadata.name), **self._file_links(object_id, base_url)}

    async def do_check_folder(self, folder_id: str) -> dict[str, Any]:
        """Raw store metadata of a folder, with the store's status code."""
        if not folder_id:
            raise ValidationError("folderId required")
        status, body = await self._store.do_fetch_object_info(folder_id)
        return {"status": status, "result": body}
