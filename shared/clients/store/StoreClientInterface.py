from abc import abstractmethod
import json
from typing import Any

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.clients.store.models.StoreObject import ItemMeta, StoreFolder, StoreObject
from shared.clients.store.models.Upload import ChunkResult, UploadMetadata
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ConfigurationError, NotFoundError, UpstreamError

# listing kinds understood by _get_list_params()
LIST_FOLDERS = "folders"
LIST_IMAGES = "images"
LIST_NAMED_FOLDER = "named_folder"
LIST_ITEM_JSON = "item_json"
LIST_ANY_JSON = "any_json"

MAX_LIST_PAGES = 50


class StoreClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "store"
        """
        return "store"

    @abstractmethod
    def get_root_folder_id(self) -> str | None:
        """
        Returns the id of the collection root whose child folders are the items, or None if unset.
        """
        pass

    @abstractmethod
    def get_upload_inbox_folder_id(self) -> str | None:
        """
        Returns the default target folder for uploads, or None if unset.
        """
        pass

    @abstractmethod
    def get_curated_subfolder_name(self) -> str:
        """
        Returns the name of the optional curated sub-folder inside an item folder. E.g. "sorted"
        """
        pass

    @abstractmethod
    def get_public_view_url(self, object_id: str) -> str:
        """
        Returns a browser-viewable URL for an object, served by the store itself.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_list(self) -> str:
        """
        Returns the endpoint path for listing children of a folder (e.g. "/drive/v3/files").
        """
        pass

    @abstractmethod
    def _get_endpoint_media(self, object_id: str) -> str:
        """
        Returns the endpoint path to download the raw bytes of an object.
        """
        pass

    @abstractmethod
    def _get_endpoint_object_info(self, object_id: str) -> str:
        """
        Returns the endpoint path for the metadata of a single object.
        """
        pass

    @abstractmethod
    def _get_endpoint_upload_session(self) -> str:
        """
        Returns the endpoint path used to open a resumable upload session.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def _get_list_params(self, parent_id: str, kind: str, name: str | None = None, page_token: str | None = None, page_size: int = 1000) -> dict:
        """
        Builds the query parameters for a listing request.

        Args:
            parent_id (str): The folder whose children are listed.
            kind (str): One of the LIST_* constants.
            name (str | None): Exact child name, used with LIST_NAMED_FOLDER.
            page_token (str | None): Cursor of the page to fetch, None for the first page.
            page_size (int): Maximum entries per page.

        Returns:
            dict: Query parameters.
        """
        pass

    @abstractmethod
    def _get_media_params(self) -> dict:
        """
        Returns the query parameters for media downloads.
        """
        pass

    @abstractmethod
    def _get_upload_session_request(self, metadata: UploadMetadata, total_size: int | None) -> tuple[dict, dict, dict]:
        """
        Builds the request for opening a resumable upload session.

        Returns:
            tuple[dict, dict, dict]: (query params, extra headers, json body)
        """
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def _parse_list_response(self, response: dict) -> tuple[list[dict], str | None]:
        """
        Extracts the raw entries and the next page cursor from a listing response.

        Returns:
            tuple[list[dict], str | None]: (entries, next page token or None)
        """
        pass

    @abstractmethod
    def _parse_object(self, raw: dict, parent_id: str | None = None) -> StoreObject:
        """
        Converts a raw listing entry into a StoreObject.
        """
        pass

    @abstractmethod
    def _extract_session_handle(self, response: httpx.Response) -> str | None:
        """
        Extracts the session URL from the response that opened an upload session.
        """
        pass

    @abstractmethod
    def _parse_chunk_response(self, response: httpx.Response) -> ChunkResult | None:
        """
        Interprets the response to a chunk request.

        Returns:
            ChunkResult | None: The partial/done result, or None if the response is an error.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ############# LISTING REQUESTS ##############
    async def do_list_children(self, parent_id: str, kind: str, name: str | None = None, page_size: int = 1000) -> list[dict]:
        """
        Lists all children of a folder matching a listing kind, following pagination.

        Args:
            parent_id (str): The folder whose children are listed.
            kind (str): One of the LIST_* constants.
            name (str | None): Exact child name for LIST_NAMED_FOLDER.
            page_size (int): Entries per page.

        Returns:
            list[dict]: Raw listing entries.

        Raises:
            UpstreamError: If any page request fails.
        """
        entries: list[dict] = []
        page_token: str | None = None
        for _ in range(MAX_LIST_PAGES):
            resp = await self.do_request(
                method="GET",
                endpoint=self._get_endpoint_list(),
                params=self._get_list_params(parent_id, kind, name=name, page_token=page_token, page_size=page_size),
                raise_on_error=True,
            )
            page_entries, page_token = self._parse_list_response(resp.json())
            entries.extend(page_entries)
            if not page_token:
                break
        self.logging.debug("Listed %d %s under %s from %s", len(entries), kind, parent_id, self.get_engine_name())
        return entries

    async def do_list_folders(self, parent_id: str) -> list[StoreFolder]:
        """
        Lists the sub-folders of a folder.

        Returns:
            list[StoreFolder]: The sub-folders in listing order.
        """
        raw = await self.do_list_children(parent_id, LIST_FOLDERS)
        return [StoreFolder(id=entry["id"], name=entry.get("name")) for entry in raw]

    async def do_list_item_folders(self) -> list[StoreFolder]:
        """
        Lists the item folders directly under the collection root.

        Raises:
            ConfigurationError: If no collection root is configured.
        """
        root_id = self.get_root_folder_id()
        if not root_id:
            raise ConfigurationError(f"Collection root folder id for {self.get_engine_name()} is not set.")
        folders = await self.do_list_folders(root_id)
        self.logging.info("Found %d item folders under root %s", len(folders), root_id)
        return folders

    async def do_list_images(self, folder_id: str) -> list[StoreObject]:
        """
        Lists the image objects directly inside a folder.

        Returns:
            list[StoreObject]: Image objects with their content signature fields.
        """
        raw = await self.do_list_children(folder_id, LIST_IMAGES)
        return [self._parse_object(entry, parent_id=folder_id) for entry in raw]

    async def do_find_subfolder(self, folder_id: str, name: str) -> StoreFolder | None:
        """
        Looks up a direct sub-folder by exact name.

        Returns:
            StoreFolder | None: The sub-folder, or None if the folder has no such child.
        """
        raw = await self.do_list_children(folder_id, LIST_NAMED_FOLDER, name=name, page_size=1)
        if not raw:
            return None
        return StoreFolder(id=raw[0]["id"], name=raw[0].get("name"))

    async def do_list_images_with_curated(self, folder_id: str) -> list[StoreObject]:
        """
        Lists the images of an item folder followed by those of its curated sub-folder, if present.

        Returns:
            list[StoreObject]: Primary listing with the curated listing appended.
        """
        objects = await self.do_list_images(folder_id)
        curated = await self.do_find_subfolder(folder_id, self.get_curated_subfolder_name())
        if curated is not None:
            objects.extend(await self.do_list_images(curated.id))
        return objects

    ############# GET REQUESTS ##############
    async def do_fetch_bytes(self, object_id: str) -> bytes:
        """
        Downloads the full content of an object.

        Raises:
            NotFoundError: If the object does not exist.
            UpstreamError: On any other failure.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_media(object_id), params=self._get_media_params())
        if resp.status_code == 404:
            raise NotFoundError(f"Object '{object_id}' not found in {self.get_engine_name()}.")
        if not resp.is_success:
            self.raise_upstream_error(resp, f"{self.get_engine_name()} fetch of object {object_id}")
        return resp.content

    async def do_open_media_stream(self, object_id: str, byte_range: str | None = None) -> httpx.Response:
        """
        Opens a streaming download of an object. The caller must close the returned response.

        Args:
            object_id (str): The object to stream.
            byte_range (str | None): Optional HTTP Range header value forwarded to the store.
        """
        headers = {"Range": byte_range} if byte_range else None
        return await self.do_stream_request(
            method="GET",
            endpoint=self._get_endpoint_media(object_id),
            params=self._get_media_params(),
            additional_headers=headers,
        )

    async def do_fetch_object_info(self, object_id: str) -> tuple[int, Any]:
        """
        Fetches raw object metadata for diagnostics. Does not raise on upstream errors.

        Returns:
            tuple[int, Any]: (upstream status, parsed JSON body or raw text)
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_object_info(object_id))
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        return resp.status_code, body

    async def do_read_item_meta(self, folder_id: str) -> ItemMeta | None:
        """
        Reads the item metadata file of an item folder (Item*.json first, then any *.json).

        Returns:
            ItemMeta | None: The parsed metadata, or None if the folder has no readable metadata file.
        """
        candidates = await self.do_list_children(folder_id, LIST_ITEM_JSON, page_size=10)
        if not candidates:
            candidates = await self.do_list_children(folder_id, LIST_ANY_JSON, page_size=10)
        if not candidates:
            return None

        raw_bytes = await self.do_fetch_bytes(candidates[0]["id"])
        try:
            data = json.loads(raw_bytes)
        except ValueError:
            self.logging.warning("Item metadata %s in folder %s is not valid JSON", candidates[0].get("name"), folder_id)
            return None
        if not isinstance(data, dict):
            return None

        item_id = data.get("itemId", data.get("item_id"))
        label = data.get("label")
        return ItemMeta(
            itemId=str(item_id) if item_id is not None else None,
            label=str(label) if label is not None else None,
        )

    async def do_fetch_url_bytes(self, url: str) -> bytes:
        """
        Downloads bytes from an arbitrary URL without store credentials.

        Raises:
            UpstreamError: If the URL answers with a non-2xx status.
        """
        resp = await self.do_request(method="GET", endpoint=url, with_auth=False)
        if not resp.is_success:
            self.raise_upstream_error(resp, f"Fetch of {url}")
        return resp.content

    ############# UPLOAD REQUESTS ##############
    async def do_initiate_upload(self, metadata: UploadMetadata, total_size: int | None = None) -> str:
        """
        Opens a resumable upload session.

        Args:
            metadata (UploadMetadata): Name, parent and type of the new object.
            total_size (int | None): Declared size in bytes, if known upfront.

        Returns:
            str: The session handle (URL) chunks are sent to.

        Raises:
            UpstreamError: If the store refuses the session or returns no handle.
        """
        params, headers, body = self._get_upload_session_request(metadata, total_size)
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_upload_session(),
            params=params,
            json=body,
            additional_headers=headers,
            raise_on_error=True,
        )
        session = self._extract_session_handle(resp)
        if not session:
            raise UpstreamError("Upload session response did not contain a session location", upstream_status=resp.status_code)
        self.logging.info("Opened upload session for '%s' in folder %s", metadata.name, metadata.parentId)
        return session

    async def do_put_chunk(self, session: str, start: int, end: int, total: int | None, data: bytes, content_type: str = "application/octet-stream") -> ChunkResult:
        """
        Sends one chunk of a resumable upload.

        Args:
            session (str): Session handle from do_initiate_upload().
            start (int): Absolute offset of the first byte.
            end (int): Absolute offset of the last byte (inclusive).
            total (int | None): Declared total size, None for unknown.
            data (bytes): The chunk payload, len(data) == end - start + 1.
            content_type (str): Mime type of the object.

        Returns:
            ChunkResult: partial (with acknowledged offset) or done (with descriptor).

        Raises:
            UpstreamError: For any response that is neither partial nor done.
        """
        total_str = str(total) if total is not None else "*"
        resp = await self.do_request(
            method="PUT",
            endpoint=session,
            content=data,
            additional_headers={
                "Content-Type": content_type,
                "Content-Range": f"bytes {start}-{end}/{total_str}",
            },
            with_auth=False,
        )
        result = self._parse_chunk_response(resp)
        if result is None:
            self.raise_upstream_error(resp, f"Chunk upload bytes {start}-{end}")
        return result

    async def do_finalize_upload(self, session: str, total: int) -> ChunkResult:
        """
        Sends the zero-length request declaring the final size of an upload of unknown length.

        Raises:
            UpstreamError: If the store does not finalise the object.
        """
        resp = await self.do_request(
            method="PUT",
            endpoint=session,
            content=b"",
            additional_headers={"Content-Range": f"bytes */{total}"},
            with_auth=False,
        )
        result = self._parse_chunk_response(resp)
        if result is None or result.status != "done":
            self.raise_upstream_error(resp, "Upload finalize")
        return result
