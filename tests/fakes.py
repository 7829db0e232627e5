"""In-memory collaborators for service and router tests."""

import copy
from typing import Any

import httpx

from shared.clients.rag.models.VectorEntry import QueryHit, VectorEntry
from shared.clients.store.models.StoreObject import ItemMeta, StoreFolder, StoreObject
from shared.clients.store.models.Upload import ChunkResult, UploadMetadata
from shared.helper.errors import ConfigurationError, NotFoundError, UpstreamError


def make_object(object_id: str, md5: str = "m0", modified: str = "2024-01-01T00:00:00Z") -> StoreObject:
    return StoreObject(id=object_id, name=f"{object_id}.jpg", mimeType="image/jpeg", md5Checksum=md5, modifiedTime=modified)


class FakeStore:
    """Folders, images and item metadata held in dicts."""

    def __init__(self, root_id: str | None = "root") -> None:
        self.root_id = root_id
        self.inbox_id: str | None = None
        self.folders: list[StoreFolder] = []
        self.images: dict[str, list[StoreObject]] = {}
        self.meta: dict[str, ItemMeta] = {}
        self.failing_folders: set[str] = set()
        self.listed: list[str] = []
        self.fetched: list[str] = []

    def add_item_folder(self, folder_id: str, name: str | None = None, item_id: str | None = None, objects: list[StoreObject] | None = None) -> None:
        self.folders.append(StoreFolder(id=folder_id, name=name))
        self.images[folder_id] = objects or []
        if item_id is not None:
            self.meta[folder_id] = ItemMeta(itemId=item_id, label=f"Item {item_id}")

    def get_engine_name(self) -> str:
        return "fake"

    def get_root_folder_id(self) -> str | None:
        return self.root_id

    def get_upload_inbox_folder_id(self) -> str | None:
        return self.inbox_id

    def get_public_view_url(self, object_id: str) -> str:
        return f"https://view.example/{object_id}"

    async def do_list_item_folders(self) -> list[StoreFolder]:
        if not self.root_id:
            raise ConfigurationError("Collection root folder id for fake is not set.")
        return list(self.folders)

    async def do_list_images(self, folder_id: str) -> list[StoreObject]:
        self.listed.append(folder_id)
        if folder_id in self.failing_folders:
            raise UpstreamError(f"listing {folder_id} failed", upstream_status=500)
        return list(self.images.get(folder_id, []))

    async def do_list_images_with_curated(self, folder_id: str) -> list[StoreObject]:
        return await self.do_list_images(folder_id)

    async def do_read_item_meta(self, folder_id: str) -> ItemMeta | None:
        return self.meta.get(folder_id)

    async def do_fetch_bytes(self, object_id: str) -> bytes:
        self.fetched.append(object_id)
        if object_id == "missing":
            raise NotFoundError(f"Object '{object_id}' not found in fake.")
        return f"image:{object_id}".encode()

    async def do_fetch_url_bytes(self, url: str) -> bytes:
        return f"url:{url}".encode()

    async def do_open_media_stream(self, object_id: str, byte_range: str | None = None) -> httpx.Response:
        self.fetched.append(object_id)
        if byte_range:
            return httpx.Response(206, headers={"Content-Type": "image/png", "Content-Range": "bytes 0-2/10"}, stream=ChunkedBody(b"abc"))
        return httpx.Response(200, headers={"Content-Type": "image/png", "Content-Disposition": "attachment"}, stream=ChunkedBody(b"ab", b"cd"))

    async def do_fetch_object_info(self, object_id: str) -> tuple[int, Any]:
        if object_id == "missing":
            return 404, {"error": {"code": 404}}
        return 200, {"id": object_id, "mimeType": "application/vnd.google-apps.folder"}


class FakeEmbed:
    """Deterministic three-dimensional vectors, with a call log."""

    def __init__(self) -> None:
        self.images: list[bytes] = []
        self.texts: list[str] = []

    def get_engine_name(self) -> str:
        return "fake"

    async def do_embed_image(self, image: bytes) -> list[float]:
        self.images.append(image)
        return [float(len(image)), 1.0, 0.0]

    async def do_embed_text(self, text: str) -> list[float]:
        self.texts.append(text)
        return [float(len(text)), 0.0, 1.0]


class FakeRag:
    """Keeps upserted entries by id and answers queries from a preset hit list."""

    def __init__(self, hits: list[QueryHit] | None = None) -> None:
        self.entries: dict[str, VectorEntry] = {}
        self.upsert_calls: list[int] = []
        self.hits = hits or []
        self.queries: list[tuple[list[float], int, dict | None]] = []

    async def do_upsert(self, entries: list[VectorEntry]) -> int:
        self.upsert_calls.append(len(entries))
        for entry in entries:
            self.entries[entry.id] = entry
        return len(entries)

    async def do_upsert_batched(self, entries: list[VectorEntry], batch_size: int = 50) -> int:
        written = 0
        for start in range(0, len(entries), batch_size):
            written += await self.do_upsert(entries[start:start + batch_size])
        return written

    async def do_query(self, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[QueryHit]:
        self.queries.append((vector, top_k, filter))
        return self.hits[:top_k]


class FakeKV:
    """JSON documents in a dict. Values are copied in and out like a real store."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.writes: list[str] = []

    async def do_get_json(self, key: str) -> Any | None:
        return copy.deepcopy(self.data.get(key))

    async def do_put_json(self, key: str, value: Any) -> None:
        self.writes.append(key)
        self.data[key] = copy.deepcopy(value)

    async def do_delete(self, key: str) -> None:
        self.data.pop(key, None)


class ScriptedUploadStore:
    """Resumable session endpoint that answers each chunk from a script.

    The script is called with (start, end, total, data) and returns a ChunkResult.
    By default every chunk is fully kept and the chunk that carries the last byte
    of a known total completes the upload.
    """

    def __init__(self, script=None) -> None:
        self.script = script or self._keep_everything
        self.sessions: list[tuple[UploadMetadata, int | None]] = []
        self.chunks: list[tuple[int, int, int | None, bytes]] = []
        self.finalized: list[int] = []

    @staticmethod
    def _keep_everything(start: int, end: int, total: int | None, data: bytes) -> ChunkResult:
        if total is not None and end + 1 == total:
            return ChunkResult(status="done", descriptor={"id": "new-object", "name": "upload.jpg"})
        return ChunkResult(status="partial", acknowledgedOffset=end + 1)

    @property
    def received(self) -> bytes:
        """The bytes the store kept, reassembled by offset."""
        out = bytearray()
        for start, end, total, data in self.chunks:
            del out[start:]
            out.extend(data)
        return bytes(out)

    def get_upload_inbox_folder_id(self) -> str | None:
        return "inbox"

    def get_public_view_url(self, object_id: str) -> str:
        return f"https://view.example/{object_id}"

    async def do_initiate_upload(self, metadata: UploadMetadata, total_size: int | None = None) -> str:
        self.sessions.append((metadata, total_size))
        return "https://upload.example/session/1"

    async def do_put_chunk(self, session: str, start: int, end: int, total: int | None, data: bytes, content_type: str = "application/octet-stream") -> ChunkResult:
        self.chunks.append((start, end, total, data))
        return self.script(start, end, total, data)

    async def do_finalize_upload(self, session: str, total: int) -> ChunkResult:
        self.finalized.append(total)
        return ChunkResult(status="done", descriptor={"id": "new-object", "name": "upload.bin"})


class ChunkedBody(httpx.AsyncByteStream):
    """Streaming body for a fake upstream download."""

    def __init__(self, *chunks: bytes) -> None:
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
