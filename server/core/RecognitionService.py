"""Recognition operations: embed objects into the index and query it."""

import base64
import binascii
import secrets
import time
from typing import Any

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorEntry import QueryHit, VectorEntry
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ValidationError
from shared.helper.identifiers import normalize_item_id, shape_metadata
from shared.models.recognition import AggregatedItem
from server.core.RankAggregator import RankAggregator

UPSERT_BATCH_SIZE = 50

# 1x1 baseline JPEG accepted by the embedding service
HEALTH_PROBE_JPEG = bytes([
    0xFF, 0xD8, 0xFF, 0xE0, 0x00, 0x10, 0x4A, 0x46, 0x49, 0x46, 0x00, 0x01, 0x01, 0x01, 0x00, 0x60, 0x00, 0x60, 0x00, 0x00,
    0xFF, 0xDB, 0x00, 0x43, 0x00, 0x08, 0x06, 0x06, 0x07, 0x06, 0x05, 0x08, 0x07, 0x07, 0x07, 0x09, 0x09, 0x08, 0x0A, 0x0C,
    0x14, 0x0D, 0x0C, 0x0B, 0x0B, 0x0C, 0x19, 0x12, 0x13, 0x0F, 0x14, 0x1D, 0x1A, 0x1F, 0x1E, 0x1D, 0x1A, 0x1C, 0x1C, 0x20,
    0x24, 0x2E, 0x27, 0x20, 0x22, 0x2C, 0x23, 0x1C, 0x1C, 0x28, 0x37, 0x29, 0x2C, 0x30, 0x31, 0x34, 0x34, 0x34, 0x20, 0x26,
    0x39, 0x3D, 0x38, 0x32, 0x3C, 0x2E, 0x33, 0x34, 0x32, 0xFF, 0xC0, 0x00, 0x0B, 0x08, 0x00, 0x01, 0x00, 0x01, 0x01, 0x01,
    0x11, 0x00, 0xFF, 0xC4, 0x00, 0x14, 0x00, 0x01, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x00, 0xFF, 0xDA, 0x00, 0x08, 0x01, 0x01, 0x00, 0x00, 0x3F, 0x00, 0xD2, 0xCF, 0x20, 0xFF, 0xD9,
])


def make_upload_id() -> str:
    """Id for a vector embedded from raw bytes that have no store object."""
    return f"upload_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class RecognitionService:
    """Handles recognition upserts and queries: fetch -> embed -> index."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        aggregator: RankAggregator | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._embed = embed_client
        self._rag = rag_client
        self._aggregator = aggregator or RankAggregator()

    ##########################################
    ################ UPSERT ##################
    ##########################################

    def _build_metadata(self, kind: str, item_id: str | None, label: str | None, extra: dict | None, **ids: Any) -> dict:
        base: dict[str, Any] = {"kind": kind, **ids}
        base["itemId"] = normalize_item_id(item_id) or item_id
        base["label"] = label
        base.update(extra or {})
        return shape_metadata(base)

    async def do_upsert_folder(self, folder_id: str, item_id: str | None = None, label: str | None = None, meta: dict | None = None) -> int:
        """Embed every image of a folder and upsert it.

        Returns:
            int: Number of vectors written.
        """
        objects = await self._store.do_list_images(folder_id)
        entries: list[VectorEntry] = []
        for obj in objects:
            vector = await self._embed.do_embed_image(await self._store.do_fetch_bytes(obj.id))
            entries.append(VectorEntry(
                id=obj.id,
                values=vector,
                metadata=self._build_metadata("drive", item_id, label, meta, fileId=obj.id, folderId=folder_id),
            ))
        written = await self._rag.do_upsert_batched(entries, batch_size=UPSERT_BATCH_SIZE)
        self.logging.info("Indexed %d images from folder %s", written, folder_id)
        return written

    async def do_upsert_file(self, file_id: str, item_id: str | None = None, label: str | None = None, meta: dict | None = None) -> tuple[str, dict]:
        """Embed one store object and upsert it under its own id."""
        vector = await self._embed.do_embed_image(await self._store.do_fetch_bytes(file_id))
        metadata = self._build_metadata("drive", item_id, label, meta, fileId=file_id)
        await self._rag.do_upsert([VectorEntry(id=file_id, values=vector, metadata=metadata)])
        return file_id, metadata

    async def do_upsert_bytes(self, data: bytes, item_id: str | None = None, label: str | None = None, meta: dict | None = None) -> tuple[str, dict]:
        """Embed raw image bytes and upsert them under a generated id."""
        if not data:
            raise ValidationError("Request body is empty")
        vector = await self._embed.do_embed_image(data)
        vector_id = make_upload_id()
        metadata = self._build_metadata("upload", item_id, label, meta)
        await self._rag.do_upsert([VectorEntry(id=vector_id, values=vector, metadata=metadata)])
        return vector_id, metadata

    ##########################################
    ################ QUERY ###################
    ##########################################

    async def do_embed_query(
        self,
        file_id: str | None = None,
        url: str | None = None,
        text: str | None = None,
        data: bytes | None = None,
        bytes_b64: str | None = None,
    ) -> list[float]:
        """Embed the first query input given.

        Raises:
            ValidationError: If no input is given or the base64 payload is malformed.
        """
        if file_id:
            return await self._embed.do_embed_image(await self._store.do_fetch_bytes(file_id))
        if url:
            return await self._embed.do_embed_image(await self._store.do_fetch_url_bytes(url))
        if bytes_b64:
            try:
                decoded = base64.b64decode(bytes_b64, validate=True)
            except (binascii.Error, ValueError):
                raise ValidationError("invalid_base64")
            return await self._embed.do_embed_image(decoded)
        if text:
            return await self._embed.do_embed_text(text)
        if data:
            return await self._embed.do_embed_image(data)
        raise ValidationError("Provide fileId, url, text, bytesBase64 or an image body")

    async def do_query(self, vector: list[float], top_k: int = 5, filter: dict | None = None) -> list[QueryHit]:
        hits = await self._rag.do_query(vector, top_k, filter)
        self.logging.debug("Query returned %d hits (topK %d)", len(hits), top_k)
        return hits

    async def do_query_items(self, vector: list[float], top_k_photos: int = 100, top_k_items: int = 5) -> list[AggregatedItem]:
        """Query object hits and aggregate them into ranked items."""
        hits = await self._rag.do_query(vector, top_k_photos)
        items = self._aggregator.aggregate(hits, top_k_items)
        self.logging.info("Item query: %d hits aggregated into %d items", len(hits), len(items))
        return items

    async def do_health(self, file_id: str | None = None) -> int:
        """Embed a probe image and return the vector dimension."""
        data = await self._store.do_fetch_bytes(file_id) if file_id else HEALTH_PROBE_JPEG
        vector = await self._embed.do_embed_image(data)
        return len(vector)
