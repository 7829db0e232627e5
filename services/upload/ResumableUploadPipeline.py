"""Resumable upload pipeline.

Streams an inbound byte stream into the remote store through a resumable
session, one fixed-size chunk at a time. The store may acknowledge less than
it was sent; the pipeline then resends from the acknowledged offset, up to
MAX_STALLED_REPLIES times in a row when nothing new was kept.
"""

from typing import AsyncIterator

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.Upload import ChunkResult, UploadMetadata
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import UpstreamError, ValidationError

CHUNK_ALIGNMENT = 256 * 1024      # remote-mandated chunk granularity
DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1 MiB
MAX_STALLED_REPLIES = 3           # resends of a chunk the store kept nothing of


class ResumableUploadPipeline:
    def __init__(self, helper_config: HelperConfig, store_client: StoreClientInterface, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0 or chunk_size % CHUNK_ALIGNMENT != 0:
            raise ValidationError(f"Chunk size must be a positive multiple of {CHUNK_ALIGNMENT} bytes, got {chunk_size}")
        self.logging = helper_config.get_logger()
        self._store = store_client
        self.chunk_size = chunk_size

    async def do_upload(self, metadata: UploadMetadata, stream: AsyncIterator[bytes], total_size: int | None = None) -> dict:
        """Open a session and upload the whole stream.

        Args:
            metadata (UploadMetadata): Name, target folder and type of the new object.
            stream (AsyncIterator[bytes]): The inbound bytes, in arbitrary piece sizes.
            total_size (int | None): Declared size, None if unknown upfront.

        Returns:
            dict: The finalised remote object descriptor.

        Raises:
            UpstreamError: On any failed chunk, a stalled session or a failed finalize. Not retried.
            ValidationError: If the stream length contradicts the declared size.
        """
        session = await self._store.do_initiate_upload(metadata, total_size)
        return await self.do_upload_to_session(session, stream, total_size, metadata.mimeType)

    async def do_upload_to_session(self, session: str, stream: AsyncIterator[bytes], total_size: int | None, content_type: str) -> dict:
        """Upload a stream into an already opened session. See do_upload()."""
        buffer = bytearray()
        offset = 0  # absolute offset of buffer[0]
        stalls = 0  # consecutive replies that acknowledged nothing new

        async for piece in stream:
            if not piece:
                continue
            buffer.extend(piece)
            while len(buffer) >= self.chunk_size:
                result = await self._send(session, offset, bytes(buffer[:self.chunk_size]), total_size, content_type)
                if result.status == "done":
                    return result.descriptor or {}
                offset, stalls = self._advance(buffer, offset, self.chunk_size, result, stalls)

        final_total = offset + len(buffer)
        if total_size is not None and final_total != total_size:
            raise ValidationError(f"Upload stream ended after {final_total} bytes, declared {total_size}")

        # the tail goes out as the last chunk, now with the real total
        while buffer:
            result = await self._send(session, offset, bytes(buffer), final_total, content_type)
            if result.status == "done":
                return result.descriptor or {}
            offset, stalls = self._advance(buffer, offset, len(buffer), result, stalls)

        self.logging.debug("All %d bytes acknowledged without completion, finalizing", final_total)
        result = await self._store.do_finalize_upload(session, final_total)
        return result.descriptor or {}

    async def _send(self, session: str, offset: int, data: bytes, total: int | None, content_type: str) -> ChunkResult:
        end = offset + len(data) - 1
        self.logging.debug("Uploading bytes %d-%d/%s", offset, end, total if total is not None else "*")
        return await self._store.do_put_chunk(session, offset, end, total, data, content_type=content_type)

    def _advance(self, buffer: bytearray, offset: int, sent: int, result: ChunkResult, stalls: int) -> tuple[int, int]:
        """Drop the acknowledged bytes from the buffer.

        Returns the new offset and the updated count of consecutive stalled
        replies. An acknowledgement at the chunk start keeps the buffer so the
        same bytes go out again. Bytes before the buffer are gone and cannot
        be resent.
        """
        # a partial reply without an offset means the store holds nothing yet
        acknowledged = result.acknowledgedOffset or 0
        if acknowledged < offset or acknowledged > offset + sent:
            raise UpstreamError(f"Upload session acknowledged offset {acknowledged} after sending bytes from {offset}")
        if acknowledged == offset:
            stalls += 1
            if stalls > MAX_STALLED_REPLIES:
                raise UpstreamError(f"Upload session made no progress past offset {offset} after {stalls} attempts")
            self.logging.warning("Upload session kept nothing from offset %d, resending (%d/%d)", offset, stalls, MAX_STALLED_REPLIES)
            return offset, stalls
        del buffer[:acknowledged - offset]
        return acknowledged, 0
