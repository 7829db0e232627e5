"""Tests for chunked uploads through a resumable session."""

import asyncio
import os

import pytest

from server.core.StoreProxyService import StoreProxyService, parse_app_properties
from services.upload.ResumableUploadPipeline import CHUNK_ALIGNMENT, DEFAULT_CHUNK_SIZE, MAX_STALLED_REPLIES, ResumableUploadPipeline
from shared.clients.store.models.Upload import ChunkResult, UploadMetadata
from shared.helper.errors import UpstreamError, ValidationError
from tests.fakes import ScriptedUploadStore

MIB = 1024 * 1024


async def pieces(data: bytes, size: int = 100_000):
    for start in range(0, len(data), size):
        yield data[start:start + size]


def upload(pipeline: ResumableUploadPipeline, data: bytes, total: int | None) -> dict:
    metadata = UploadMetadata(name="photo.jpg", parentId="folder", mimeType="image/jpeg")
    return asyncio.run(pipeline.do_upload(metadata, pieces(data), total))


class TestChunking:
    def test_known_total_completes_on_last_chunk(self, helper_config):
        store = ScriptedUploadStore()
        data = os.urandom(2 * MIB + MIB // 2)

        descriptor = upload(ResumableUploadPipeline(helper_config, store), data, len(data))

        assert descriptor["id"] == "new-object"
        assert [(s, e) for s, e, _, _ in store.chunks] == [
            (0, MIB - 1),
            (MIB, 2 * MIB - 1),
            (2 * MIB, len(data) - 1),
        ]
        assert all(total == len(data) for _, _, total, _ in store.chunks)
        assert store.received == data
        assert store.finalized == []

    def test_resumes_from_acknowledged_offset(self, helper_config):
        def script(start, end, total, data):
            if start == 0:
                return ChunkResult(status="partial", acknowledgedOffset=40000)
            return ScriptedUploadStore._keep_everything(start, end, total, data)

        store = ScriptedUploadStore(script)
        data = os.urandom(2 * MIB)

        upload(ResumableUploadPipeline(helper_config, store), data, len(data))

        assert store.chunks[1][0] == 40000
        assert store.chunks[1][3] == data[40000:40000 + MIB]
        assert store.received == data

    def test_partial_reply_without_offset_resends_first_chunk(self, helper_config):
        replies = iter([ChunkResult(status="partial")])

        def script(start, end, total, data):
            reply = next(replies, None)
            return reply or ScriptedUploadStore._keep_everything(start, end, total, data)

        store = ScriptedUploadStore(script)
        data = os.urandom(MIB + 10)

        upload(ResumableUploadPipeline(helper_config, store), data, len(data))

        assert [s for s, _, _, _ in store.chunks] == [0, 0, MIB]
        assert store.received == data

    def test_partial_reply_without_offset_after_first_chunk_is_an_error(self, helper_config):
        def script(start, end, total, data):
            if start == 0:
                return ScriptedUploadStore._keep_everything(start, end, total, data)
            return ChunkResult(status="partial")

        store = ScriptedUploadStore(script)
        data = os.urandom(3 * MIB)

        with pytest.raises(UpstreamError):
            upload(ResumableUploadPipeline(helper_config, store), data, len(data))
        assert [s for s, _, _, _ in store.chunks] == [0, MIB]

    def test_unknown_total_is_finalized(self, helper_config):
        store = ScriptedUploadStore()
        data = os.urandom(2 * MIB)

        descriptor = upload(ResumableUploadPipeline(helper_config, store), data, None)

        assert [total for _, _, total, _ in store.chunks] == [None, None]
        assert store.finalized == [2 * MIB]
        assert descriptor["id"] == "new-object"

    def test_unknown_total_tail_carries_real_total(self, helper_config):
        store = ScriptedUploadStore()
        data = os.urandom(MIB + MIB // 2)

        upload(ResumableUploadPipeline(helper_config, store), data, None)

        assert [total for _, _, total, _ in store.chunks] == [None, len(data)]
        assert store.finalized == []

    def test_small_upload_is_one_chunk(self, helper_config):
        store = ScriptedUploadStore()

        upload(ResumableUploadPipeline(helper_config, store), b"tiny", 4)

        assert store.chunks == [(0, 3, 4, b"tiny")]


class TestFailures:
    def test_error_response_aborts(self, helper_config):
        def script(start, end, total, data):
            raise UpstreamError(f"Chunk upload bytes {start}-{end} failed with status 500", upstream_status=500)

        store = ScriptedUploadStore(script)
        data = os.urandom(2 * MIB)

        with pytest.raises(UpstreamError):
            upload(ResumableUploadPipeline(helper_config, store), data, len(data))
        assert len(store.chunks) == 1

    def test_chunk_kept_nothing_is_resent(self, helper_config):
        stalled = []

        def script(start, end, total, data):
            if start == MIB and not stalled:
                stalled.append(start)
                return ChunkResult(status="partial", acknowledgedOffset=start)
            return ScriptedUploadStore._keep_everything(start, end, total, data)

        store = ScriptedUploadStore(script)
        data = os.urandom(3 * MIB)

        descriptor = upload(ResumableUploadPipeline(helper_config, store), data, len(data))

        assert descriptor["id"] == "new-object"
        assert [s for s, _, _, _ in store.chunks] == [0, MIB, MIB, 2 * MIB]
        assert store.received == data

    def test_repeated_stalls_are_an_error(self, helper_config):
        store = ScriptedUploadStore(lambda start, end, total, data: ChunkResult(status="partial", acknowledgedOffset=start))
        data = os.urandom(2 * MIB)

        with pytest.raises(UpstreamError):
            upload(ResumableUploadPipeline(helper_config, store), data, len(data))
        assert len(store.chunks) == MAX_STALLED_REPLIES + 1
        assert {s for s, _, _, _ in store.chunks} == {0}

    def test_acknowledgement_behind_the_buffer_is_an_error(self, helper_config):
        def script(start, end, total, data):
            if start == 0:
                return ScriptedUploadStore._keep_everything(start, end, total, data)
            return ChunkResult(status="partial", acknowledgedOffset=start - 1)

        store = ScriptedUploadStore(script)

        with pytest.raises(UpstreamError):
            upload(ResumableUploadPipeline(helper_config, store), os.urandom(3 * MIB), 3 * MIB)

    def test_short_stream_contradicts_declared_size(self, helper_config):
        store = ScriptedUploadStore()

        with pytest.raises(ValidationError):
            upload(ResumableUploadPipeline(helper_config, store), b"12345", 10)
        assert store.chunks == []

    def test_chunk_size_must_be_aligned(self, helper_config):
        with pytest.raises(ValidationError):
            ResumableUploadPipeline(helper_config, ScriptedUploadStore(), chunk_size=CHUNK_ALIGNMENT + 1)

    def test_default_chunk_size_is_aligned(self):
        assert DEFAULT_CHUNK_SIZE % CHUNK_ALIGNMENT == 0


class TestUploadStream:
    @pytest.fixture
    def proxy(self, helper_config):
        store = ScriptedUploadStore()
        pipeline = ResumableUploadPipeline(helper_config, store)
        return StoreProxyService(helper_config=helper_config, store_client=store, pipeline=pipeline), store

    def test_defaults_to_inbox_and_decodes_name(self, proxy):
        service, store = proxy

        result = asyncio.run(service.do_upload_stream(
            stream=pieces(b"abc"),
            base_url="http://testserver/",
            file_name="my%20photo.jpg",
            content_type="image/jpeg",
            declared_size="3",
            meta_header='{"itemId": "0007", "tags": ["a"]}',
        ))

        metadata, total = store.sessions[0]
        assert metadata.parentId == "inbox"
        assert metadata.name == "my photo.jpg"
        assert metadata.appProperties == {"itemId": "0007", "tags": '["a"]'}
        assert total == 3
        assert result["id"] == "new-object"
        assert result["media"] == "http://testserver/file/new-object"
        assert result["view"] == "https://view.example/new-object"

    def test_invalid_size_header(self, proxy):
        service, _ = proxy

        with pytest.raises(ValidationError):
            asyncio.run(service.do_upload_stream(stream=pieces(b"abc"), base_url="http://testserver/", declared_size="lots"))


class TestAppProperties:
    def test_non_object_is_ignored(self):
        assert parse_app_properties("[1, 2]") is None
        assert parse_app_properties("not json") is None
        assert parse_app_properties(None) is None

    def test_values_are_strings(self):
        assert parse_app_properties('{"n": 5, "s": "x"}') == {"n": "5", "s": "x"}
