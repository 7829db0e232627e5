"""Tests for the per-folder incremental reindex."""

import asyncio

import pytest

from services.reindex.ChangeDetector import ChangeDetector
from services.reindex.SignatureStore import SignatureStore
from shared.clients.store.models.StoreObject import ContentSignature, ItemMeta
from shared.helper.errors import UpstreamError
from tests.fakes import make_object


@pytest.fixture
def signatures(helper_config, kv):
    return SignatureStore(helper_config=helper_config, kv_client=kv)


@pytest.fixture
def detector(helper_config, store, embed, rag, signatures):
    return ChangeDetector(
        helper_config=helper_config,
        store_client=store,
        embed_client=embed,
        rag_client=rag,
        signature_store=signatures,
    )


class TestIncrementalScenario:
    """Folder 0007 with two known objects and one changed checksum."""

    def test_only_changed_object_is_embedded(self, detector, store, embed, rag, signatures):
        store.add_item_folder("f7", item_id="0007", objects=[
            make_object("a", md5="m-a"),
            make_object("b", md5="m-b"),
            make_object("c", md5="m-c-new"),
        ])
        asyncio.run(signatures.do_put("f7", {
            "a": ContentSignature(md5Checksum="m-a", modifiedTime="2024-01-01T00:00:00Z"),
            "b": ContentSignature(md5Checksum="m-b", modifiedTime="2024-01-01T00:00:00Z"),
            "c": ContentSignature(md5Checksum="m-c-old", modifiedTime="2024-01-01T00:00:00Z"),
        }))

        result = asyncio.run(detector.do_reindex_folder("f7", ItemMeta(itemId="0007", label="Item 7"), max_changed=10))

        assert (result.scanned, result.changed, result.skipped) == (3, 1, False)
        assert len(embed.images) == 1
        assert rag.upsert_calls == [1]
        assert store.fetched == ["c"]

    def test_vector_metadata_carries_item(self, detector, store, rag):
        store.add_item_folder("f7", objects=[make_object("c")])

        asyncio.run(detector.do_reindex_folder("f7", ItemMeta(itemId="Item 7", label="Blue vase")))

        entry = rag.entries["c"]
        assert entry.metadata == {
            "kind": "drive",
            "fileId": "c",
            "folderId": "f7",
            "itemId": "0007",
            "label": "Blue vase",
        }


class TestIdempotence:
    """A second pass over an unchanged folder does nothing."""

    def test_second_run_changes_nothing(self, detector, store, embed, rag, kv):
        store.add_item_folder("f1", item_id="1", objects=[make_object("a"), make_object("b")])
        meta = ItemMeta(itemId="1")

        first = asyncio.run(detector.do_reindex_folder("f1", meta))
        writes_after_first = list(kv.writes)
        second = asyncio.run(detector.do_reindex_folder("f1", meta))

        assert first.changed == 2
        assert (second.scanned, second.changed, second.skipped) == (2, 0, True)
        assert len(embed.images) == 2
        assert rag.upsert_calls == [2]
        # an unchanged folder leaves the seen record alone
        assert kv.writes == writes_after_first

    def test_modified_time_change_is_detected(self, detector, store, signatures):
        store.add_item_folder("f1", item_id="1", objects=[make_object("a", modified="2024-01-01T00:00:00Z")])
        asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1")))

        store.images["f1"] = [make_object("a", modified="2024-02-01T00:00:00Z")]
        result = asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1")))

        assert result.changed == 1
        seen = asyncio.run(signatures.do_get("f1"))
        assert seen["a"].modifiedTime == "2024-02-01T00:00:00Z"


class TestBudget:
    def test_budget_of_two_leaves_the_rest(self, detector, store, rag, signatures):
        store.add_item_folder("f1", item_id="1", objects=[make_object(f"o{i}") for i in range(5)])

        result = asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1"), max_changed=2))

        assert result.changed == 2
        assert sorted(rag.entries) == ["o0", "o1"]
        assert sorted(asyncio.run(signatures.do_get("f1"))) == ["o0", "o1"]

        rest = asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1"), max_changed=10))
        assert rest.changed == 3
        assert len(rag.entries) == 5

    def test_upserts_flush_in_batches(self, detector, store, rag):
        store.add_item_folder("f1", item_id="1", objects=[make_object(f"o{i}") for i in range(120)])

        result = asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1")))

        assert result.changed == 120
        assert rag.upsert_calls == [50, 50, 20]


class TestSkipsAndFailures:
    def test_folder_without_item_id_is_skipped(self, detector, store, embed):
        store.add_item_folder("f1", objects=[make_object("a")])

        result = asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="no digits here")))

        assert (result.scanned, result.changed, result.skipped) == (0, 0, True)
        assert store.listed == []
        assert embed.images == []

    def test_missing_meta_is_skipped(self, detector, store):
        result = asyncio.run(detector.do_reindex_folder("f1", None))

        assert result.skipped is True
        assert store.listed == []

    def test_dry_run_does_not_write_seen(self, detector, store, kv):
        store.add_item_folder("f1", item_id="1", objects=[make_object("a")])

        result = asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1"), write_seen=False))

        assert result.changed == 1
        assert SignatureStore.key_for("f1") not in kv.data

    def test_listing_failure_propagates_without_writes(self, detector, store, kv):
        store.add_item_folder("f1", item_id="1", objects=[make_object("a")])
        store.failing_folders.add("f1")

        with pytest.raises(UpstreamError):
            asyncio.run(detector.do_reindex_folder("f1", ItemMeta(itemId="1")))
        assert kv.writes == []
