"""Tests for the round-robin reindex scheduler."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from services.reindex.FolderRegistry import FOLDER_IDS_KEY
from services.reindex.ReindexScheduler import LOCK_KEY, STATUS_KEY
from services.reindex.SignatureStore import SignatureStore
from services.reindex.reindex_runner import build_scheduler
from shared.helper.errors import ReindexBusyError, UpstreamError
from shared.models.reindex import ReindexRequest
from tests.fakes import make_object


def add_folders(store, count: int) -> list[str]:
    """One item folder per id, each holding a single new image."""
    ids = []
    for i in range(count):
        folder_id = f"folder{i}"
        store.add_item_folder(folder_id, name=f"{i + 1:04d}", item_id=str(i + 1), objects=[make_object(f"img{i}")])
        ids.append(folder_id)
    return ids


@pytest.fixture
def scheduler(helper_config, store, embed, rag, kv):
    return build_scheduler(helper_config, store, embed, rag, kv)


def future_lease(owner: str = "someone-else") -> dict:
    return {"owner": owner, "expiresAt": (datetime.now(timezone.utc) + timedelta(minutes=5)).isoformat()}


class TestStatefulRuns:
    def test_cursor_visits_every_folder_and_wraps(self, scheduler, store, kv):
        folder_ids = add_folders(store, 6)

        cursors = []
        for _ in range(3):
            result = asyncio.run(scheduler.do_stateful_run(limit_folders=2, max_changed=10))
            cursors.append(result.cursor)

        assert cursors == [2, 4, 0]
        for folder_id in folder_ids:
            assert SignatureStore.key_for(folder_id) in kv.data
        assert kv.data[STATUS_KEY]["cursor"] == 0
        assert kv.data[STATUS_KEY]["totalFolders"] == 6

    def test_empty_registry_is_filled_from_the_store(self, scheduler, store, kv):
        add_folders(store, 3)

        asyncio.run(scheduler.do_stateful_run(limit_folders=1, max_changed=10))

        assert kv.data[FOLDER_IDS_KEY] == ["folder0", "folder1", "folder2"]

    def test_budget_stops_before_the_next_folder(self, scheduler, store, kv):
        add_folders(store, 4)

        result = asyncio.run(scheduler.do_stateful_run(limit_folders=4, max_changed=2))

        assert result.counts.changed == 2
        assert result.counts.folders == 2
        assert result.cursor == 2
        assert kv.data[STATUS_KEY]["counts"]["changed"] == 2

    def test_skipped_folder_still_advances_cursor(self, scheduler, store):
        store.add_item_folder("no-meta", objects=[make_object("x")])
        add_folders(store, 1)

        result = asyncio.run(scheduler.do_stateful_run(limit_folders=1, max_changed=10))

        assert result.cursor == 1
        assert result.counts.skipped == 1
        assert result.counts.changed == 0

    def test_cursor_resumes_from_status(self, scheduler, store, kv):
        add_folders(store, 3)
        kv.data[FOLDER_IDS_KEY] = ["folder0", "folder1", "folder2"]
        kv.data[STATUS_KEY] = {"cursor": 2, "totalFolders": 3}

        result = asyncio.run(scheduler.do_stateful_run(limit_folders=1, max_changed=10))

        assert store.listed == ["folder2"]
        assert result.cursor == 0

    def test_lock_is_released_after_run(self, scheduler, store, kv):
        add_folders(store, 1)

        asyncio.run(scheduler.do_stateful_run(limit_folders=1, max_changed=10))

        assert LOCK_KEY not in kv.data


class TestDryAndAbortedRuns:
    def test_zero_budget_writes_nothing(self, scheduler, store, kv, embed):
        add_folders(store, 3)
        kv.data[FOLDER_IDS_KEY] = ["folder0", "folder1", "folder2"]

        result = asyncio.run(scheduler.do_run(ReindexRequest(limit_folders=3, max_changed=0)))

        assert result.dryRun is True
        assert result.counts.changed == 0
        assert embed.images == []
        assert STATUS_KEY not in kv.data
        assert LOCK_KEY not in kv.writes

    def test_dry_run_leaves_seen_and_status_untouched(self, scheduler, store, kv):
        add_folders(store, 2)

        result = asyncio.run(scheduler.do_stateful_run(limit_folders=2, max_changed=10, dry_run=True))

        assert result.counts.changed == 2
        assert STATUS_KEY not in kv.data
        assert not any(key.startswith("seenmap:") for key in kv.data)

    def test_failed_folder_aborts_without_status(self, scheduler, store, kv):
        add_folders(store, 3)
        kv.data[STATUS_KEY] = {"cursor": 0, "totalFolders": 3}
        store.failing_folders.add("folder1")

        with pytest.raises(UpstreamError):
            asyncio.run(scheduler.do_stateful_run(limit_folders=3, max_changed=10))

        assert kv.data[STATUS_KEY] == {"cursor": 0, "totalFolders": 3}
        assert LOCK_KEY not in kv.data


class TestStatelessRuns:
    def test_slice_of_name_sorted_listing(self, scheduler, store, rag, kv):
        store.add_item_folder("c", name="0003", objects=[make_object("img-c")])
        store.add_item_folder("a", name="0001", objects=[make_object("img-a")])
        store.add_item_folder("b", name="0002", objects=[make_object("img-b")])

        result = asyncio.run(scheduler.do_stateless_run(start=1, limit_folders=1, max_changed=10))

        assert result.mode == "stateless"
        assert result.nextStart == 2
        assert result.totalFolders == 3
        # no item json, so the folder name is the item id
        assert rag.entries["img-b"].metadata["itemId"] == "0002"
        assert STATUS_KEY not in kv.data
        assert FOLDER_IDS_KEY not in kv.data

    def test_next_start_wraps(self, scheduler, store):
        add_folders(store, 3)

        result = asyncio.run(scheduler.do_stateless_run(start=2, limit_folders=5, max_changed=10))

        assert result.counts.folders == 1
        assert result.nextStart == 0

    def test_ignores_held_lock(self, scheduler, store, kv):
        add_folders(store, 1)
        kv.data[LOCK_KEY] = future_lease()

        result = asyncio.run(scheduler.do_stateless_run(start=0, limit_folders=1, max_changed=10))

        assert result.counts.changed == 1


class TestSchedulingLock:
    def test_held_lease_rejects_stateful_run(self, scheduler, store, kv):
        add_folders(store, 1)
        kv.data[LOCK_KEY] = future_lease()

        with pytest.raises(ReindexBusyError):
            asyncio.run(scheduler.do_stateful_run(limit_folders=1, max_changed=10))
        assert kv.data[LOCK_KEY]["owner"] == "someone-else"

    def test_expired_lease_is_taken_over(self, scheduler, store, kv):
        add_folders(store, 1)
        kv.data[LOCK_KEY] = {
            "owner": "crashed-run",
            "expiresAt": (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat(),
        }

        result = asyncio.run(scheduler.do_stateful_run(limit_folders=1, max_changed=10))

        assert result.counts.changed == 1
        assert LOCK_KEY not in kv.data

    def test_scheduled_tick_skips_when_busy(self, scheduler, store, kv):
        add_folders(store, 1)
        kv.data[LOCK_KEY] = future_lease()

        assert asyncio.run(scheduler.do_scheduled_tick()) is None
        assert STATUS_KEY not in kv.data

    def test_scheduled_tick_uses_conservative_budget(self, scheduler, store):
        add_folders(store, 3)

        result = asyncio.run(scheduler.do_scheduled_tick())

        assert result.counts.folders == 1

    def test_refresh_is_rejected_while_busy(self, scheduler, store, kv):
        add_folders(store, 1)
        kv.data[LOCK_KEY] = future_lease()

        with pytest.raises(ReindexBusyError):
            asyncio.run(scheduler.do_refresh_folders())


class TestStatusAndRefresh:
    def test_refresh_resets_cursor(self, scheduler, store, kv):
        add_folders(store, 4)
        kv.data[STATUS_KEY] = {"cursor": 3, "totalFolders": 2, "lastRun": "2024-01-01T00:00:00+00:00"}

        total = asyncio.run(scheduler.do_refresh_folders())

        assert total == 4
        status = kv.data[STATUS_KEY]
        assert status["cursor"] == 0
        assert status["totalFolders"] == 4
        assert status["lastRun"] == "2024-01-01T00:00:00+00:00"
        assert status["lastRefresh"] is not None
        assert kv.data[FOLDER_IDS_KEY] == ["folder0", "folder1", "folder2", "folder3"]

    def test_malformed_status_reads_as_initial(self, scheduler, kv):
        kv.data[STATUS_KEY] = {"cursor": "not a number"}

        status = asyncio.run(scheduler.get_status())

        assert status.cursor == 0
        assert status.lastRun is None
