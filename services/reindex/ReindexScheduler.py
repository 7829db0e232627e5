"""Round-robin reindex scheduler.

Walks the folder registry with a persisted cursor, a bounded slice of
folders per run, so that repeated runs eventually visit every folder. A run
stops early once its change budget is spent.

Stateful runs (manual or scheduled) read and write the cursor and are
serialised: an in-process lock plus a lease in the KV store under
"reindex:lock". Stateless runs list the folders fresh, process an explicit
slice and touch no scheduling state.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
import uuid

from pydantic import ValidationError as PydanticValidationError

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.StoreObject import ItemMeta
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ReindexBusyError
from shared.helper.identifiers import normalize_item_id
from shared.models.reindex import ReindexCounts, ReindexRequest, ReindexResult, ReindexStatus
from services.reindex.ChangeDetector import ChangeDetector
from services.reindex.FolderRegistry import FolderRegistry

STATUS_KEY = "reindex:status"
LOCK_KEY = "reindex:lock"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReindexScheduler:
    """Schedules bounded reindex passes over the folder registry."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        kv_client: KVClientInterface,
        registry: FolderRegistry,
        detector: ChangeDetector,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._kv = kv_client
        self._registry = registry
        self._detector = detector

        self.default_max_changed = helper_config.get_int_val("REINDEX_MAX_CHANGED_PER_RUN", default=10, minimum=0)
        self.scheduled_limit_folders = helper_config.get_int_val("REINDEX_SCHEDULED_LIMIT_FOLDERS", default=1, minimum=1)
        self.scheduled_max_changed = helper_config.get_int_val("REINDEX_SCHEDULED_MAX_CHANGED", default=12, minimum=0)
        self.lock_ttl = helper_config.get_int_val("REINDEX_LOCK_TTL_SECONDS", default=900, minimum=1)

        self._run_lock = asyncio.Lock()

    ##########################################
    ################ STATUS ##################
    ##########################################

    async def get_status(self) -> ReindexStatus:
        """Load the persisted status. A missing or malformed status reads as the initial one."""
        raw = await self._kv.do_get_json(STATUS_KEY)
        if not isinstance(raw, dict):
            return ReindexStatus()
        try:
            status = ReindexStatus.model_validate(raw)
        except PydanticValidationError as e:
            self.logging.warning("Stored reindex status is malformed, starting from cursor 0: %s", e)
            return ReindexStatus()
        if status.cursor < 0:
            status.cursor = 0
        return status

    async def _put_status(self, status: ReindexStatus) -> None:
        await self._kv.do_put_json(STATUS_KEY, status.model_dump())

    ##########################################
    ################# LOCK ###################
    ##########################################

    async def _acquire_lease(self, owner: str) -> None:
        now = _utc_now()
        lease = await self._kv.do_get_json(LOCK_KEY)
        if isinstance(lease, dict) and lease.get("owner") != owner:
            try:
                expires_at = datetime.fromisoformat(str(lease.get("expiresAt")))
            except ValueError:
                expires_at = None
            if expires_at is not None and expires_at > now:
                raise ReindexBusyError(f"A reindex run holds the scheduling lock until {expires_at.isoformat()}")

        await self._kv.do_put_json(LOCK_KEY, {
            "owner": owner,
            "expiresAt": (now + timedelta(seconds=self.lock_ttl)).isoformat(),
        })
        # read back so that a concurrent writer that won the race is detected
        confirmed = await self._kv.do_get_json(LOCK_KEY)
        if not isinstance(confirmed, dict) or confirmed.get("owner") != owner:
            raise ReindexBusyError("Another reindex run took the scheduling lock")

    async def _release_lease(self, owner: str) -> None:
        lease = await self._kv.do_get_json(LOCK_KEY)
        if isinstance(lease, dict) and lease.get("owner") == owner:
            await self._kv.do_delete(LOCK_KEY)

    @asynccontextmanager
    async def _single_flight(self):
        """Hold the scheduling lock for the duration of the block.

        Raises:
            ReindexBusyError: If another stateful run holds the lock.
        """
        if self._run_lock.locked():
            raise ReindexBusyError("A reindex run is already in progress")
        async with self._run_lock:
            owner = uuid.uuid4().hex
            await self._acquire_lease(owner)
            try:
                yield
            finally:
                await self._release_lease(owner)

    ##########################################
    ############### ITEM META ################
    ##########################################

    async def _resolve_item_meta(self, folder_id: str, folder_name: str | None = None) -> ItemMeta:
        """Item metadata of a folder: its item JSON, else the folder name when it is known."""
        meta = await self._store.do_read_item_meta(folder_id)
        if meta is not None and normalize_item_id(meta.itemId):
            return meta
        if folder_name:
            return ItemMeta(itemId=normalize_item_id(folder_name), label=None)
        return ItemMeta()

    ##########################################
    ################ RUNS ####################
    ##########################################

    async def do_run(self, request: ReindexRequest) -> ReindexResult:
        """Run one reindex pass in the mode the request asks for."""
        if request.stateless:
            return await self.do_stateless_run(
                start=request.start,
                limit_folders=request.limit_folders,
                max_changed=request.max_changed,
                dry_run=request.is_dry_run,
            )
        return await self.do_stateful_run(
            limit_folders=request.limit_folders,
            max_changed=request.max_changed,
            dry_run=request.is_dry_run,
        )

    async def do_stateful_run(self, limit_folders: int | None = None, max_changed: int | None = None, dry_run: bool = False) -> ReindexResult:
        """Process the next slice of the registry starting at the persisted cursor.

        Args:
            limit_folders (int | None): Folders to visit at most, None for the whole registry.
            max_changed (int | None): Change budget of the run, None for REINDEX_MAX_CHANGED_PER_RUN.
            dry_run (bool): Do not write seen records or status. A max_changed of 0 is always a dry run.

        Returns:
            ReindexResult: counts, the next cursor and the registry size.

        Raises:
            ReindexBusyError: If another stateful run holds the scheduling lock.
            BridgeError: Any failure while processing a folder aborts the run; the status is left untouched.
        """
        if max_changed is None:
            max_changed = self.default_max_changed
        dry_run = dry_run or max_changed == 0

        if dry_run:
            return await self._stateful_pass(limit_folders, max_changed, dry_run=True)
        async with self._single_flight():
            return await self._stateful_pass(limit_folders, max_changed, dry_run=False)

    async def _stateful_pass(self, limit_folders: int | None, max_changed: int, dry_run: bool) -> ReindexResult:
        folder_ids = await self._registry.do_get_ids()
        if not folder_ids:
            folder_ids = await self._registry.do_refresh()

        counts = ReindexCounts()
        status = await self.get_status()
        total = len(folder_ids)

        if total == 0:
            if not dry_run:
                await self._put_status(status.model_copy(update={
                    "lastRun": _utc_now().isoformat(), "counts": counts, "cursor": 0, "totalFolders": 0,
                }))
            return ReindexResult(mode="stateful", counts=counts, cursor=0, totalFolders=0, dryRun=dry_run)

        if limit_folders is None or limit_folders <= 0:
            limit_folders = total
        start_cursor = status.cursor % total
        next_cursor = start_cursor
        self.logging.info(
            "Stateful reindex from cursor %d of %d folders (limit %d, budget %d%s)",
            start_cursor, total, limit_folders, max_changed, ", dry run" if dry_run else "",
        )

        for i in range(min(limit_folders, total)):
            if counts.changed >= max_changed:
                break
            idx = (start_cursor + i) % total
            folder_id = folder_ids[idx]

            meta = await self._resolve_item_meta(folder_id)
            result = await self._detector.do_reindex_folder(
                folder_id,
                meta,
                max_changed=max_changed - counts.changed,
                write_seen=not dry_run,
            )
            counts.add(result)
            # visited, so the cursor moves past it whether or not it changed
            next_cursor = (idx + 1) % total

            if counts.changed >= max_changed:
                break

        if not dry_run:
            await self._put_status(status.model_copy(update={
                "lastRun": _utc_now().isoformat(),
                "counts": counts,
                "cursor": next_cursor,
                "totalFolders": total,
            }))

        self.logging.info(
            "Stateful reindex done: %d folders, %d scanned, %d changed, next cursor %d",
            counts.folders, counts.scanned, counts.changed, next_cursor,
        )
        return ReindexResult(mode="stateful", counts=counts, cursor=next_cursor, totalFolders=total, dryRun=dry_run)

    async def do_stateless_run(self, start: int = 0, limit_folders: int = 5, max_changed: int = 150, dry_run: bool = False) -> ReindexResult:
        """Process the slice [start, start + limit_folders) of the name-sorted folder listing.

        The caller sequences calls with the returned nextStart. Seen records are still
        maintained (unless dry run); registry, status and lock are not touched.
        """
        dry_run = dry_run or max_changed == 0
        folders = await self._store.do_list_item_folders()
        folders.sort(key=lambda f: f.name or "")
        total = len(folders)

        counts = ReindexCounts()
        for folder in folders[start:min(start + limit_folders, total)]:
            if counts.changed >= max_changed:
                break
            meta = await self._resolve_item_meta(folder.id, folder.name)
            result = await self._detector.do_reindex_folder(
                folder.id,
                meta,
                max_changed=max_changed - counts.changed,
                write_seen=not dry_run,
            )
            counts.add(result)
            if counts.changed >= max_changed:
                break

        next_start = (start + counts.folders) % max(1, total)
        self.logging.info(
            "Stateless reindex [%d, %d) of %d: %d scanned, %d changed",
            start, start + counts.folders, total, counts.scanned, counts.changed,
        )
        return ReindexResult(mode="stateless", counts=counts, start=start, nextStart=next_start, totalFolders=total, dryRun=dry_run)

    async def do_scheduled_tick(self) -> ReindexResult | None:
        """One conservative stateful pass, as fired by the scheduled trigger.

        Returns:
            ReindexResult | None: The run result, or None when another run holds the lock.
        """
        try:
            return await self.do_stateful_run(
                limit_folders=self.scheduled_limit_folders,
                max_changed=self.scheduled_max_changed,
            )
        except ReindexBusyError as e:
            self.logging.warning("Scheduled reindex skipped: %s", e.message)
            return None

    async def do_refresh_folders(self) -> int:
        """Relist the registry and reset the cursor to its start.

        Returns:
            int: The new number of folders.

        Raises:
            ReindexBusyError: If a stateful run holds the scheduling lock.
        """
        async with self._single_flight():
            folder_ids = await self._registry.do_refresh()
            status = await self.get_status()
            await self._put_status(status.model_copy(update={
                "cursor": 0,
                "totalFolders": len(folder_ids),
                "lastRefresh": _utc_now().isoformat(),
            }))
        return len(folder_ids)
