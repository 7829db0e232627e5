"""Reindex run models: requests, per-folder results and the persisted status."""

from pydantic import BaseModel, Field, field_validator


class ReindexCounts(BaseModel):
    """Accumulated counters of one reindex run.

    Attributes:
        folders: Folders visited.
        scanned: Objects examined across all visited folders.
        changed: Objects embedded and upserted.
        skipped: Visited folders that produced no change.
    """

    folders: int = 0
    scanned: int = 0
    changed: int = 0
    skipped: int = 0

    def add(self, result: "FolderReindexResult") -> None:
        self.folders += 1
        self.scanned += result.scanned
        self.changed += result.changed
        self.skipped += 1 if result.skipped else 0


class FolderReindexResult(BaseModel):
    """Outcome of the change detector for a single folder."""

    scanned: int = 0
    changed: int = 0
    skipped: bool = True


class ReindexStatus(BaseModel):
    """Persisted scheduler state under the "reindex:status" key.

    cursor is the registry position of the next folder to visit.
    """

    lastRun: str | None = None
    lastRefresh: str | None = None
    cursor: int = 0
    totalFolders: int = 0
    counts: ReindexCounts = Field(default_factory=ReindexCounts)


class ReindexRequest(BaseModel):
    """Parameters of one reindex run.

    A max_changed of 0 is a dry run: nothing is embedded and neither
    signatures nor status are written.
    """

    limit_folders: int = 5
    max_changed: int = 150
    stateless: bool = False
    start: int = 0
    dry_run: bool = False

    @field_validator("limit_folders")
    @classmethod
    def _clamp_limit_folders(cls, v: int) -> int:
        return max(1, min(v, 100))

    @field_validator("max_changed", "start")
    @classmethod
    def _clamp_non_negative(cls, v: int) -> int:
        return max(0, v)

    @property
    def is_dry_run(self) -> bool:
        return self.dry_run or self.max_changed == 0


class ReindexResult(BaseModel):
    """Result of a stateful or stateless reindex run."""

    mode: str
    counts: ReindexCounts
    totalFolders: int
    cursor: int | None = None
    start: int | None = None
    nextStart: int | None = None
    dryRun: bool = False
