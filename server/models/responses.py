from typing import Any

from pydantic import BaseModel

from shared.clients.rag.models.VectorEntry import QueryHit
from shared.clients.store.models.StoreObject import ItemMeta
from shared.models.recognition import AggregatedItem
from shared.models.reindex import ReindexCounts, ReindexStatus


class UpsertResponse(BaseModel):
    ok: bool = True
    id: str | None = None
    meta: dict[str, Any] | None = None
    indexed: int | None = None


class QueryResponse(BaseModel):
    ok: bool = True
    topK: int
    hits: list[QueryHit]


class QueryItemsResponse(BaseModel):
    ok: bool = True
    items: list[AggregatedItem]


class HealthResponse(BaseModel):
    ok: bool = True
    source: str
    dimension: int


class ReindexRunResponse(BaseModel):
    ok: bool = True
    mode: str
    counts: ReindexCounts
    totalFolders: int
    cursor: int | None = None
    start: int | None = None
    nextStart: int | None = None
    dryRun: bool = False


class RefreshFoldersResponse(BaseModel):
    ok: bool = True
    totalFolders: int


class StatusResponse(BaseModel):
    ok: bool = True
    status: ReindexStatus


class FolderSample(BaseModel):
    id: str
    name: str | None = None


class DiagResponse(BaseModel):
    ok: bool = True
    rootId: str | None
    canList: bool
    count: int
    sample: list[FolderSample]
    error: str | None = None


class ObjectSample(BaseModel):
    id: str
    name: str | None = None
    mimeType: str | None = None
    modifiedTime: str | None = None
    md5Checksum: str | None = None


class PeekResponse(BaseModel):
    ok: bool = True
    meta: ItemMeta | None
    count: int
    sample: list[ObjectSample]


class ImageLinksResponse(BaseModel):
    media: list[str]
    view: list[str]
    count: int
    folderId: str


class UploadedFile(BaseModel):
    id: str
    name: str | None = None
    media: str
    view: str


class UploadResponse(BaseModel):
    ok: bool = True
    file: UploadedFile


class CheckFolderResponse(BaseModel):
    status: int
    result: Any
