from typing import Any

from pydantic import BaseModel, field_validator

MAX_QUERY_TOP_K = 500


def clamp_top_k(value: int) -> int:
    """Photo hit count for a query: 5 when unset or not positive, at most MAX_QUERY_TOP_K."""
    return min(value, MAX_QUERY_TOP_K) if value > 0 else 5


class UpsertRequest(BaseModel):
    folderId: str | None = None
    fileId: str | None = None
    itemId: str | None = None
    label: str | None = None
    meta: dict[str, Any] | None = None


class BulkReindexRequest(BaseModel):
    folderId: str | None = None
    itemId: str | None = None
    label: str | None = None
    meta: dict[str, Any] | None = None


class QueryRequest(BaseModel):
    fileId: str | None = None
    url: str | None = None
    text: str | None = None
    topK: int = 5
    filter: dict[str, Any] | None = None

    @field_validator("topK")
    @classmethod
    def _clamp_top_k(cls, v: int) -> int:
        return clamp_top_k(v)


class QueryItemsRequest(BaseModel):
    fileId: str | None = None
    bytesBase64: str | None = None
    topKPhotos: int = 100
    topKItems: int = 5

    @field_validator("topKPhotos")
    @classmethod
    def _clamp_photos(cls, v: int) -> int:
        return min(v, MAX_QUERY_TOP_K) if v > 0 else 100

    @field_validator("topKItems")
    @classmethod
    def _clamp_items(cls, v: int) -> int:
        return min(v, 50) if v > 0 else 5
