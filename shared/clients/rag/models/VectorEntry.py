"""Vector index models shared by every RAG engine."""

from typing import Any

from pydantic import BaseModel


class VectorEntry(BaseModel):
    """A single vector written to the index.

    The id equals the source object id, so upserting the same object again
    overwrites its previous vector.

    Attributes:
        id:       Source object id.
        values:   The embedding vector.
        metadata: Flat metadata. Always carries the owning itemId when the entry came from a reindex.
    """

    id: str
    values: list[float]
    metadata: dict[str, Any] = {}


class QueryHit(BaseModel):
    """A single similarity hit, ordered by descending score within a result list."""

    id: str
    score: float
    metadata: dict[str, Any] = {}
