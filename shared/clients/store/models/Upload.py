"""Models for the resumable upload session protocol."""

from typing import Literal

from pydantic import BaseModel


class UploadMetadata(BaseModel):
    """
    Metadata sent when opening a resumable upload session.
    """
    name: str
    parentId: str
    mimeType: str = "application/octet-stream"
    appProperties: dict[str, str] | None = None


class ChunkResult(BaseModel):
    """
    Outcome of a single chunk request.

    Attributes:
        status:             "partial" when the store kept the session open, "done" when the object is finalised.
        acknowledgedOffset: For partial results, the next byte offset the store expects.
                            None when the store did not report a range.
        descriptor:         For done results, the finalised remote object.
    """
    status: Literal["partial", "done"]
    acknowledgedOffset: int | None = None
    descriptor: dict | None = None
