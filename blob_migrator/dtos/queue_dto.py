"""
DTOs passed between the queue repositories, the crawler and the worker pool.
"""

from pydantic import BaseModel, ConfigDict, Field


class SourceObject(BaseModel):
    """One child returned by a source directory listing."""

    name: str = Field(..., min_length=1)
    is_directory: bool = False
    size: int = Field(0, ge=0)
    content_type: str | None = None


class ClaimedDirectory(BaseModel):
    """A frontier row just flipped from queued to claimed."""

    id: str
    path: str
    parent_path: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ClaimedFile(BaseModel):
    """An inventory row just flipped from pending to in_progress."""

    id: str
    path: str
    source_url: str | None = None
    content_type: str | None = None
    size: int | None = None

    model_config = ConfigDict(from_attributes=True)


class DirectoryScanResult(BaseModel):
    path: str
    status: str  # done | failed
    files: int = 0
    bytes: int = 0
    subdirectories: int = 0
    error: str | None = None


class TransferOutcome(BaseModel):
    file_id: str
    path: str
    status: str  # success | failed
    attempts: int
    time_taken_ms: int
    error: str | None = None


class BatchResult(BaseModel):
    claimed: int = 0
    migrated: int = 0
    failed: int = 0
