"""
DTOs for the operator control API.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class JobRead(BaseModel):
    id: str
    kind: str
    status: str
    note: str | None
    worker_id: str | None
    host: str | None
    created_at: datetime
    updated_at: datetime
    last_heartbeat: datetime | None
    ended_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class ProgressRead(BaseModel):
    job_id: str
    total_bytes: int
    total_files: int
    scanned_dirs: int
    migrated_files: int
    failed_files: int
    last_update: datetime

    model_config = ConfigDict(from_attributes=True)


class JobStatusUpdate(BaseModel):
    """Operator-settable statuses only; terminal completed/failed belong to workers."""

    status: Literal["running", "paused", "stopped"]


class ReapStaleJobsRequest(BaseModel):
    kind: Literal["discover", "migrate"] = "discover"
    minutes: float = Field(2, gt=0)


class ReclaimRequest(BaseModel):
    """Thresholds below one minute are raised to one minute."""

    minutes: float = Field(30, description="Staleness threshold in minutes")


class RetryBulkRequest(BaseModel):
    """Either *ids* or *status* selects the rows; *ids* wins when both are given."""

    status: str | None = None
    ids: list[str] | None = None


class FileRead(BaseModel):
    id: str
    path: str
    size: int | None
    status: str
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InProgressFileRead(BaseModel):
    id: str
    path: str
    size: int | None
    claimed_at: datetime | None
    claimed_by: str | None

    model_config = ConfigDict(from_attributes=True)


class MigrationLogRead(BaseModel):
    id: str
    status: str
    attempts: int
    source_path: str
    destination_path: str | None
    time_taken_ms: int | None
    upload_time: datetime
    error_msg: str | None

    model_config = ConfigDict(from_attributes=True)
