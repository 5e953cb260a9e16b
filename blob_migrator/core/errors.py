"""
Exception hierarchy for blob-migrator.

Duplicate-insert conflicts are deliberately absent: they are expected under
concurrency and never leave the repository layer.
"""

from __future__ import annotations


class MigratorError(Exception):
    """Base class for all blob-migrator errors."""


class StorageError(MigratorError):
    """A listing, download or upload against a storage provider failed."""

    def __init__(self, message: str, *, path: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class JobNotFoundError(MigratorError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobTerminalError(MigratorError):
    """Raised when an operator tries to change a stopped/completed/failed job."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is {status} and can no longer change status")
        self.job_id = job_id
        self.status = status


class InvalidStatusError(MigratorError, ValueError):
    def __init__(self, status: str, allowed: tuple[str, ...]):
        super().__init__(f"Invalid status '{status}', expected one of: {', '.join(allowed)}")
        self.status = status
        self.allowed = allowed
