"""
Job lifecycle: creation/resume, operator status control, heartbeats and
stale-claim reaping.

State machine per job:

    running <-> paused
    running -> stopped    (operator, terminal)
    running -> completed  (worker, queue exhausted, terminal)
    running -> failed     (worker fault or reaped for staleness, terminal)

Workers only poll and obey. Terminal statuses are immutable; every write goes
through a conditional update in MigrationJobRepository.

Reapers are the only recovery path for crashed workers: claims are never
released by the store on their own.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blob_migrator.core.config import settings
from blob_migrator.core.errors import InvalidStatusError, JobNotFoundError, JobTerminalError
from blob_migrator.entities.base import utcnow
from blob_migrator.entities.migration_job import JOB_KINDS, TERMINAL_STATUSES, MigrationJob
from blob_migrator.repositories.file_inventory_repo import FileInventoryRepository
from blob_migrator.repositories.migration_job_repo import MigrationJobRepository
from blob_migrator.repositories.migration_progress_repo import MigrationProgressRepository
from blob_migrator.repositories.scan_queue_repo import ScanQueueRepository

logger = logging.getLogger(__name__)

OPERATOR_STATUSES = ("running", "paused", "stopped")
WORKER_FINAL_STATUSES = ("completed", "failed", "stopped")


@dataclass(frozen=True)
class JobContext:
    """The job a crawler or worker is currently serving. Passed explicitly everywhere."""

    job_id: str
    kind: str
    worker_id: str


def new_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"


async def wait_or_stop(stop_event: asyncio.Event | None, seconds: float) -> None:
    """Sleep for *seconds*, returning early once *stop_event* is set."""
    if stop_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except TimeoutError:
        pass


class JobLifecycleService:
    """
    Service for job state shared by the crawler and the migration worker.

    Handles:
    - Creating jobs (with their progress row) and resuming healthy ones
    - Operator status changes and worker terminal transitions
    - Heartbeats on a fixed interval
    - Reaping stale jobs, stale file claims and stale directory claims
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.job_repo = MigrationJobRepository(session)
        self.progress_repo = MigrationProgressRepository(session)
        self.inventory_repo = FileInventoryRepository(session)
        self.scan_queue_repo = ScanQueueRepository(session)

    # ------------------------------------------------------------------
    # Creation / resume
    # ------------------------------------------------------------------

    def create_job(self, kind: str, note: str | None = None, worker_id: str | None = None) -> MigrationJob:
        """
        Create a running job of *kind* and its progress row.

        Raises:
            ValueError: If kind is not discover or migrate
        """
        if kind not in JOB_KINDS:
            raise ValueError(f"Unknown job kind '{kind}'")
        job = self.job_repo.create_job(
            kind=kind, note=note, worker_id=worker_id, host=socket.gethostname()
        )
        logger.info("Created %s job=%s worker=%s", kind, job.id, worker_id)
        return job

    def start_or_resume(
        self,
        kind: str,
        note: str | None = None,
        worker_id: str | None = None,
        allow_parallel: bool = False,
    ) -> JobContext:
        """
        Return a context for a healthy running job of *kind*, creating one if needed.

        Stale running jobs of the kind are reaped first. When *allow_parallel*
        is True a fresh job is always created.
        """
        worker_id = worker_id or new_worker_id()
        self.reap_stale_jobs(kind, settings.STALE_JOB_MINUTES)

        if not allow_parallel:
            job = self.job_repo.find_latest_running(kind)
            if job is not None:
                logger.info("Reusing running %s job=%s", kind, job.id)
                return JobContext(job_id=job.id, kind=kind, worker_id=worker_id)

        job = self.create_job(kind, note=note, worker_id=worker_id)
        return JobContext(job_id=job.id, kind=kind, worker_id=worker_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> MigrationJob:
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        self.session.refresh(job)
        return job

    def get_status(self, job_id: str) -> str:
        status = self.job_repo.get_status(job_id)
        if status is None:
            raise JobNotFoundError(job_id)
        return status

    def set_status(self, job_id: str, status: str) -> MigrationJob:
        """
        Operator transition to running, paused or stopped.

        Raises:
            InvalidStatusError: If status is not operator-settable
            JobNotFoundError: If the job does not exist
            JobTerminalError: If the job already reached a terminal status
        """
        if status not in OPERATOR_STATUSES:
            raise InvalidStatusError(status, OPERATOR_STATUSES)

        if not self.job_repo.set_status(job_id, status):
            current = self.get_status(job_id)
            raise JobTerminalError(job_id, current)

        logger.info("Job %s set to %s by operator", job_id, status)
        return self.get_job(job_id)

    def finish(self, job_id: str, status: str) -> bool:
        """
        Worker-side terminal transition.

        Returns False, leaving the row alone, when the job is already
        terminal (for example stopped by an operator).
        """
        if status not in WORKER_FINAL_STATUSES:
            raise InvalidStatusError(status, WORKER_FINAL_STATUSES)
        changed = self.job_repo.set_status(job_id, status)
        if changed:
            logger.info("Job %s marked %s", job_id, status)
        else:
            logger.info("Job %s already terminal; %s not applied", job_id, status)
        return changed

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def heartbeat(self, job_id: str) -> bool:
        return self.job_repo.touch(job_id)

    async def heartbeat_loop(
        self,
        job_id: str,
        stop_event: asyncio.Event,
        interval: float | None = None,
    ) -> None:
        """Beat every *interval* seconds until *stop_event* is set, independent of work."""
        interval = interval or settings.HEARTBEAT_SECONDS
        while not stop_event.is_set():
            try:
                self.heartbeat(job_id)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.warning("Heartbeat for job %s failed: %s", job_id, e)
            await wait_or_stop(stop_event, interval)

    # ------------------------------------------------------------------
    # Reapers (idempotent, safe to call from anywhere)
    # ------------------------------------------------------------------

    def reap_stale_jobs(self, kind: str, minutes: float) -> int:
        """Fail running jobs of *kind* with no heartbeat in the last *minutes*."""
        cutoff = utcnow() - timedelta(minutes=minutes)
        reaped = self.job_repo.reap_stale(kind, cutoff)
        if reaped:
            logger.warning("Reaped %d stale %s job(s)", reaped, kind)
        return reaped

    def reap_stale_claims(self, minutes: float) -> int:
        """Return in_progress files claimed more than *minutes* ago to pending."""
        cutoff = utcnow() - timedelta(minutes=minutes)
        reclaimed = self.inventory_repo.reclaim_stale(cutoff)
        if reclaimed:
            logger.warning("Reclaimed %d stale in_progress file(s)", reclaimed)
        return reclaimed

    def reap_stale_directories(self, minutes: float) -> int:
        """Re-queue frontier directories claimed more than *minutes* ago."""
        cutoff = utcnow() - timedelta(minutes=minutes)
        reclaimed = self.scan_queue_repo.reclaim_stale(cutoff)
        if reclaimed:
            logger.warning("Re-queued %d stale claimed directories", reclaimed)
        return reclaimed

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_progress(self, job_id: str) -> dict[str, Any]:
        progress = self.progress_repo.get_snapshot(job_id)
        if progress is None:
            raise JobNotFoundError(job_id)
        return {
            "job_id": progress.job_id,
            "total_bytes": progress.total_bytes,
            "total_files": progress.total_files,
            "scanned_dirs": progress.scanned_dirs,
            "migrated_files": progress.migrated_files,
            "failed_files": progress.failed_files,
            "last_update": progress.last_update,
        }

    def list_jobs(
        self, kind: str | None = None, status: str | None = None, limit: int = 50
    ) -> list[MigrationJob]:
        return self.job_repo.list_jobs(kind=kind, status=status, limit=limit)

    @staticmethod
    def is_terminal(status: str) -> bool:
        return status in TERMINAL_STATUSES
