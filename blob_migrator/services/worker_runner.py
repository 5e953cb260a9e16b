"""
Process-level driver for one crawler or migration worker.

Owns the DB session, the job context, the heartbeat task and the shutdown
signals. SIGINT/SIGTERM set the cancellation event and record ``stopped``; the
running loop exits at its next poll point. An uncaught fault records
``failed`` and is re-raised. Both status writes are best effort: a process
killed ungracefully leaves its job to the stale-job reaper.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from contextlib import suppress

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blob_migrator.core.config import settings
from blob_migrator.core.database import SessionLocal
from blob_migrator.core.storage_clients import (
    DestinationStorage,
    HttpDestinationStorage,
    HttpSourceStorage,
    SourceStorage,
)
from blob_migrator.services.discovery_service import DiscoveryService
from blob_migrator.services.job_lifecycle_service import (
    JobContext,
    JobLifecycleService,
    new_worker_id,
)
from blob_migrator.services.migration_service import MigrationService

logger = logging.getLogger(__name__)


class WorkerRunner:
    """
    Run a discover or migrate loop for one process.

    Usage:
        >>> runner = WorkerRunner("discover")
        >>> final_status = asyncio.run(runner.run())
    """

    def __init__(
        self,
        kind: str,
        *,
        note: str | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        source: SourceStorage | None = None,
        destination: DestinationStorage | None = None,
        worker_id: str | None = None,
        concurrency: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        if kind not in ("discover", "migrate"):
            raise ValueError(f"Unknown job kind '{kind}'")
        self.kind = kind
        self.note = note
        self.session_factory = session_factory
        self.source = source
        self.destination = destination
        self.worker_id = worker_id or new_worker_id()
        self.concurrency = concurrency
        self.batch_size = batch_size
        self._stop_event = asyncio.Event()
        self._lifecycle: JobLifecycleService | None = None
        self._ctx: JobContext | None = None

    def _start_job(self, lifecycle: JobLifecycleService) -> JobContext:
        if self.kind == "discover":
            return lifecycle.start_or_resume(
                "discover",
                note=self.note or "Concurrent-safe discovery",
                worker_id=self.worker_id,
                allow_parallel=settings.ALLOW_PARALLEL_DISCOVER,
            )
        job = lifecycle.create_job(
            "migrate", note=self.note or "Concurrent migration worker", worker_id=self.worker_id
        )
        return JobContext(job_id=job.id, kind="migrate", worker_id=self.worker_id)

    def _build_service(self, session: Session, lifecycle: JobLifecycleService):
        source = self.source or HttpSourceStorage()
        if self.kind == "discover":
            return DiscoveryService(session, source, lifecycle)
        destination = self.destination or HttpDestinationStorage()
        return MigrationService(
            session,
            source,
            destination,
            lifecycle,
            concurrency=self.concurrency,
            batch_size=self.batch_size,
        )

    def _finish_best_effort(self, status: str) -> None:
        if self._lifecycle is None or self._ctx is None:
            return
        try:
            self._lifecycle.finish(self._ctx.job_id, status)
        except SQLAlchemyError as e:
            self._lifecycle.session.rollback()
            logger.warning("Could not mark job %s %s: %s", self._ctx.job_id, status, e)

    def handle_shutdown(self, signame: str = "signal") -> None:
        """Signal callback: request a cooperative stop and record it."""
        logger.info("%s received", signame)
        self._stop_event.set()
        self._finish_best_effort("stopped")

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.handle_shutdown, sig.name)
            except NotImplementedError:  # pragma: no cover
                pass  # Windows doesn't support add_signal_handler

    async def run(self, install_signal_handlers: bool = True) -> str:
        """Start or resume the job and drive it to a terminal or paused-then-stopped state."""
        session = self.session_factory()
        try:
            self._lifecycle = JobLifecycleService(session)
            self._ctx = self._start_job(self._lifecycle)
            service = self._build_service(session, self._lifecycle)

            if install_signal_handlers:
                self._setup_signal_handlers()

            heartbeat = asyncio.create_task(
                self._lifecycle.heartbeat_loop(self._ctx.job_id, self._stop_event)
            )
            try:
                return await service.run(self._ctx, self._stop_event)
            except Exception:
                logger.exception("Fatal error in %s job %s", self.kind, self._ctx.job_id)
                session.rollback()
                self._finish_best_effort("failed")
                raise
            finally:
                self._stop_event.set()
                heartbeat.cancel()
                with suppress(asyncio.CancelledError):
                    await heartbeat
        finally:
            session.close()
