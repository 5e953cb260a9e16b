"""
File migration worker pool.

Claims batches of pending files and copies each from the source store to the
destination store under the same relative path.

Architecture:
    MigrationService -> FileInventoryRepository.claim_file_batch() (SKIP LOCKED)
    MigrationService -> SourceStorage.download() / DestinationStorage.upload()
    MigrationService -> MigrationLogRepository / MigrationProgressRepository

A batch is dispatched to at most CONCURRENCY concurrent transfers and the
worker only claims the next batch once every file in the current one has
succeeded or failed terminally. Transfers run in worker threads; all database
writes stay on the event loop thread.

Per-file lifecycle:  pending -> in_progress -> migrated | failed
    A failed attempt is retried after RETRY_BASE_DELAY_SECONDS * attempt**2.
    Only the last attempt writes a failed log row and bumps failed_files.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blob_migrator.core.config import settings
from blob_migrator.core.storage_clients import (
    DEFAULT_CONTENT_TYPE,
    DestinationStorage,
    SourceStorage,
)
from blob_migrator.dtos.queue_dto import BatchResult, ClaimedFile, TransferOutcome
from blob_migrator.repositories.file_inventory_repo import FileInventoryRepository
from blob_migrator.repositories.migration_log_repo import MigrationLogRepository
from blob_migrator.repositories.migration_progress_repo import MigrationProgressRepository
from blob_migrator.services.job_lifecycle_service import (
    JobContext,
    JobLifecycleService,
    wait_or_stop,
)

logger = logging.getLogger(__name__)


def destination_path(source_path: str) -> str:
    return source_path[1:] if source_path.startswith("/") else source_path


class MigrationService:
    """
    Service for claiming and transferring files with bounded concurrency.

    Handles:
    - Batch claiming and cooperative pause/stop polling
    - Buffered vs streaming download by size threshold
    - Bounded retry with quadratic backoff
    - Per-file log rows, inventory finalisation and progress increments
    """

    def __init__(
        self,
        session: Session,
        source: SourceStorage,
        destination: DestinationStorage,
        lifecycle: JobLifecycleService | None = None,
        *,
        concurrency: int | None = None,
        max_retries: int | None = None,
        batch_size: int | None = None,
        small_file_threshold: int | None = None,
        retry_base_delay: float | None = None,
    ) -> None:
        self.session = session
        self.source = source
        self.destination = destination
        self.lifecycle = lifecycle or JobLifecycleService(session)
        self.inventory_repo = FileInventoryRepository(session)
        self.log_repo = MigrationLogRepository(session)
        self.progress_repo = MigrationProgressRepository(session)

        self.concurrency = max(1, concurrency or settings.CONCURRENCY)
        self.max_retries = max(1, max_retries or settings.MAX_RETRIES)
        self.batch_size = batch_size or settings.BATCH_SIZE
        self.small_file_threshold = (
            settings.SMALL_FILE_THRESHOLD_BYTES if small_file_threshold is None else small_file_threshold
        )
        self.retry_base_delay = (
            settings.RETRY_BASE_DELAY_SECONDS if retry_base_delay is None else retry_base_delay
        )

    def backoff_seconds(self, attempt: int) -> float:
        return self.retry_base_delay * attempt * attempt

    def _transfer(self, file: ClaimedFile, dest_path: str) -> None:
        """Blocking download + upload of one file. Runs in a worker thread."""
        streaming = (file.size or 0) > self.small_file_threshold
        body = self.source.download(file.path, streaming=streaming)
        try:
            self.destination.upload(dest_path, file.content_type or DEFAULT_CONTENT_TYPE, body)
        finally:
            # an unread stream still holds the source connection
            close = getattr(body, "close", None)
            if close is not None:
                close()

    async def migrate_one(self, ctx: JobContext, file: ClaimedFile) -> TransferOutcome:
        """
        Transfer one claimed file, retrying up to max_retries times.

        Transfer errors never escape; store errors do.
        """
        start = time.monotonic()
        dest_path = destination_path(file.path)
        error: str | None = None
        attempt = 0

        while attempt < self.max_retries:
            attempt += 1
            try:
                await asyncio.to_thread(self._transfer, file, dest_path)
            except Exception as e:
                error = str(e) or e.__class__.__name__
                if attempt >= self.max_retries:
                    break
                delay = self.backoff_seconds(attempt)
                logger.warning(
                    "WARN %s attempt %d failed: %s -> retry in %.1fs", file.path, attempt, error, delay
                )
                await asyncio.sleep(delay)
                continue

            elapsed_ms = int((time.monotonic() - start) * 1000)
            self.log_repo.append(
                job_id=ctx.job_id,
                file_id=file.id,
                status="success",
                attempts=attempt,
                source_path=file.path,
                destination_path=dest_path,
                time_taken_ms=elapsed_ms,
            )
            self.inventory_repo.finalize(file.id, "migrated")
            self.progress_repo.increment(ctx.job_id, migrated_files=1)
            logger.info("OK  %s (%.2fs)", file.path, elapsed_ms / 1000)
            return TransferOutcome(
                file_id=file.id,
                path=file.path,
                status="success",
                attempts=attempt,
                time_taken_ms=elapsed_ms,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.log_repo.append(
            job_id=ctx.job_id,
            file_id=file.id,
            status="failed",
            attempts=attempt,
            source_path=file.path,
            destination_path=dest_path,
            time_taken_ms=elapsed_ms,
            error_msg=error,
        )
        self.inventory_repo.finalize(file.id, "failed")
        self.progress_repo.increment(ctx.job_id, failed_files=1)
        logger.error("FAIL %s after %d attempts :: %s", file.path, attempt, error)
        return TransferOutcome(
            file_id=file.id,
            path=file.path,
            status="failed",
            attempts=attempt,
            time_taken_ms=elapsed_ms,
            error=error,
        )

    async def process_batch(self, ctx: JobContext, batch: list[ClaimedFile]) -> BatchResult:
        """
        Run every file of *batch* through the bounded pool and wait for all of them.

        If a store error escapes any transfer it is re-raised after the rest
        of the batch has settled.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(file: ClaimedFile) -> TransferOutcome:
            async with semaphore:
                return await self.migrate_one(ctx, file)

        results = await asyncio.gather(*(_bounded(f) for f in batch), return_exceptions=True)

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise errors[0]

        return BatchResult(
            claimed=len(batch),
            migrated=sum(1 for r in results if r.status == "success"),
            failed=sum(1 for r in results if r.status == "failed"),
        )

    def claim_batch(self, ctx: JobContext) -> list[ClaimedFile]:
        return self.inventory_repo.claim_file_batch(self.batch_size, worker_id=ctx.worker_id)

    async def _reclaim_loop(self, stop_event: asyncio.Event, interval: float, minutes: float) -> None:
        while not stop_event.is_set():
            await wait_or_stop(stop_event, interval)
            if stop_event.is_set():
                break
            try:
                self.lifecycle.reap_stale_claims(minutes)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.warning("Reclaim failed: %s", e)

    async def run(self, ctx: JobContext, stop_event: asyncio.Event | None = None) -> str:
        """
        Claim and migrate batches until nothing is claimable or the job leaves running.

        Returns:
            The job status observed when the loop ended
        """
        stop_event = stop_event or asyncio.Event()
        logger.info("MIGRATE job=%s worker=%s started", ctx.job_id, ctx.worker_id)

        reclaim_task = None
        if settings.RECLAIM_INTERVAL_SECONDS > 0:
            reclaim_task = asyncio.create_task(
                self._reclaim_loop(
                    stop_event, settings.RECLAIM_INTERVAL_SECONDS, settings.RECLAIM_STALE_MINUTES
                )
            )

        try:
            while not stop_event.is_set():
                status = self.lifecycle.get_status(ctx.job_id)
                if status == "paused":
                    logger.info("Paused...")
                    await wait_or_stop(stop_event, settings.PAUSE_POLL_SECONDS)
                    continue
                if self.lifecycle.is_terminal(status):
                    logger.info("Job is %s. Exit.", status)
                    return status

                batch = self.claim_batch(ctx)
                if not batch:
                    await wait_or_stop(stop_event, settings.EMPTY_CLAIM_RECHECK_SECONDS)
                    batch = self.claim_batch(ctx)
                    if not batch:
                        logger.info("No more claimable files. Marking job completed.")
                        self.lifecycle.finish(ctx.job_id, "completed")
                        return self.lifecycle.get_status(ctx.job_id)

                result = await self.process_batch(ctx, batch)
                logger.info(
                    "Batch done - claimed:%d migrated:%d failed:%d",
                    result.claimed,
                    result.migrated,
                    result.failed,
                )
            return self.lifecycle.get_status(ctx.job_id)
        finally:
            if reclaim_task is not None:
                reclaim_task.cancel()
                with suppress(asyncio.CancelledError):
                    await reclaim_task
