"""
Directory discovery crawler.

Walks the source hierarchy using scan_queue as both the frontier and the
de-duplication ledger:

    claim directory -> list it -> record children in file_inventory
                    -> enqueue child directories -> mark directory done

Insert-only writes against unique paths are the only de-duplication, so any
number of crawler processes can run against the same store. A listing error
fails that one directory and the crawl moves on.

Termination: two consecutive empty claims, separated by a short pause, mark
the job completed. The pause covers another crawler that is still inserting
the children of the directory it holds.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.orm import Session

from blob_migrator.core.config import settings
from blob_migrator.core.storage_clients import SourceStorage
from blob_migrator.dtos.queue_dto import DirectoryScanResult
from blob_migrator.repositories.file_inventory_repo import FileInventoryRepository
from blob_migrator.repositories.migration_progress_repo import MigrationProgressRepository
from blob_migrator.repositories.scan_queue_repo import ScanQueueRepository
from blob_migrator.services.job_lifecycle_service import (
    JobContext,
    JobLifecycleService,
    wait_or_stop,
)

logger = logging.getLogger(__name__)

EMPTY_CLAIMS_BEFORE_COMPLETE = 2


def child_path(parent: str, name: str, is_dir: bool) -> str:
    """Join a listing entry onto its parent; directories keep a trailing ``/``."""
    name = name.strip("/")
    return f"{parent}{name}/" if is_dir else f"{parent}{name}"


class DiscoveryService:
    def __init__(
        self,
        session: Session,
        source: SourceStorage,
        lifecycle: JobLifecycleService | None = None,
        root_path: str | None = None,
    ) -> None:
        self.session = session
        self.source = source
        self.lifecycle = lifecycle or JobLifecycleService(session)
        self.scan_queue_repo = ScanQueueRepository(session)
        self.inventory_repo = FileInventoryRepository(session)
        self.progress_repo = MigrationProgressRepository(session)
        self.root_path = root_path or settings.ROOT_PATH
        if not self.root_path.endswith("/"):
            self.root_path += "/"

    def ensure_root_queued(self) -> bool:
        """Insert the root directory into the frontier if it has never been seen."""
        created = self.scan_queue_repo.enqueue(self.root_path, None)
        if created:
            logger.info("Queued root directory %s", self.root_path)
        return created

    async def crawl_once(self, ctx: JobContext) -> DirectoryScanResult | None:
        """
        Claim and process one directory.

        Returns:
            The scan result, or None when no directory could be claimed
        """
        claim = self.scan_queue_repo.claim_next_directory()
        if claim is None:
            return None

        path = claim.path
        try:
            children = await asyncio.to_thread(self.source.list_directory, path)
        except Exception as e:
            # listing failures are confined to this directory
            logger.error("ERROR scanning %s: %s", path, e)
            self.scan_queue_repo.mark(claim.id, "failed")
            return DirectoryScanResult(path=path, status="failed", error=str(e))

        files = 0
        total_bytes = 0
        subdirectories = 0
        for child in children:
            item_path = child_path(path, child.name, child.is_directory)
            if child.is_directory:
                self.inventory_repo.record(item_path, is_dir=True, parent_path=path)
                self.scan_queue_repo.enqueue(item_path, path)
                subdirectories += 1
                continue

            created = self.inventory_repo.record(
                item_path,
                is_dir=False,
                parent_path=path,
                size=child.size,
                content_type=child.content_type,
                source_url=self.source.absolute_url(item_path),
            )
            # a re-listed directory must not count its files twice
            if created:
                files += 1
                total_bytes += child.size

        self.progress_repo.increment(
            ctx.job_id, scanned_dirs=1, total_files=files, total_bytes=total_bytes
        )
        self.scan_queue_repo.mark(claim.id, "done")
        logger.info(
            "Scanned %s - files:+%d, bytes:+%d, dirs:+%d", path, files, total_bytes, subdirectories
        )
        return DirectoryScanResult(
            path=path,
            status="done",
            files=files,
            bytes=total_bytes,
            subdirectories=subdirectories,
        )

    async def run(self, ctx: JobContext, stop_event: asyncio.Event | None = None) -> str:
        """
        Crawl until the frontier is exhausted or the job leaves running.

        Store errors propagate to the caller.

        Returns:
            The job status observed when the loop ended
        """
        self.ensure_root_queued()
        logger.info("DISCOVER job=%s worker=%s started", ctx.job_id, ctx.worker_id)

        empty_claims = 0
        while not (stop_event and stop_event.is_set()):
            status = self.lifecycle.get_status(ctx.job_id)
            if status == "paused":
                logger.info("Paused...")
                await wait_or_stop(stop_event, settings.PAUSE_POLL_SECONDS)
                continue
            if self.lifecycle.is_terminal(status):
                logger.info("Job is %s. Exit.", status)
                return status

            result = await self.crawl_once(ctx)
            if result is not None:
                empty_claims = 0
                continue

            empty_claims += 1
            if empty_claims >= EMPTY_CLAIMS_BEFORE_COMPLETE:
                logger.info("No more directories to scan. Marking job completed.")
                self.lifecycle.finish(ctx.job_id, "completed")
                return self.lifecycle.get_status(ctx.job_id)
            await wait_or_stop(stop_event, settings.EMPTY_CLAIM_RECHECK_SECONDS)

        return self.lifecycle.get_status(ctx.job_id)
