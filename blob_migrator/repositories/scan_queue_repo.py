"""
Repository for the discovery frontier (scan_queue).

The claim is a single ``UPDATE ... WHERE id IN (SELECT ... FOR UPDATE SKIP
LOCKED) RETURNING`` statement. On PostgreSQL concurrent claimants skip each
other's locked rows; on backends without row locks (SQLite) the repeated
``status = 'queued'`` predicate turns the update into a compare-and-swap, so a
row is still handed out at most once.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, update

from blob_migrator.dtos.queue_dto import ClaimedDirectory
from blob_migrator.entities.base import utcnow
from blob_migrator.entities.scan_queue import ScanQueueEntry
from blob_migrator.repositories.base_repo import BaseRepository


class ScanQueueRepository(BaseRepository[ScanQueueEntry]):
    def __init__(self, session: Session) -> None:
        super().__init__(session=session, model=ScanQueueEntry)

    def enqueue(self, path: str, parent_path: str | None = None) -> bool:
        """Insert-only enqueue of a directory. Returns False for a known path."""
        return self.insert_if_absent(
            ScanQueueEntry(path=path, parent_path=parent_path, status="queued")
        )

    def claim_next_directory(self) -> Optional[ClaimedDirectory]:
        """
        Claim the queued directory with the lowest path.

        Returns:
            The claimed entry, or None when nothing is queued or every
            queued row is locked by another claimant
        """
        now = utcnow()
        candidate = (
            select(ScanQueueEntry.id)
            .where(ScanQueueEntry.status == "queued")
            .order_by(ScanQueueEntry.path)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(ScanQueueEntry)
            .where(ScanQueueEntry.id.in_(candidate), ScanQueueEntry.status == "queued")
            .values(status="claimed", claimed_at=now, updated_at=now)
            .returning(ScanQueueEntry.id, ScanQueueEntry.path, ScanQueueEntry.parent_path)
            .execution_options(synchronize_session=False)
        )
        try:
            row = self.session.execute(stmt).first()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        if row is None:
            return None
        return ClaimedDirectory(id=row.id, path=row.path, parent_path=row.parent_path)

    def mark(self, entry_id: str, status: str) -> None:
        """Finish a claimed directory as ``done`` or ``failed``."""
        stmt = (
            update(ScanQueueEntry)
            .where(ScanQueueEntry.id == entry_id)
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)
        self.session.commit()

    def reclaim_stale(self, cutoff: datetime) -> int:
        """Put directories claimed before *cutoff* back in the queue."""
        stmt = (
            update(ScanQueueEntry)
            .where(ScanQueueEntry.status == "claimed", ScanQueueEntry.claimed_at < cutoff)
            .values(status="queued", claimed_at=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount

    def get_by_path(self, path: str) -> Optional[ScanQueueEntry]:
        stmt = select(ScanQueueEntry).where(ScanQueueEntry.path == path)
        return self.session.execute(stmt).scalars().first()
