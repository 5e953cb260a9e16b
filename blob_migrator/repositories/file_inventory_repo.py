"""
Repository for the file inventory.

Holds the batch claim used by migration workers, the per-file finalisation
that releases a claim, the operator retry resets, and the stale-claim reaper.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import select, update

from blob_migrator.dtos.queue_dto import ClaimedFile
from blob_migrator.entities.base import utcnow
from blob_migrator.entities.file_inventory import FileInventoryEntry
from blob_migrator.repositories.base_repo import BaseRepository


class FileInventoryRepository(BaseRepository[FileInventoryEntry]):
    def __init__(self, session: Session) -> None:
        super().__init__(session=session, model=FileInventoryEntry)

    def record(
        self,
        path: str,
        *,
        is_dir: bool,
        parent_path: str | None,
        size: int | None = None,
        content_type: str | None = None,
        source_url: str | None = None,
    ) -> bool:
        """
        Insert-only record of a discovered path.

        Files start ``pending``; directories are stored as ``scanned``.
        An existing row for *path* is left untouched and False is returned.
        """
        entry = FileInventoryEntry(
            path=path,
            is_dir=is_dir,
            parent_path=parent_path,
            size=None if is_dir else size,
            content_type=None if is_dir else content_type,
            source_url=None if is_dir else source_url,
            status="scanned" if is_dir else "pending",
            scan_time=utcnow(),
        )
        return self.insert_if_absent(entry)

    def claim_file_batch(self, batch_size: int, worker_id: str | None = None) -> List[ClaimedFile]:
        """
        Claim up to *batch_size* pending files, lowest paths first.

        Claimed rows move to ``in_progress`` with claimed_at/claimed_by set.
        Rows locked by a concurrent claimant are skipped, never waited on.
        """
        if batch_size <= 0:
            return []

        now = utcnow()
        candidates = (
            select(FileInventoryEntry.id)
            .where(FileInventoryEntry.status == "pending", FileInventoryEntry.is_dir.is_(False))
            .order_by(FileInventoryEntry.path)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(FileInventoryEntry)
            .where(
                FileInventoryEntry.id.in_(candidates),
                FileInventoryEntry.status == "pending",
            )
            .values(status="in_progress", claimed_at=now, claimed_by=worker_id, updated_at=now)
            .returning(
                FileInventoryEntry.id,
                FileInventoryEntry.path,
                FileInventoryEntry.source_url,
                FileInventoryEntry.content_type,
                FileInventoryEntry.size,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            rows = self.session.execute(stmt).all()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        claimed = [
            ClaimedFile(
                id=row.id,
                path=row.path,
                source_url=row.source_url,
                content_type=row.content_type,
                size=row.size,
            )
            for row in rows
        ]
        return sorted(claimed, key=lambda f: f.path)

    def finalize(self, file_id: str, status: str) -> None:
        """Set the terminal transfer status and release the claim."""
        stmt = (
            update(FileInventoryEntry)
            .where(FileInventoryEntry.id == file_id)
            .values(status=status, claimed_at=None, claimed_by=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)
        self.session.commit()

    def reset_to_pending(self, file_id: str) -> bool:
        """Make one file claimable again. Returns False if it does not exist."""
        return self.reset_bulk(ids=[file_id]) == 1

    def reset_bulk(self, *, status: str | None = None, ids: list[str] | None = None) -> int:
        """
        Reset files selected by *ids* (preferred) or by *status* to ``pending``.

        Directories are never reset.

        Raises:
            ValueError: If neither selector is given
        """
        stmt = update(FileInventoryEntry).where(FileInventoryEntry.is_dir.is_(False))
        if ids:
            stmt = stmt.where(FileInventoryEntry.id.in_(ids))
        elif status:
            stmt = stmt.where(FileInventoryEntry.status == status)
        else:
            raise ValueError("Provide status or ids")

        stmt = stmt.values(
            status="pending", claimed_at=None, claimed_by=None, updated_at=utcnow()
        ).execution_options(synchronize_session=False)
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount

    def reclaim_stale(self, cutoff: datetime) -> int:
        """Return ``in_progress`` files claimed before *cutoff* to ``pending``."""
        stmt = (
            update(FileInventoryEntry)
            .where(
                FileInventoryEntry.status == "in_progress",
                FileInventoryEntry.claimed_at < cutoff,
            )
            .values(status="pending", claimed_at=None, claimed_by=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount

    def search(
        self,
        status: str | None = None,
        query: str | None = None,
        limit: int = 100,
    ) -> List[FileInventoryEntry]:
        """Files only, most recently updated first; *query* is a case-insensitive substring."""
        stmt = (
            select(FileInventoryEntry)
            .where(FileInventoryEntry.is_dir.is_(False))
            .order_by(FileInventoryEntry.updated_at.desc())
            .limit(limit)
        )
        if status:
            stmt = stmt.where(FileInventoryEntry.status == status)
        if query:
            stmt = stmt.where(FileInventoryEntry.path.ilike(f"%{query}%"))
        return list(self.session.execute(stmt).scalars().all())

    def list_in_progress(self, limit: int = 100) -> List[FileInventoryEntry]:
        stmt = (
            select(FileInventoryEntry)
            .where(FileInventoryEntry.status == "in_progress")
            .order_by(FileInventoryEntry.claimed_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def get_by_path(self, path: str) -> Optional[FileInventoryEntry]:
        stmt = select(FileInventoryEntry).where(FileInventoryEntry.path == path)
        return self.session.execute(stmt).scalars().first()
