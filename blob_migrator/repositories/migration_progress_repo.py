"""
Repository for per-job progress counters.

Counters are only changed with ``UPDATE ... SET col = col + :delta`` so that
any number of crawlers and workers can report against the same job without
lost updates. Nothing reads a counter, adds to it in Python and writes it
back.
"""
from __future__ import annotations

from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy import update

from blob_migrator.entities.base import utcnow
from blob_migrator.entities.migration_progress import COUNTER_FIELDS, MigrationProgress
from blob_migrator.repositories.base_repo import BaseRepository


class MigrationProgressRepository(BaseRepository[MigrationProgress]):
    def __init__(self, session: Session) -> None:
        super().__init__(session=session, model=MigrationProgress)

    def increment(self, job_id: str, **deltas: int) -> None:
        """
        Atomically add signed *deltas* to the job's counters.

        Args:
            job_id: Job whose progress row is updated
            **deltas: counter name -> delta, e.g. ``scanned_dirs=1``

        Raises:
            ValueError: If a delta names an unknown counter
        """
        unknown = set(deltas) - set(COUNTER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown progress counters: {', '.join(sorted(unknown))}")

        values = {
            name: getattr(MigrationProgress, name) + delta
            for name, delta in deltas.items()
            if delta
        }
        if not values:
            return
        values["last_update"] = utcnow()

        stmt = (
            update(MigrationProgress)
            .where(MigrationProgress.job_id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)
        self.session.commit()

    def get_snapshot(self, job_id: str) -> Optional[MigrationProgress]:
        progress = self.get_by_id(job_id)
        if progress is not None:
            self.session.refresh(progress)
        return progress
