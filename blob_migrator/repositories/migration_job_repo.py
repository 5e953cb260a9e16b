"""
Repository for migration job rows.

All status writes are conditional updates guarded by
``status NOT IN (stopped, completed, failed)`` so that a terminal status is
never overwritten, whichever worker or operator writes last.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import func, select, update

from blob_migrator.entities.base import utcnow
from blob_migrator.entities.migration_job import MigrationJob, TERMINAL_STATUSES
from blob_migrator.entities.migration_progress import MigrationProgress
from blob_migrator.repositories.base_repo import BaseRepository


class MigrationJobRepository(BaseRepository[MigrationJob]):
    """
    Repository for job operations.

    Extends BaseRepository with lifecycle transitions, heartbeats and
    stale-job reaping.
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session=session, model=MigrationJob)

    def create_job(
        self,
        kind: str,
        note: str | None = None,
        worker_id: str | None = None,
        host: str | None = None,
    ) -> MigrationJob:
        """
        Create a running job together with its zeroed progress row.

        Both rows are written in one transaction.
        """
        now = utcnow()
        job = MigrationJob(
            kind=kind,
            status="running",
            note=note,
            worker_id=worker_id,
            host=host,
            last_heartbeat=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(job)
        self.session.flush()
        self.session.add(MigrationProgress(job_id=job.id, last_update=now))
        self.session.commit()
        self.session.refresh(job)
        return job

    def get_status(self, job_id: str) -> Optional[str]:
        stmt = select(MigrationJob.status).where(MigrationJob.id == job_id)
        status = self.session.execute(stmt).scalar_one_or_none()
        # end the read transaction so the next poll sees operator updates
        self.session.commit()
        return status

    def set_status(self, job_id: str, status: str) -> bool:
        """
        Move a non-terminal job to *status*.

        Returns False when the job does not exist or is already terminal.
        """
        now = utcnow()
        values: dict = {"status": status, "updated_at": now}
        if status in TERMINAL_STATUSES:
            values["ended_at"] = now

        stmt = (
            update(MigrationJob)
            .where(
                MigrationJob.id == job_id,
                MigrationJob.status.not_in(TERMINAL_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount == 1

    def touch(self, job_id: str) -> bool:
        """Record a heartbeat. Returns False if the job row is gone."""
        stmt = (
            update(MigrationJob)
            .where(MigrationJob.id == job_id)
            .values(last_heartbeat=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount == 1

    def find_latest_running(self, kind: str) -> Optional[MigrationJob]:
        stmt = (
            select(MigrationJob)
            .where(MigrationJob.kind == kind, MigrationJob.status == "running")
            .order_by(MigrationJob.created_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def reap_stale(self, kind: str, cutoff: datetime) -> int:
        """
        Fail running jobs of *kind* whose last heartbeat is older than *cutoff*.

        Jobs that never heartbeat are judged by created_at.
        """
        now = utcnow()
        stmt = (
            update(MigrationJob)
            .where(
                MigrationJob.kind == kind,
                MigrationJob.status == "running",
                func.coalesce(MigrationJob.last_heartbeat, MigrationJob.created_at) < cutoff,
            )
            .values(status="failed", ended_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount

    def list_jobs(
        self,
        kind: str | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> List[MigrationJob]:
        """Newest first, optionally filtered by kind and status."""
        stmt = select(MigrationJob).order_by(MigrationJob.created_at.desc()).limit(limit)
        if kind:
            stmt = stmt.where(MigrationJob.kind == kind)
        if status:
            stmt = stmt.where(MigrationJob.status == status)
        return list(self.session.execute(stmt).scalars().all())
