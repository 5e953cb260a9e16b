"""
Repository for the append-only migration log.
"""
from __future__ import annotations

from typing import List
from sqlalchemy.orm import Session
from sqlalchemy import select

from blob_migrator.entities.migration_log import MigrationLog
from blob_migrator.repositories.base_repo import BaseRepository


class MigrationLogRepository(BaseRepository[MigrationLog]):
    def __init__(self, session: Session) -> None:
        super().__init__(session=session, model=MigrationLog)

    def append(
        self,
        *,
        job_id: str,
        file_id: str | None,
        status: str,
        attempts: int,
        source_path: str,
        destination_path: str | None,
        time_taken_ms: int | None,
        error_msg: str | None = None,
    ) -> MigrationLog:
        """Write one attempt outcome. Rows are never updated afterwards."""
        record = MigrationLog(
            job_id=job_id,
            file_id=file_id,
            status=status,
            attempts=attempts,
            source_path=source_path,
            destination_path=destination_path,
            time_taken_ms=time_taken_ms,
            error_msg=error_msg,
        )
        return self.create(record, commit=True)

    def recent_for_job(
        self,
        job_id: str,
        status: str | None = None,
        limit: int = 100,
    ) -> List[MigrationLog]:
        stmt = (
            select(MigrationLog)
            .where(MigrationLog.job_id == job_id)
            .order_by(MigrationLog.upload_time.desc())
            .limit(limit)
        )
        if status:
            stmt = stmt.where(MigrationLog.status == status)
        return list(self.session.execute(stmt).scalars().all())

    def for_file(self, file_id: str) -> List[MigrationLog]:
        stmt = (
            select(MigrationLog)
            .where(MigrationLog.file_id == file_id)
            .order_by(MigrationLog.upload_time)
        )
        return list(self.session.execute(stmt).scalars().all())
