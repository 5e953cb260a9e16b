from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from blob_migrator.entities.base import Base, utcnow

COUNTER_FIELDS = (
    "total_bytes",
    "total_files",
    "scanned_dirs",
    "migrated_files",
    "failed_files",
)


class MigrationProgress(Base):
    """Aggregate counters for one job. Only ever changed by atomic increments."""

    __tablename__ = "migration_progress"

    job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("migration_jobs.id", ondelete="CASCADE"), primary_key=True
    )
    total_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_files: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    scanned_dirs: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    migrated_files: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    failed_files: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_update: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
