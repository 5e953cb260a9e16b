from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blob_migrator.entities.base import Base, new_id, utcnow


class MigrationLog(Base):
    """Append-only record of one transfer outcome. Never updated after insert."""

    __tablename__ = "migration_logs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')", name="ck_migration_logs_status"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    file_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("file_inventory.id", ondelete="CASCADE"), nullable=True, index=True
    )
    job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("migration_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    error_msg: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_path: Mapped[str] = mapped_column(Text, nullable=False)
    destination_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    time_taken_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
