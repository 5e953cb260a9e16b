"""
Entity for discover/migrate jobs.

A job is created once per discovery run or migration run and is owned by the
worker that heartbeats it. Operators pause, resume and stop it through the
control API; the worker only polls and obeys.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blob_migrator.entities.base import Base, new_id, utcnow

JOB_KINDS = ("discover", "migrate")
JOB_STATUSES = ("running", "paused", "stopped", "completed", "failed")
TERMINAL_STATUSES = ("stopped", "completed", "failed")


class MigrationJob(Base):
    __tablename__ = "migration_jobs"
    __table_args__ = (
        CheckConstraint("kind IN ('discover', 'migrate')", name="ck_migration_jobs_kind"),
        CheckConstraint(
            "status IN ('running', 'paused', 'stopped', 'completed', 'failed')",
            name="ck_migration_jobs_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="running", index=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    worker_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_heartbeat: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
