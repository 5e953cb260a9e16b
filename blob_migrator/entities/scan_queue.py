"""
Entity for the discovery frontier.

The unique index on ``path`` is the de-duplication mechanism: two crawlers
that discover the same directory both insert, and the second insert is
dropped.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blob_migrator.entities.base import Base, new_id, utcnow


class ScanQueueEntry(Base):
    __tablename__ = "scan_queue"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'claimed', 'done', 'failed')",
            name="ck_scan_queue_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)  # always ends with '/'
    parent_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="queued", index=True
    )  # queued, claimed, done, failed
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
