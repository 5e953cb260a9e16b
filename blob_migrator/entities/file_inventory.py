"""
Entity for the file/directory inventory discovered in the source store.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blob_migrator.entities.base import Base, new_id, utcnow

INVENTORY_STATUSES = ("pending", "scanned", "migrated", "failed", "in_progress")


class FileInventoryEntry(Base):
    """
    One row per unique source path.

    Files start ``pending`` and move through ``in_progress`` (claimed by a
    migration worker) to ``migrated`` or ``failed``. Directories are recorded
    as ``scanned`` and never transferred.
    """

    __tablename__ = "file_inventory"
    __table_args__ = (Index("ix_file_inventory_status_is_dir", "status", "is_dir"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    is_dir: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    parent_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    claimed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    scan_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
