"""create migration queue tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000

Adds the five tables behind the resumable migration queue:
- migration_jobs: discover/migrate jobs with status control and heartbeat
- migration_progress: per-job counters, only changed by atomic increments
- scan_queue: discovery frontier, unique on path
- file_inventory: discovered files/directories, unique on path
- migration_logs: append-only per-file transfer outcomes

The unique indexes on scan_queue.path and file_inventory.path are what make
insert-only discovery safe across concurrent crawlers.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the queue tables, their unique path indexes and status indexes.

    Columns match the entities under blob_migrator/entities/.
    """
    op.create_table(
        "migration_jobs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("worker_id", sa.String(64), nullable=True),
        sa.Column("host", sa.String(255), nullable=True),
        sa.Column("last_heartbeat", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("kind IN ('discover', 'migrate')", name="ck_migration_jobs_kind"),
        sa.CheckConstraint(
            "status IN ('running', 'paused', 'stopped', 'completed', 'failed')",
            name="ck_migration_jobs_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_migration_jobs_kind", "migration_jobs", ["kind"])
    op.create_index("ix_migration_jobs_status", "migration_jobs", ["status"])

    op.create_table(
        "migration_progress",
        sa.Column("job_id", sa.String(36), nullable=False),
        sa.Column("total_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_files", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("scanned_dirs", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("migrated_files", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("failed_files", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_update", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["job_id"], ["migration_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("job_id"),
    )

    op.create_table(
        "scan_queue",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("parent_path", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "status IN ('queued', 'claimed', 'done', 'failed')", name="ck_scan_queue_status"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("path", name="uniq_scan_queue_path"),
    )
    op.create_index("ix_scan_queue_status", "scan_queue", ["status"])

    op.create_table(
        "file_inventory",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("is_dir", sa.Boolean(), nullable=False),
        sa.Column("parent_path", sa.Text(), nullable=True),
        sa.Column("size", sa.BigInteger(), nullable=True),
        sa.Column("content_type", sa.String(255), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("claimed_by", sa.String(64), nullable=True),
        sa.Column("scan_time", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("path", name="uniq_file_inventory_path"),
    )
    op.create_index("ix_file_inventory_status", "file_inventory", ["status"])
    op.create_index("ix_file_inventory_is_dir", "file_inventory", ["is_dir"])
    op.create_index("ix_file_inventory_status_is_dir", "file_inventory", ["status", "is_dir"])

    op.create_table(
        "migration_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("file_id", sa.String(36), nullable=True),
        sa.Column("job_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_msg", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("source_path", sa.Text(), nullable=False),
        sa.Column("destination_path", sa.Text(), nullable=True),
        sa.Column("upload_time", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("time_taken_ms", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed')", name="ck_migration_logs_status"
        ),
        sa.ForeignKeyConstraint(["file_id"], ["file_inventory.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_id"], ["migration_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_migration_logs_file_id", "migration_logs", ["file_id"])
    op.create_index("ix_migration_logs_job_id", "migration_logs", ["job_id"])
    op.create_index("ix_migration_logs_status", "migration_logs", ["status"])


def downgrade() -> None:
    """Drop the queue tables in dependency order."""
    op.drop_index("ix_migration_logs_status", table_name="migration_logs")
    op.drop_index("ix_migration_logs_job_id", table_name="migration_logs")
    op.drop_index("ix_migration_logs_file_id", table_name="migration_logs")
    op.drop_table("migration_logs")

    op.drop_index("ix_file_inventory_status_is_dir", table_name="file_inventory")
    op.drop_index("ix_file_inventory_is_dir", table_name="file_inventory")
    op.drop_index("ix_file_inventory_status", table_name="file_inventory")
    op.drop_table("file_inventory")

    op.drop_index("ix_scan_queue_status", table_name="scan_queue")
    op.drop_table("scan_queue")

    op.drop_table("migration_progress")

    op.drop_index("ix_migration_jobs_status", table_name="migration_jobs")
    op.drop_index("ix_migration_jobs_kind", table_name="migration_jobs")
    op.drop_table("migration_jobs")
