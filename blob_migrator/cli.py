"""
blob-migrator command line.

    blob-migrator init-db            create tables (development; use alembic in production)
    blob-migrator discover           crawl the source tree into the queue
    blob-migrator migrate            copy claimed files to the destination
    blob-migrator reap               run the stale-job / stale-claim reapers once
    blob-migrator serve              run the operator control API

Run several ``discover`` or ``migrate`` processes against the same database
to scale out; the queue tables are the only coordination between them.
"""

import asyncio
import sys

import click

from blob_migrator.core.config import settings
from blob_migrator.core.database import SessionLocal, engine
from blob_migrator.core.logging_config import configure_logging
from blob_migrator.services.job_lifecycle_service import JobLifecycleService
from blob_migrator.services.worker_runner import WorkerRunner


@click.group()
@click.version_option(version="0.1.0", prog_name="blob-migrator")
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL.")
def cli(log_level):
    """Resumable, horizontally scalable bulk copy between object stores."""
    configure_logging(level=log_level)


@cli.command("init-db")
def init_db():
    """Create all tables on DATABASE_URL if they do not exist."""
    from blob_migrator.entities.base import Base
    import blob_migrator.entities.migration_job  # noqa: F401
    import blob_migrator.entities.migration_progress  # noqa: F401
    import blob_migrator.entities.scan_queue  # noqa: F401
    import blob_migrator.entities.file_inventory  # noqa: F401
    import blob_migrator.entities.migration_log  # noqa: F401

    Base.metadata.create_all(engine)
    click.echo(f"Tables created on {engine.url.render_as_string(hide_password=True)}")


@cli.command()
@click.option("--note", default=None, help="Free-text note stored on the job.")
def discover(note):
    """Discover directories and files in the source store."""
    status = asyncio.run(WorkerRunner("discover", note=note).run())
    click.echo(f"discover finished: {status}")
    sys.exit(0 if status in ("completed", "stopped", "paused") else 1)


@cli.command()
@click.option("--note", default=None, help="Free-text note stored on the job.")
@click.option("--concurrency", type=int, default=None, help="Overrides CONCURRENCY.")
@click.option("--batch-size", type=int, default=None, help="Overrides BATCH_SIZE.")
def migrate(note, concurrency, batch_size):
    """Migrate pending files from the source to the destination store."""
    runner = WorkerRunner("migrate", note=note, concurrency=concurrency, batch_size=batch_size)
    status = asyncio.run(runner.run())
    click.echo(f"migrate finished: {status}")
    sys.exit(0 if status in ("completed", "stopped", "paused") else 1)


@cli.command()
@click.option("--kind", type=click.Choice(["discover", "migrate"]), default="discover")
@click.option("--job-minutes", type=float, default=None, help="Stale heartbeat threshold.")
@click.option("--claim-minutes", type=float, default=None, help="Stale in_progress threshold.")
@click.option("--dirs/--no-dirs", default=False, help="Also re-queue stale claimed directories.")
def reap(kind, job_minutes, claim_minutes, dirs):
    """Run the reapers once. Safe to schedule from cron."""
    session = SessionLocal()
    try:
        lifecycle = JobLifecycleService(session)
        jobs = lifecycle.reap_stale_jobs(kind, job_minutes or settings.STALE_JOB_MINUTES)
        claims = lifecycle.reap_stale_claims(claim_minutes or settings.RECLAIM_STALE_MINUTES)
        directories = (
            lifecycle.reap_stale_directories(claim_minutes or settings.RECLAIM_STALE_MINUTES)
            if dirs
            else 0
        )
    finally:
        session.close()
    click.echo(f"reaped jobs={jobs} claims={claims} directories={directories}")


@cli.command()
@click.option("--host", default="0.0.0.0")
@click.option("--port", type=int, default=4000)
def serve(host, port):
    """Run the control API with uvicorn."""
    import uvicorn

    uvicorn.run("blob_migrator.main:app", host=host, port=port)


def main():
    cli()


if __name__ == "__main__":
    main()
