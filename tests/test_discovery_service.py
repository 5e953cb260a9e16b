"""
Unit tests for the directory discovery crawler.
"""

import asyncio

import pytest
from sqlalchemy import func, select, update

from blob_migrator.core.errors import StorageError
from blob_migrator.entities.file_inventory import FileInventoryEntry
from blob_migrator.entities.scan_queue import ScanQueueEntry
from blob_migrator.services.discovery_service import DiscoveryService, child_path
from blob_migrator.services.job_lifecycle_service import JobLifecycleService


@pytest.fixture
def discovery(db_session, source):
    return DiscoveryService(db_session, source, root_path="/")


@pytest.fixture
def ctx(make_job):
    return make_job("discover")


def _frontier(session):
    rows = session.execute(select(ScanQueueEntry.path, ScanQueueEntry.status)).all()
    return {path: status for path, status in rows}


def _inventory(session):
    rows = session.execute(select(FileInventoryEntry.path, FileInventoryEntry.status)).all()
    return {path: status for path, status in rows}


class TestChildPath:
    """Test joining listing entries onto their parent."""

    def test_file(self):
        assert child_path("/b/", "x.txt", False) == "/b/x.txt"

    def test_directory_gets_trailing_slash(self):
        assert child_path("/", "b", True) == "/b/"
        assert child_path("/", "b/", True) == "/b/"


class TestCrawlOnce:
    """Test processing a single frontier directory."""

    @pytest.mark.asyncio
    async def test_root_with_file_and_directory(self, db_session, source, listing, discovery, ctx):
        """Test one file and one subdirectory under the root."""
        source.tree = {"/": [listing("a.txt", 10), listing("b", is_directory=True)]}
        discovery.ensure_root_queued()

        result = await discovery.crawl_once(ctx)
        progress = JobLifecycleService(db_session).get_progress(ctx.job_id)

        assert result.status == "done"
        assert result.files == 1
        assert result.bytes == 10
        assert result.subdirectories == 1
        assert _inventory(db_session) == {"/a.txt": "pending", "/b/": "scanned"}
        assert _frontier(db_session) == {"/": "done", "/b/": "queued"}
        assert progress["scanned_dirs"] == 1
        assert progress["total_files"] == 1
        assert progress["total_bytes"] == 10

    @pytest.mark.asyncio
    async def test_file_metadata_recorded(self, db_session, source, listing, discovery, ctx):
        """Test size, content type and source URL land in the inventory."""
        source.tree = {"/": [listing("a.jpg", 42, content_type="image/jpeg")]}
        discovery.ensure_root_queued()

        await discovery.crawl_once(ctx)
        row = discovery.inventory_repo.get_by_path("/a.jpg")

        assert row.parent_path == "/"
        assert row.size == 42
        assert row.content_type == "image/jpeg"
        assert row.source_url == "https://source.test/zone/a.jpg"

    @pytest.mark.asyncio
    async def test_nothing_to_claim(self, discovery, ctx):
        """Test an empty frontier yields no result."""
        assert await discovery.crawl_once(ctx) is None

    @pytest.mark.asyncio
    async def test_listing_failure_confined_to_directory(
        self, db_session, source, listing, discovery, ctx
    ):
        """Test a listing error fails only that directory."""
        source.tree = {"/": [listing("bad", is_directory=True), listing("good", is_directory=True)]}
        source.listing_errors["/bad/"] = StorageError("/bad/ returned HTTP 500")
        discovery.ensure_root_queued()

        await discovery.crawl_once(ctx)
        bad = await discovery.crawl_once(ctx)
        good = await discovery.crawl_once(ctx)
        progress = JobLifecycleService(db_session).get_progress(ctx.job_id)

        assert bad.status == "failed"
        assert "HTTP 500" in bad.error
        assert good.status == "done"
        assert _frontier(db_session) == {"/": "done", "/bad/": "failed", "/good/": "done"}
        assert progress["scanned_dirs"] == 2

    @pytest.mark.asyncio
    async def test_relisted_directory_not_counted_twice(
        self, db_session, source, listing, discovery, ctx
    ):
        """Test re-scanning a directory adds no files or bytes."""
        source.tree = {"/": [listing("a.txt", 10)]}
        discovery.ensure_root_queued()
        await discovery.crawl_once(ctx)

        # simulate the directory being re-queued by the stale-claim reaper
        db_session.execute(update(ScanQueueEntry).values(status="queued"))
        db_session.commit()
        source.tree["/"].append(listing("new.txt", 5))
        await discovery.crawl_once(ctx)
        progress = JobLifecycleService(db_session).get_progress(ctx.job_id)

        assert progress["scanned_dirs"] == 2
        assert progress["total_files"] == 2
        assert progress["total_bytes"] == 15

    def test_ensure_root_queued_once(self, db_session, discovery):
        """Test the root directory is queued only the first time."""
        assert discovery.ensure_root_queued() is True
        assert discovery.ensure_root_queued() is False
        assert _frontier(db_session) == {"/": "queued"}


class TestDiscoveryRun:
    """Test the crawl loop until completion, pause and stop."""

    @pytest.mark.asyncio
    async def test_run_completes_tree(self, db_session, source, listing, discovery, ctx):
        """Test a nested tree is fully discovered and the job completed."""
        source.tree = {
            "/": [listing("a.txt", 10), listing("b", is_directory=True)],
            "/b/": [listing("c.txt", 20), listing("d", is_directory=True)],
            "/b/d/": [listing("e.bin", 30)],
        }

        status = await discovery.run(ctx)
        progress = JobLifecycleService(db_session).get_progress(ctx.job_id)

        assert status == "completed"
        assert sorted(source.listed) == ["/", "/b/", "/b/d/"]
        assert set(_frontier(db_session).values()) == {"done"}
        assert progress["scanned_dirs"] == 3
        assert progress["total_files"] == 3
        assert progress["total_bytes"] == 60

    @pytest.mark.asyncio
    async def test_second_run_adds_nothing(self, db_session, source, listing, discovery, make_job):
        """Test re-running discovery over a finished frontier is a no-op."""
        source.tree = {"/": [listing("a.txt", 10)]}
        await discovery.run(make_job("discover"))
        count_before = db_session.execute(
            select(func.count()).select_from(FileInventoryEntry)
        ).scalar_one()

        second = make_job("discover")
        status = await DiscoveryService(db_session, source, root_path="/").run(second)
        progress = JobLifecycleService(db_session).get_progress(second.job_id)

        assert status == "completed"
        assert progress["total_files"] == 0
        assert db_session.execute(
            select(func.count()).select_from(FileInventoryEntry)
        ).scalar_one() == count_before

    @pytest.mark.asyncio
    async def test_stopped_job_exits_without_scanning(self, db_session, source, discovery, ctx):
        """Test a stopped job is observed before any claim."""
        JobLifecycleService(db_session).set_status(ctx.job_id, "stopped")

        status = await discovery.run(ctx)

        assert status == "stopped"
        assert source.listed == []
        assert _frontier(db_session) == {"/": "queued"}

    @pytest.mark.asyncio
    async def test_paused_job_does_not_claim(self, db_session, source, listing, discovery, ctx):
        """Test a paused crawler polls without claiming until cancelled."""
        source.tree = {"/": [listing("a.txt", 10)]}
        JobLifecycleService(db_session).set_status(ctx.job_id, "paused")
        stop_event = asyncio.Event()

        async def _stop_soon():
            await asyncio.sleep(0.05)
            stop_event.set()

        stopper = asyncio.create_task(_stop_soon())
        status = await discovery.run(ctx, stop_event)
        await stopper

        assert status == "paused"
        assert source.listed == []

    @pytest.mark.asyncio
    async def test_resume_after_pause(self, db_session, source, listing, discovery, ctx):
        """Test a crawler picks up work once the operator resumes the job."""
        source.tree = {"/": [listing("a.txt", 10)]}
        lifecycle = JobLifecycleService(db_session)
        lifecycle.set_status(ctx.job_id, "paused")

        async def _resume_soon():
            await asyncio.sleep(0.05)
            lifecycle.set_status(ctx.job_id, "running")

        resumer = asyncio.create_task(_resume_soon())
        status = await discovery.run(ctx)
        await resumer

        assert status == "completed"
        assert source.listed == ["/"]
