"""
Tests for the operator control API covers:
  auth
  job status control and progress
  file search, retry and reclaim
  migration logs
  structured error responses
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update

from blob_migrator.entities.base import utcnow
from blob_migrator.entities.file_inventory import FileInventoryEntry
from blob_migrator.entities.migration_job import MigrationJob
from blob_migrator.entities.scan_queue import ScanQueueEntry
from blob_migrator.repositories.file_inventory_repo import FileInventoryRepository
from blob_migrator.repositories.migration_log_repo import MigrationLogRepository
from blob_migrator.repositories.migration_progress_repo import MigrationProgressRepository
from blob_migrator.repositories.scan_queue_repo import ScanQueueRepository
from blob_migrator.services.job_lifecycle_service import JobLifecycleService


@pytest.fixture
def job(db_session):
    return JobLifecycleService(db_session).create_job("migrate", note="api test", worker_id="w1")


@pytest.fixture
def files(db_session):
    """Three files: /a pending, /b failed, /c in_progress."""
    repo = FileInventoryRepository(db_session)
    for path in ("/a", "/b", "/c"):
        repo.record(path, is_dir=False, parent_path="/", size=7)
    repo.record("/dir/", is_dir=True, parent_path="/")
    db_session.execute(
        update(FileInventoryEntry).where(FileInventoryEntry.path == "/b").values(status="failed")
    )
    db_session.execute(
        update(FileInventoryEntry)
        .where(FileInventoryEntry.path == "/c")
        .values(status="in_progress", claimed_by="w1", claimed_at=utcnow())
    )
    db_session.commit()
    return {path: repo.get_by_path(path).id for path in ("/a", "/b", "/c")}


# ---------------------------------------------------------------------------
# Health (public, no auth)
# ---------------------------------------------------------------------------


class TestPublicEndpoints:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "healthy"
        assert body["service"] == "blob-migrator"

    def test_request_id_header(self, client):
        r = client.get("/health")
        assert r.headers["X-Request-ID"]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuth:
    def test_no_auth_when_key_not_set(self, client, job):
        """When API_KEY is empty, control endpoints are accessible."""
        with patch("blob_migrator.core.security.settings") as mock_settings:
            mock_settings.API_KEY = ""
            r = client.get("/jobs")
            assert r.status_code == 200

    def test_forbidden_with_wrong_key(self, client):
        """When API_KEY is set, wrong key returns 403."""
        with patch("blob_migrator.core.security.settings") as mock_settings:
            mock_settings.API_KEY = "correct-key"
            r = client.get("/jobs", headers={"X-API-Key": "wrong-key"})
            assert r.status_code == 403
            body = r.json()
            assert body["error"] == "http_error"
            assert "request_id" in body

    def test_forbidden_without_key(self, client):
        with patch("blob_migrator.core.security.settings") as mock_settings:
            mock_settings.API_KEY = "correct-key"
            r = client.post("/reclaim-inprogress", json={"minutes": 30})
            assert r.status_code == 403

    def test_allowed_with_correct_key(self, client):
        with patch("blob_migrator.core.security.settings") as mock_settings:
            mock_settings.API_KEY = "correct-key"
            r = client.get("/jobs", headers={"X-API-Key": "correct-key"})
            assert r.status_code == 200

    def test_health_is_public(self, client):
        with patch("blob_migrator.core.security.settings") as mock_settings:
            mock_settings.API_KEY = "correct-key"
            assert client.get("/health").status_code == 200


# ---------------------------------------------------------------------------
# Jobs and progress
# ---------------------------------------------------------------------------


class TestJobs:
    def test_list_jobs(self, client, job):
        r = client.get("/jobs", params={"kind": "migrate"})
        assert r.status_code == 200
        [body] = r.json()
        assert body["id"] == job.id
        assert body["status"] == "running"
        assert body["note"] == "api test"

    def test_get_job(self, client, job):
        r = client.get(f"/jobs/{job.id}")
        assert r.status_code == 200
        assert r.json()["kind"] == "migrate"

    def test_get_job_not_found(self, client):
        r = client.get("/jobs/missing")
        assert r.status_code == 404
        body = r.json()
        assert body["error"] == "not_found"
        assert "missing" in body["message"]

    def test_pause_and_resume(self, client, job):
        r = client.post(f"/jobs/{job.id}/status", json={"status": "paused"})
        assert r.status_code == 200
        assert r.json() == {"ok": True, "status": "paused"}

        r = client.post(f"/jobs/{job.id}/status", json={"status": "running"})
        assert r.json()["status"] == "running"

    def test_stop_is_final(self, client, job):
        """Once stopped, a job can no longer change status."""
        assert client.post(f"/jobs/{job.id}/status", json={"status": "stopped"}).status_code == 200

        r = client.post(f"/jobs/{job.id}/status", json={"status": "running"})
        assert r.status_code == 409
        body = r.json()
        assert body["error"] == "conflict"
        assert body["detail"] == {"status": "stopped"}

    def test_worker_statuses_rejected(self, client, job):
        r = client.post(f"/jobs/{job.id}/status", json={"status": "completed"})
        assert r.status_code == 422

    def test_status_unknown_job(self, client):
        r = client.post("/jobs/missing/status", json={"status": "paused"})
        assert r.status_code == 404

    def test_progress(self, client, db_session, job):
        MigrationProgressRepository(db_session).increment(job.id, migrated_files=4, failed_files=1)

        r = client.get(f"/progress/{job.id}")
        assert r.status_code == 200
        body = r.json()
        assert body["migrated_files"] == 4
        assert body["failed_files"] == 1
        assert body["total_files"] == 0

    def test_progress_not_found(self, client):
        assert client.get("/progress/missing").status_code == 404

    def test_reap_stale_jobs(self, client, db_session, job):
        db_session.execute(
            update(MigrationJob)
            .where(MigrationJob.id == job.id)
            .values(last_heartbeat=utcnow() - timedelta(minutes=10))
        )
        db_session.commit()

        r = client.post("/jobs/reap-stale", json={"kind": "migrate", "minutes": 2})
        assert r.status_code == 200
        assert r.json() == {"reaped": 1}
        assert client.get(f"/jobs/{job.id}").json()["status"] == "failed"


# ---------------------------------------------------------------------------
# Files: search, retry, reclaim
# ---------------------------------------------------------------------------


class TestFiles:
    def test_list_by_status(self, client, files):
        r = client.get("/files", params={"status": "failed"})
        assert r.status_code == 200
        assert [f["path"] for f in r.json()] == ["/b"]

    def test_list_excludes_directories(self, client, files):
        paths = sorted(f["path"] for f in client.get("/files").json())
        assert paths == ["/a", "/b", "/c"]

    def test_in_progress(self, client, files):
        r = client.get("/files-inprogress")
        assert r.status_code == 200
        [row] = r.json()
        assert row["path"] == "/c"
        assert row["claimed_by"] == "w1"

    def test_retry_file(self, client, db_session, files):
        r = client.post(f"/files/{files['/b']}/retry")
        assert r.status_code == 200
        assert r.json() == {"ok": True}
        assert FileInventoryRepository(db_session).get_by_path("/b").status == "pending"

    def test_retry_missing_file(self, client):
        r = client.post("/files/missing/retry")
        assert r.status_code == 404
        assert r.json()["error"] == "http_error"

    def test_retry_bulk_by_status(self, client, files):
        r = client.post("/retry-bulk", json={"status": "failed"})
        assert r.status_code == 200
        assert r.json() == {"ok": True, "reset": 1}

    def test_retry_bulk_by_ids(self, client, files):
        r = client.post("/retry-bulk", json={"ids": [files["/b"], files["/c"]]})
        assert r.json()["reset"] == 2

    def test_retry_bulk_requires_selector(self, client):
        r = client.post("/retry-bulk", json={})
        assert r.status_code == 400

    def test_reclaim_in_progress(self, client, db_session, files):
        """Fresh claims are kept; claims older than the threshold are released."""
        r = client.post("/reclaim-inprogress", json={"minutes": 30})
        assert r.json() == {"ok": True, "reclaimed": 0}

        db_session.execute(
            update(FileInventoryEntry)
            .where(FileInventoryEntry.status == "in_progress")
            .values(claimed_at=utcnow() - timedelta(minutes=31))
        )
        db_session.commit()

        r = client.post("/reclaim-inprogress", json={"minutes": 30})
        assert r.json() == {"ok": True, "reclaimed": 1}

    def test_reclaim_minutes_clamped(self, client, db_session, files):
        """A zero threshold is raised to one minute, so fresh claims survive."""
        r = client.post("/reclaim-inprogress", json={"minutes": 0})
        assert r.status_code == 200
        assert r.json()["reclaimed"] == 0

    def test_reclaim_dirs(self, client, db_session):
        repo = ScanQueueRepository(db_session)
        repo.enqueue("/x/", "/")
        repo.claim_next_directory()
        db_session.execute(
            update(ScanQueueEntry).values(claimed_at=utcnow() - timedelta(hours=1))
        )
        db_session.commit()

        r = client.post("/reclaim-dirs")
        assert r.status_code == 200
        assert r.json() == {"ok": True, "reclaimed": 1}


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


class TestLogs:
    def test_recent_logs(self, client, db_session, job):
        repo = MigrationLogRepository(db_session)
        repo.append(job_id=job.id, file_id=None, status="success", attempts=1,
                    source_path="/a", destination_path="a", time_taken_ms=12)
        repo.append(job_id=job.id, file_id=None, status="failed", attempts=3,
                    source_path="/b", destination_path="b", time_taken_ms=40, error_msg="HTTP 500")

        r = client.get("/logs", params={"jobId": job.id})
        assert r.status_code == 200
        assert len(r.json()) == 2

        r = client.get("/logs", params={"jobId": job.id, "status": "failed"})
        [row] = r.json()
        assert row["source_path"] == "/b"
        assert row["error_msg"] == "HTTP 500"

    def test_logs_require_job_id(self, client):
        assert client.get("/logs").status_code == 422
