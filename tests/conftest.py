"""
Shared test fixtures for blob-migrator.

Provides:
- db_session: In-memory SQLite session with all tables created
- client: FastAPI TestClient with DB dependency override
- source / destination: in-memory storage fakes
- job_ctx factory for discover/migrate jobs
"""

import os

# Force sqlite for tests; must be set before any blob_migrator imports.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("API_KEY", None)

import threading
from collections import defaultdict

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from blob_migrator.core.config import settings
from blob_migrator.core.errors import StorageError
from blob_migrator.core.storage_clients import DestinationStorage, SourceStorage
from blob_migrator.dtos.queue_dto import SourceObject
from blob_migrator.entities.base import Base

# Import ALL entity modules so Base.metadata.create_all() registers them.
import blob_migrator.entities.migration_job  # noqa: F401
import blob_migrator.entities.migration_progress  # noqa: F401
import blob_migrator.entities.scan_queue  # noqa: F401
import blob_migrator.entities.file_inventory  # noqa: F401
import blob_migrator.entities.migration_log  # noqa: F401


def _enable_foreign_keys(engine):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def db_session():
    """In-memory SQLite for unit tests. Never hits production DB."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(engine)

    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """sessionmaker over a file-backed SQLite db, for tests that need several connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'queue.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def client(db_session: Session):
    """FastAPI TestClient with DB dependency overridden to use in-memory SQLite."""
    from fastapi.testclient import TestClient
    from blob_migrator.core.database import get_db
    from blob_migrator.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    """No real waiting in loops under test; background reclaim disabled."""
    monkeypatch.setattr(settings, "PAUSE_POLL_SECONDS", 0.01)
    monkeypatch.setattr(settings, "EMPTY_CLAIM_RECHECK_SECONDS", 0.0)
    monkeypatch.setattr(settings, "HEARTBEAT_SECONDS", 0.05)
    monkeypatch.setattr(settings, "RECLAIM_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(settings, "RETRY_BASE_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "API_KEY", None)


class FakeSource(SourceStorage):
    """
    Directory tree held in a dict: ``{"/": [SourceObject, ...], "/b/": [...]}``.

    Paths listed in ``listing_errors`` raise instead of listing.
    """

    def __init__(self, tree=None):
        self.tree = tree or {}
        self.listing_errors = {}
        self.listed = []
        self.downloads = []
        self._lock = threading.Lock()

    def list_directory(self, path):
        with self._lock:
            self.listed.append(path)
        if path in self.listing_errors:
            raise self.listing_errors[path]
        return list(self.tree.get(path, []))

    def download(self, path, *, streaming=False):
        with self._lock:
            self.downloads.append((path, streaming))
        body = f"contents of {path}".encode()
        if streaming:
            return iter([body[:4], body[4:]])
        return body

    def absolute_url(self, path):
        return f"https://source.test/zone{path}"


class FakeDestination(DestinationStorage):
    """Records uploads; ``fail_times[path]`` makes the first N uploads of a path fail."""

    def __init__(self):
        self.uploads = {}
        self.content_types = {}
        self.fail_times = {}
        self.attempts = defaultdict(int)
        self._lock = threading.Lock()

    def upload(self, path, content_type, body):
        with self._lock:
            self.attempts[path] += 1
            attempt = self.attempts[path]
        if attempt <= self.fail_times.get(path, 0):
            raise StorageError(f"{path} returned HTTP 500", path=path, status_code=500)
        data = body if isinstance(body, bytes) else b"".join(body)
        with self._lock:
            self.uploads[path] = data
            self.content_types[path] = content_type


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def destination():
    return FakeDestination()


@pytest.fixture
def make_job(db_session):
    """Factory: create a running job of *kind* and return its JobContext."""
    from blob_migrator.services.job_lifecycle_service import JobContext, JobLifecycleService

    def _make(kind="migrate", worker_id="test-worker"):
        job = JobLifecycleService(db_session).create_job(kind, note="test", worker_id=worker_id)
        return JobContext(job_id=job.id, kind=kind, worker_id=worker_id)

    return _make


def obj(name, size=0, is_directory=False, content_type=None):
    return SourceObject(name=name, size=size, is_directory=is_directory, content_type=content_type)


@pytest.fixture
def listing():
    """Builder for SourceObject entries: ``listing("a.txt", 10)``, ``listing("b", is_directory=True)``."""
    return obj
