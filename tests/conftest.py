"""Pytest configuration and fixtures for the s3uploader tests."""

import threading
import time
from collections.abc import Callable, Generator, Sequence
from pathlib import Path

import pytest
from flask import Flask
from flask.testing import FlaskClient

from s3uploader import create_app
from s3uploader.config import MetadataHeader, SourceSpec
from s3uploader.services.admission_gate import AdmissionGate
from s3uploader.services.inflight_tracker import InFlightTracker
from s3uploader.services.log_service import LogService
from s3uploader.services.upload_service import PipelineContext, UploadService
from s3uploader.services.upload_stats import UploadStats
from s3uploader.services.upload_task import prepare_source_folders
from s3uploader.services.worker_pool import WorkerPool


class FakeStore:
    """In-memory ObjectStore that records every put.

    Puts for names in ``fail_names`` raise. When ``hold`` is given each put
    blocks until the event is set.
    """

    def __init__(self, fail_names: Sequence[str] = (), hold: threading.Event | None = None) -> None:
        self.fail_names = set(fail_names)
        self.hold = hold
        self.puts: list[tuple[str, str, str]] = []
        self.headers: dict[str, tuple[MetadataHeader, ...]] = {}
        self.started = threading.Semaphore(0)
        self._lock = threading.Lock()

    @property
    def names(self) -> list[str]:
        with self._lock:
            return [name for _, _, name in self.puts]

    def put(self, bucket: str, key: str, path: Path, headers: Sequence[MetadataHeader]) -> None:
        with self._lock:
            self.puts.append((bucket, key, path.name))
            self.headers[key] = tuple(headers)
        self.started.release()
        if self.hold is not None:
            self.hold.wait(timeout=10)
        if path.name in self.fail_names:
            raise RuntimeError(f"simulated failure for {path.name}")


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll until condition() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def build_service(
    sources: list[SourceSpec],
    store: FakeStore,
    core_pool_size: int = 1,
    maximum_pool_size: int = 1,
    queue_capacity: int = 1,
    delete_after_upload: bool = True,
    log: LogService | None = None,
    pause_interval: float = 0.01,
) -> UploadService:
    """Build an UploadService wired to a fake store, with its folders prepared."""
    prepare_source_folders(sources, delete_after_upload)
    pool = WorkerPool(core_pool_size, maximum_pool_size, queue_capacity, keep_alive_seconds=1.0)
    context = PipelineContext(
        sources=sources,
        store=store,
        tracker=InFlightTracker(),
        gate=AdmissionGate(maximum_pool_size + queue_capacity),
        pool=pool,
        stats=UploadStats(
            active_count=lambda: pool.active_count,
            queue_size=lambda: pool.queue_size,
        ),
        log=log,
        delete_after_upload=delete_after_upload,
        pause_interval=pause_interval,
    )
    return UploadService(context)


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Create an empty source folder."""
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def source(source_dir: Path) -> SourceSpec:
    """A source uploading every visible file to test-bucket/images."""
    return SourceSpec(local_path=source_dir, bucket_name="test-bucket", object_key_root="images")


@pytest.fixture
def store() -> FakeStore:
    """Create a fake object store that always succeeds."""
    return FakeStore()


@pytest.fixture
def log_service(tmp_path: Path) -> LogService:
    """Create a log service with a temporary log directory."""
    return LogService(tmp_path / "logs")


@pytest.fixture
def service(
    source: SourceSpec, store: FakeStore, log_service: LogService
) -> Generator[UploadService, None, None]:
    """Create an upload service over the test source."""
    svc = build_service([source], store, log=log_service)
    yield svc
    svc.shutdown(wait=True)


@pytest.fixture
def app(service: UploadService) -> Flask:
    """Create application for testing."""
    app = create_app(service)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-west-2")
