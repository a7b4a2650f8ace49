"""Tests for Flask route endpoints."""

import json
from pathlib import Path

from conftest import FakeStore, build_service
from flask.testing import FlaskClient

from s3uploader import create_app
from s3uploader.config import SourceSpec
from s3uploader.services.log_service import LogService
from s3uploader.services.upload_service import UploadService


class TestStatsAPI:
    """Tests for upload statistics endpoints."""

    def test_get_stats_empty(self, client: FlaskClient) -> None:
        """Test stats before any upload."""
        response = client.get("/api/stats")
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data["files_uploaded"] == 0
        assert data["bytes_uploaded"] == 0
        assert data["files_failed"] == 0
        assert data["active_task_count"] == 0
        assert data["queue_size"] == 0
        assert data["admission_bound"] == 2
        assert data["version"] == "0.1.0"

    def test_get_stats_after_uploads(
        self, client: FlaskClient, service: UploadService, source_dir: Path
    ) -> None:
        """Test that completed uploads show up in the counters."""
        (source_dir / "a.txt").write_bytes(b"a" * 10)
        service.process_sources()
        service.shutdown(wait=True)

        data = json.loads(client.get("/api/stats").data)

        assert data["files_uploaded"] == 1
        assert data["bytes_uploaded"] == 10
        assert data["bytes_uploaded_formatted"] == "10.0 B"
        assert data["running"] is False

    def test_get_in_flight(self, client: FlaskClient, service: UploadService) -> None:
        """Test listing files currently owned by the pipeline."""
        service.context.tracker.try_claim("/data/b.txt")
        service.context.tracker.try_claim("/data/a.txt")

        data = json.loads(client.get("/api/stats/in-flight").data)

        assert data == {"files": ["/data/a.txt", "/data/b.txt"], "count": 2}


class TestLogsAPI:
    """Tests for event log endpoints."""

    def test_get_log_entries(self, client: FlaskClient, log_service: LogService) -> None:
        """Test querying entries with filters."""
        log_service.info("app", "app_started", "Started")
        log_service.error("upload", "file_upload_failed", "Failed")

        response = client.get("/api/logs/entries?level=ERROR")
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data["total"] == 1
        assert data["entries"][0]["event"] == "file_upload_failed"

    def test_get_log_entries_bad_pagination(self, client: FlaskClient, log_service: LogService) -> None:
        """Test that non-numeric pagination falls back to defaults."""
        log_service.info("app", "test", "Test")

        data = json.loads(client.get("/api/logs/entries?offset=x&limit=y").data)

        assert data["offset"] == 0
        assert data["limit"] == 100

    def test_get_log_files(self, client: FlaskClient, log_service: LogService) -> None:
        """Test listing log files."""
        log_service.info("app", "test", "Test")

        data = json.loads(client.get("/api/logs/files").data)
        assert len(data["files"]) == 1

    def test_logs_disabled(self, source: SourceSpec, store: FakeStore) -> None:
        """Test that log endpoints return 404 without an event log."""
        service = build_service([source], store, log=None)
        client = create_app(service).test_client()

        for url in ("/api/logs/entries", "/api/logs/files"):
            response = client.get(url)
            assert response.status_code == 404
            assert json.loads(response.data)["error"] == "Event log is disabled"

        service.shutdown(wait=True)
