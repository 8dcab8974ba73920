# tests/test_http_app.py
"""
Tests for tokrelay/transport/http_app.py endpoints.

The lifespan is not entered (no database, no gateways); app.state is
filled with mocks instead.
"""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tokrelay.infra.health_checks_async import HealthStatus
from tokrelay.infra.pg_mapping_repo_async import DestinationMapping
from tokrelay.infra.pg_queue_repo_async import QueueJob
from tokrelay.infra.queue_processor import SchedulerState
from tokrelay.transport import http_app

TOKEN = "aB3cD5eF7gH9iJ1kL3mN5oP7qR9sT1uX"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def client():
    app = http_app.app

    processor = MagicMock()
    processor.state = SchedulerState.IDLE
    processor.drain_now = AsyncMock(return_value=2)

    now = datetime.now(timezone.utc)
    queue_repo = AsyncMock()
    queue_repo.count_by_status = AsyncMock(return_value={"pending": 1, "done": 4})
    queue_repo.get_recent = AsyncMock(return_value=[
        QueueJob(
            id=5,
            payload={"username": "jane_doe", "url": "https://www.tiktok.com/@jane_doe/live"},
            status="pending",
            attempts=1,
            created_at=now,
            updated_at=now,
        ),
    ])

    runtime_config = AsyncMock()
    runtime_config.snapshot = AsyncMock(return_value={"DOWNLOAD_ENGINE": "ytdlp", "AUTO_DOWNLOAD": "true"})

    downloader = MagicMock()
    downloader.engine_names.return_value = ["tikwm", "ytdlp"]
    downloader.is_valid_spec.side_effect = lambda spec: spec.split(":")[0] in ("tikwm", "ytdlp")

    app.state.processor = processor
    app.state.queue_repo = queue_repo
    app.state.runtime_config = runtime_config
    app.state.downloader = downloader

    with patch("tokrelay.transport.security.settings") as mock_settings:
        mock_settings.admin_token = TOKEN
        yield TestClient(app)


class TestPublicEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_ready(self, client):
        with patch.object(http_app, "check_database",
                          AsyncMock(return_value={"status": HealthStatus.HEALTHY})):
            response = client.get("/ready")
        assert response.status_code == 200

    def test_not_ready(self, client):
        with patch.object(http_app, "check_database",
                          AsyncMock(return_value={"status": HealthStatus.UNHEALTHY})):
            response = client.get("/ready")
        assert response.status_code == 503


class TestAdminEndpoints:
    def test_requires_auth(self, client):
        assert client.post("/admin/queue/drain").status_code == 401

    def test_drain(self, client):
        response = client.post("/admin/queue/drain", headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"processed": 2, "skipped": False}

    def test_jobs(self, client):
        response = client.get("/admin/jobs", headers=AUTH)
        body = response.json()
        assert response.status_code == 200
        assert body["counts"] == {"pending": 1, "done": 4}
        assert body["recent"][0]["username"] == "jane_doe"
        assert body["scheduler"] == "idle"

    def test_jobs_unknown_status(self, client):
        response = client.get("/admin/jobs?status=lost", headers=AUTH)
        assert response.status_code == 400

    def test_get_config(self, client):
        body = client.get("/admin/config", headers=AUTH).json()
        assert body["config"]["DOWNLOAD_ENGINE"] == "ytdlp"
        assert body["engines"] == ["tikwm", "ytdlp"]

    def test_set_engine(self, client):
        response = client.put("/admin/config/download_engine", json={"value": "tikwm:hd"}, headers=AUTH)
        assert response.status_code == 200
        client.app.state.runtime_config.set.assert_awaited_once_with("DOWNLOAD_ENGINE", "tikwm:hd")

    def test_set_unknown_engine(self, client):
        response = client.put("/admin/config/DOWNLOAD_ENGINE", json={"value": "instaloader"}, headers=AUTH)
        assert response.status_code == 400

    def test_set_auto_download_normalized(self, client):
        response = client.put("/admin/config/AUTO_DOWNLOAD", json={"value": "off"}, headers=AUTH)
        assert response.json() == {"key": "AUTO_DOWNLOAD", "value": "false"}

    def test_unknown_key(self, client):
        response = client.put("/admin/config/OTHER", json={"value": "1"}, headers=AUTH)
        assert response.status_code == 404


class TestMappingEndpoints:
    def test_list(self, client):
        client.app.state.mappings = AsyncMock()
        client.app.state.mappings.list_all = AsyncMock(return_value=[
            DestinationMapping(username="jane_doe", channel_id="123", telegram_topic_id="55"),
        ])

        body = client.get("/admin/mappings", headers=AUTH).json()

        assert body["mappings"][0]["channel_id"] == "123"
        assert body["mappings"][0]["telegram_topic_id"] == "55"

    def test_delete(self, client):
        client.app.state.mappings = AsyncMock()
        client.app.state.mappings.delete = AsyncMock(return_value=True)

        response = client.delete("/admin/mappings/jane_doe", headers=AUTH)

        assert response.status_code == 200
        client.app.state.mappings.delete.assert_awaited_once_with("jane_doe")

    def test_delete_missing(self, client):
        client.app.state.mappings = AsyncMock()
        client.app.state.mappings.delete = AsyncMock(return_value=False)

        assert client.delete("/admin/mappings/nobody", headers=AUTH).status_code == 404
