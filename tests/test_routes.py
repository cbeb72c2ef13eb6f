"""
Tests for the HTTP API using the Flask test client.
"""

import json
import os
from collections import namedtuple
from unittest.mock import patch

import pytest

from app.main import create_app
from config_manager import ConfigManager

DiskUsage = namedtuple("DiskUsage", "total used free")


@pytest.fixture
def app(tmp_path, fake_oc_mirror, configs_dir):
    config_file = tmp_path / "mirror_web_config.json"
    config_file.write_text(json.dumps({
        "paths": {
            "storage_dir": str(tmp_path / "data"),
            "catalog_data_dir": str(tmp_path / "catalog-data")
        },
        "mirror": {
            "executable": str(fake_oc_mirror),
            "oc_executable": str(fake_oc_mirror),
            "log_poll_interval": 0.05,
            "stop_grace_seconds": 2.0
        }
    }), encoding="utf-8")

    with patch.dict(os.environ, {}, clear=True):
        manager = ConfigManager(str(config_file))

    flask_app = create_app(manager)
    flask_app.config["TESTING"] = True
    yield flask_app
    flask_app.extensions["operations"]["service"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


def wait_for(app, operation_id, timeout=10):
    return app.extensions["operations"]["service"].wait(operation_id, timeout=timeout)


class TestHealth:
    """Test the health endpoint and generic error handling."""

    def test_health(self, client):
        response = client.get("/actuator/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "UP", "service": "oc-mirror-web"}

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.get_json()["code"] == "not_found"


class TestOperationRoutes:
    """Test the operation endpoints."""

    def test_start_requires_json_body(self, client):
        response = client.post("/api/operations/start", data="nope", content_type="text/plain")

        assert response.status_code == 400
        assert response.get_json()["code"] == "validation_error"

    def test_start_requires_config_file(self, client):
        response = client.post("/api/operations/start", json={"name": "x"})

        assert response.status_code == 400

    def test_start_rejects_traversal(self, client):
        response = client.post("/api/operations/start", json={"configFile": "../etc/passwd"})

        assert response.status_code == 400

    def test_start_unknown_config(self, client):
        response = client.post("/api/operations/start", json={"configFile": "missing.yaml"})

        assert response.status_code == 404
        assert response.get_json()["code"] == "not_found"

    def test_start_and_follow(self, app, client):
        response = client.post("/api/operations/start", json={"configFile": "ok.yaml", "name": "Test run"})

        assert response.status_code == 202
        body = response.get_json()
        assert body["message"] == "Operation started successfully"
        operation_id = body["operationId"]
        assert body["operation"]["status"] == "running"

        wait_for(app, operation_id)

        operation = client.get(f"/api/operations/{operation_id}").get_json()
        assert operation["status"] == "success"
        assert operation["name"] == "Test run"

        logs = client.get(f"/api/operations/{operation_id}/logs").get_json()["logs"]
        assert "mirror complete" in logs

        stream = client.get(f"/api/operations/{operation_id}/logstream")
        assert stream.mimetype == "text/event-stream"
        text = stream.get_data(as_text=True)
        assert "data: fake oc-mirror starting\n" in text
        assert "data: mirror complete\n" in text
        assert text.rstrip().endswith('data: {"status": "success", "error_message": null}')

        details = client.get(f"/api/operations/{operation_id}/details").get_json()
        assert details["available"] is False
        assert details["log_line_count"] == 2

    def test_failed_operation_reports_error(self, app, client):
        operation_id = client.post("/api/operations/start", json={"configFile": "fail.yaml"}).get_json()["operationId"]
        wait_for(app, operation_id)

        operation = client.get(f"/api/operations/{operation_id}").get_json()

        assert operation["status"] == "failed"
        assert operation["error_message"] == "exit code 3"

    def test_limit_stop_and_delete(self, app, client):
        operation_id = client.post("/api/operations/start", json={"configFile": "slow.yaml"}).get_json()["operationId"]

        rejected = client.post("/api/operations/start", json={"configFile": "ok.yaml"})
        assert rejected.status_code == 409
        assert rejected.get_json()["code"] == "operation_limit_reached"

        stopped = client.post(f"/api/operations/{operation_id}/stop")
        assert stopped.status_code == 200
        assert stopped.get_json()["operation"]["status"] == "stopped"

        running = client.get("/api/operations?status=running").get_json()
        assert running == []
        assert client.get("/api/stats").get_json()["stopped"] == 1

        deleted = client.delete(f"/api/operations/{operation_id}")
        assert deleted.status_code == 200
        assert client.get(f"/api/operations/{operation_id}").status_code == 404
        assert client.delete(f"/api/operations/{operation_id}").status_code == 200

    def test_unknown_operation(self, client):
        assert client.get("/api/operations/unknown-id").status_code == 404
        assert client.post("/api/operations/unknown-id/stop").status_code == 404
        assert client.get("/api/operations/unknown-id/logs").status_code == 404
        assert client.get("/api/operations/unknown-id/logstream").status_code == 404

    def test_invalid_operation_id(self, client):
        response = client.get("/api/operations/bad.id")

        assert response.status_code == 400

    def test_invalid_status_filter(self, client):
        response = client.get("/api/operations?status=paused")

        assert response.status_code == 400

    def test_history_recent_and_stats(self, app, client):
        for config in ("ok.yaml", "fail.yaml"):
            operation_id = client.post("/api/operations/start", json={"configFile": config}).get_json()["operationId"]
            wait_for(app, operation_id)

        history = client.get("/api/operations/history").get_json()
        recent = client.get("/api/operations/recent").get_json()
        stats = client.get("/api/stats").get_json()

        assert len(history) == len(recent) == 2
        assert stats == {"total": 2, "running": 0, "success": 1, "failed": 1, "stopped": 0}


class TestCatalogRoutes:
    """Test catalog endpoints with no pre-fetched data (static fallback)."""

    def test_catalogs(self, client):
        catalogs = client.get("/api/catalogs").get_json()

        assert [c["name"] for c in catalogs] == [
            "redhat-operator-index", "certified-operator-index", "community-operator-index"
        ]
        assert set(catalogs[0]) == {"name", "url", "description", "ocpVersion", "operatorCount"}

    def test_operators(self, client):
        all_operators = client.get("/api/operators").get_json()
        redhat = client.get("/api/operators?catalog=registry.redhat.io/redhat/redhat-operator-index").get_json()

        assert all_operators == sorted(all_operators)
        assert "odf-operator" in redhat
        assert set(redhat) <= set(all_operators)

    def test_operator_channels(self, client):
        channels = client.get("/api/operator-channels/odf-operator").get_json()
        unknown = client.get("/api/operator-channels/unheard-of?catalog=redhat-operator-index&version=4.18").get_json()

        assert channels[0] == {"name": "stable-4.15"}
        assert unknown == [{"name": "stable"}]

    def test_refresh_cache(self, client):
        response = client.post("/api/operators/refresh-cache")

        assert response.status_code == 200
        assert response.get_json() == {
            "message": "Operator cache refreshed successfully",
            "catalogs": 0,
            "operators": 0
        }


class TestSystemRoutes:
    """Test the system status, info and release channel endpoints."""

    def test_system_status(self, client):
        usage = DiskUsage(total=500 * 10**9, used=100 * 10**9, free=400 * 10**9)
        with patch("app.system.services.shutil.disk_usage", return_value=usage):
            response = client.get("/api/system/status")

        assert response.status_code == 200
        assert response.get_json() == {
            "ocMirrorVersion": "4.18.0",
            "ocVersion": "4.18.0",
            "systemHealth": "healthy"
        }

    def test_system_status_without_oc(self, app, client):
        app.extensions["system"]["service"].oc_executable = "/nonexistent/oc"

        data = client.get("/api/system/status").get_json()

        assert data["ocVersion"] == "Not available"
        assert data["systemHealth"] == "error"

    def test_system_info(self, client):
        usage = DiskUsage(total=500 * 10**9, used=100 * 10**9, free=400 * 10**9)
        with patch("app.system.services.shutil.disk_usage", return_value=usage), \
                patch("app.system.services.platform.machine", return_value="x86_64"):
            response = client.get("/api/system/info")

        assert response.status_code == 200
        assert response.get_json() == {
            "ocMirrorVersion": "4.18.0",
            "ocVersion": "4.18.0",
            "systemArchitecture": "x86_64",
            "availableDiskSpace": 400 * 10**9,
            "totalDiskSpace": 500 * 10**9
        }

    def test_release_channels(self, client):
        response = client.get("/api/channels")

        assert response.status_code == 200
        assert response.get_json() == [
            "stable-4.16", "stable-4.17", "stable-4.18", "stable-4.19", "stable-4.20"
        ]
