"""
HTTP API tests (FastAPI TestClient, watcher and GitHub client mocked).
"""
import os
import logging

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from main import app
from web2apk.core.config import DOWNLOADS_DIR
from web2apk.core.errors import NoRunFound, PayloadNotFound, ProviderQueryFailed
from web2apk.models.build_run import BuildRun
from web2apk.models.watch_report import WatchReport

client = TestClient(app)


@pytest.fixture
def mock_watcher():
    with patch("web2apk.api.watch.BuildWatcher") as watcher_cls:
        instance = watcher_cls.return_value
        instance.watch_latest = AsyncMock()
        yield watcher_cls


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_watch_success(mock_watcher):
    mock_watcher.return_value.watch_latest.return_value = WatchReport(
        repository="octo/site", run_id=42, state="succeeded", attempts=4,
        payload_path="/tmp/downloads/app-debug.apk", summary="Build succeeded",
    )
    response = client.post("/api/watch", json={"repository": "https://github.com/octo/site.git"})

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "succeeded"
    assert data["attempts"] == 4
    args = mock_watcher.return_value.watch_latest.call_args
    assert args.args[0] == "octo/site"


def test_watch_caps_max_attempts(mock_watcher):
    mock_watcher.return_value.watch_latest.return_value = WatchReport(
        repository="octo/site", run_id=42, state="timed_out",
    )
    response = client.post("/api/watch", json={"repository": "octo/site", "max_attempts": 5000})
    assert response.status_code == 200
    assert mock_watcher.call_args.kwargs["max_attempts"] == 180


def test_watch_rejects_bad_repository(mock_watcher):
    response = client.post("/api/watch", json={"repository": "not a repo"})
    assert response.status_code == 422
    mock_watcher.assert_not_called()


def test_watch_no_run(mock_watcher):
    mock_watcher.return_value.watch_latest.side_effect = NoRunFound("octo/site")
    response = client.post("/api/watch", json={"repository": "octo/site"})
    assert response.status_code == 404


def test_watch_payload_missing(mock_watcher):
    mock_watcher.return_value.watch_latest.side_effect = PayloadNotFound(42, "downloads", ".apk")
    response = client.post("/api/watch", json={"repository": "octo/site"})
    assert response.status_code == 422
    assert ".apk" in response.json()["detail"]


def test_watch_provider_failure(mock_watcher):
    err = ProviderQueryFailed("GitHub API returned HTTP 503", status_code=503)
    mock_watcher.return_value.watch_latest.side_effect = err.attach_context(42, 7, 70.0, "queued")
    response = client.post("/api/watch", json={"repository": "octo/site"})
    assert response.status_code == 502
    assert "run #42" in response.json()["detail"]


def test_latest_run():
    with patch("web2apk.api.watch.GitHubActionsClient") as client_cls:
        client_cls.return_value.latest_run = AsyncMock(
            return_value=BuildRun(run_id=42, status="queued")
        )
        response = client.get("/api/runs/latest", params={"repository": "octo/site"})
    assert response.status_code == 200
    assert response.json()["run_id"] == 42


def test_latest_run_bad_repository():
    response = client.get("/api/runs/latest", params={"repository": "???"})
    assert response.status_code == 400


def test_watch_cap_is_logged(mock_watcher, caplog):
    mock_watcher.return_value.watch_latest.return_value = WatchReport(
        repository="octo/site", run_id=42, state="timed_out", max_attempts=180,
    )
    with caplog.at_level(logging.WARNING, logger="web2apk.api.watch"):
        response = client.post("/api/watch", json={"repository": "octo/site", "max_attempts": 5000})
    assert response.status_code == 200
    assert response.json()["max_attempts"] == 180
    assert "lowered to 180" in caplog.text


def test_watch_default_destination_is_downloads(mock_watcher):
    mock_watcher.return_value.watch_latest.return_value = WatchReport(
        repository="octo/site", run_id=42, state="failed",
    )
    client.post("/api/watch", json={"repository": "octo/site"})
    destination = mock_watcher.return_value.watch_latest.call_args.args[1]
    assert destination == os.path.abspath(DOWNLOADS_DIR)


def test_watch_destination_subfolder(mock_watcher):
    mock_watcher.return_value.watch_latest.return_value = WatchReport(
        repository="octo/site", run_id=42, state="failed",
    )
    client.post("/api/watch", json={"repository": "octo/site", "destination_dir": "nightly"})
    destination = mock_watcher.return_value.watch_latest.call_args.args[1]
    assert destination == os.path.join(os.path.abspath(DOWNLOADS_DIR), "nightly")


@pytest.mark.parametrize("destination", ["../outside", "nightly/../../etc", "/tmp/anywhere"])
def test_watch_rejects_destination_outside_downloads(mock_watcher, destination):
    response = client.post(
        "/api/watch", json={"repository": "octo/site", "destination_dir": destination}
    )
    assert response.status_code == 422
    mock_watcher.assert_not_called()
