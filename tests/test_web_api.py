"""Tests for the HTTP API around the headless runner."""
from __future__ import annotations

from pathlib import Path

import pytest

from app import create_app
from config import Config, load_config
from runner.capture import PersistedCapture
from runner.reporting import HeadlessRunResult
from runner.tile_snapshot import TileSnapshotError
from services import decorators
import web.routes as routes

API_HEADERS = {"X-API-Key": "secret"}


@pytest.fixture()
def games_root(tmp_path) -> Path:
    (tmp_path / "v1").mkdir()
    return tmp_path


@pytest.fixture()
def client(games_root):
    decorators._rate_limiter.reset()
    app = create_app(Config(games_root=games_root, api_keys=["secret"]))
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_validate_returns_normalized_steps(client):
    response = client.post(
        "/api/headless/validate",
        json={"steps": [{"run": 3}, {"input": {"action": "down", "pointerId": 1, "x": 0.5, "y": 0.5}}]},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["ok"] is True
    assert body["steps"][1]["input"]["emit"] == "both"
    assert body["totals"] == {"frames": 3, "inputs": 1, "snaps": 0}


def test_validate_reports_errors(client):
    response = client.post("/api/headless/validate", json={"steps": [{"run": 119}, {"run": 2}]})
    assert response.status_code == 400
    assert response.get_json() == {
        "error": "steps[1] exceeds frame limit 120 (total requested: 121)",
        "path": "steps[1].run",
    }


def test_validate_requires_json_body(client):
    response = client.post("/api/headless/validate", data="nope", content_type="text/plain")
    assert response.status_code == 400


def test_oversized_request_is_rejected(games_root):
    decorators._rate_limiter.reset()
    app = create_app(Config(games_root=games_root, request_size_limit=16))
    response = app.test_client().post(
        "/api/headless/validate", json={"steps": [{"run": 1}, {"run": 2}]}
    )
    assert response.status_code == 413


def test_validate_is_rate_limited(games_root):
    decorators._rate_limiter.reset()
    app = create_app(Config(games_root=games_root, rate_limit_requests=1))
    client = app.test_client()
    assert client.post("/api/headless/validate", json={"steps": [{"run": 1}]}).status_code == 200
    assert client.post("/api/headless/validate", json={"steps": [{"run": 1}]}).status_code == 429


def test_run_requires_api_key(client):
    response = client.post("/api/games/v1/headless", json={"steps": [{"run": 1}]})
    assert response.status_code == 401


def test_run_unknown_game(client):
    response = client.post("/api/games/missing/headless", json={"steps": [{"run": 1}]}, headers=API_HEADERS)
    assert response.status_code == 404


def test_run_rejects_bad_version_id(client):
    response = client.post("/api/games/..bad/headless", json={"steps": [{"run": 1}]}, headers=API_HEADERS)
    assert response.status_code == 400


def test_run_returns_result_payload(client, games_root, monkeypatch):
    seen = {}

    async def fake_run(script, *, config, game_version_id=None):
        seen.update(script=script, config=config, game_version_id=game_version_id)
        return HeadlessRunResult(
            ok=True,
            frame_count=1,
            captures=[
                PersistedCapture(label="a", frame=1, path=games_root / "a.png", width=1, height=1)
            ],
            diagnostics=["Executed 2 steps"],
        )

    monkeypatch.setattr(routes, "run_headless", fake_run)
    response = client.post(
        "/api/games/v1/headless",
        json={"steps": [{"run": 1}, {"snap": "a"}]},
        headers=API_HEADERS,
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["ok"] is True
    assert body["frameCount"] == 1
    assert body["captures"][0]["label"] == "a"
    assert seen["game_version_id"] == "v1"
    assert seen["config"].game_root == (games_root / "v1").resolve()


def test_run_failure_is_unprocessable(client, monkeypatch):
    async def fake_run(script, *, config, game_version_id=None):
        return HeadlessRunResult.failed("steps must be an array")

    monkeypatch.setattr(routes, "run_headless", fake_run)
    response = client.post("/api/games/v1/headless", json={"steps": 1}, headers=API_HEADERS)

    assert response.status_code == 422
    assert response.get_json()["diagnostics"] == ["steps must be an array"]


def test_tile_snapshot_returns_public_path(client, games_root, monkeypatch):
    calls = []

    async def fake_capture(game_directory):
        calls.append(game_directory)
        return game_directory / "snapshots" / "tile.png"

    monkeypatch.setattr(routes, "capture_tile_snapshot", fake_capture)
    response = client.post("/api/games/v1/tile-snapshot", headers=API_HEADERS)

    assert response.status_code == 200
    assert response.get_json() == {"tileSnapshotPath": "/games/v1/snapshots/tile.png"}
    assert calls == [games_root / "v1"]


def test_tile_snapshot_failure(client, monkeypatch):
    async def fake_capture(game_directory):
        raise TileSnapshotError("Headless snapshot run did not produce a capture")

    monkeypatch.setattr(routes, "capture_tile_snapshot", fake_capture)
    response = client.post("/api/games/v1/tile-snapshot", headers=API_HEADERS)

    assert response.status_code == 422
    assert "did not produce a capture" in response.get_json()["error"]


def test_load_config_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("GAMES_ROOT", str(tmp_path))
    monkeypatch.setenv("X_API_KEYS", '["a", "b", "a"]')
    monkeypatch.setenv("RATE_LIMIT_REQUESTS", "not-a-number")
    monkeypatch.setenv("REQUEST_MAX_BYTES", "2048")

    config = load_config()

    assert config.games_root == tmp_path.resolve()
    assert config.api_keys == ["a", "b"]
    assert config.rate_limit_requests == 20
    assert config.request_size_limit == 2048


def test_load_config_comma_separated_keys(monkeypatch):
    monkeypatch.setenv("X_API_KEYS", " one, two ,,one ")
    assert load_config().api_keys == ["one", "two"]


def test_run_uses_headless_environment_settings(client, games_root, monkeypatch):
    harness = games_root / "shared" / "headless-harness.js"
    monkeypatch.setenv("HEADLESS_BROWSER_TIMEOUT_MS", "1234")
    monkeypatch.setenv("HEADLESS_HARNESS_PATH", str(harness))
    monkeypatch.setenv("HEADLESS_OUTPUT_DIR", str(games_root / "runs"))
    seen = {}

    async def fake_run(script, *, config, game_version_id=None):
        seen["config"] = config
        return HeadlessRunResult(ok=True, frame_count=1)

    monkeypatch.setattr(routes, "run_headless", fake_run)
    response = client.post("/api/games/v1/headless", json={"steps": [{"run": 1}]}, headers=API_HEADERS)

    assert response.status_code == 200
    config = seen["config"]
    assert config.browser_timeout_ms == 1234
    assert config.harness_path == harness.resolve()
    assert config.output_root == (games_root / "runs").resolve()
    assert config.game_root == (games_root / "v1").resolve()
