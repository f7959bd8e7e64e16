"""HTTP routes for validating and running headless scripts."""
from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Dict
from urllib.parse import quote

from flask import Blueprint, current_app, request

from core.protocol import parse_protocol, protocol_to_payload, protocol_totals
from runner.config import load_runner_config
from runner.run_headless import run_headless
from runner.tile_snapshot import TileSnapshotError, capture_tile_snapshot
from services.decorators import json_endpoint, rate_limit, require_api_key

LOGGER = logging.getLogger(__name__)

bp = Blueprint("main", __name__)

_VERSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")


@bp.before_app_request
def _enforce_limits():
    max_size = current_app.config.get("REQUEST_SIZE_LIMIT")
    if max_size and request.content_length and request.content_length > max_size:
        return ("Request too large", 413)
    return None


def _request_script() -> Any:
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValueError("Request body must be a JSON script")
    return payload


def _resolve_game_directory(version_id: str) -> Path:
    if not _VERSION_ID_PATTERN.match(version_id):
        raise ValueError("Invalid game version id")
    games_root = Path(current_app.config["GAMES_ROOT"])
    game_directory = games_root / version_id
    if not game_directory.is_dir():
        raise LookupError(version_id)
    return game_directory


@bp.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@bp.post("/api/headless/validate")
@rate_limit()
@json_endpoint
def api_validate_script() -> Dict[str, Any]:
    protocol = parse_protocol(_request_script())
    totals = protocol_totals(protocol)
    return {
        "ok": True,
        "steps": protocol_to_payload(protocol)["steps"],
        "totals": {
            "frames": totals.frames,
            "inputs": totals.inputs,
            "snaps": totals.snaps,
        },
    }


@bp.post("/api/games/<version_id>/headless")
@require_api_key
@rate_limit(limit=5, window_seconds=60)
@json_endpoint
def api_run_script(version_id: str):
    try:
        game_directory = _resolve_game_directory(version_id)
    except LookupError:
        return {"error": "Game not found"}, 404
    script = _request_script()
    config = load_runner_config(game_root=game_directory)
    result = asyncio.run(
        run_headless(script, config=config, game_version_id=version_id)
    )
    LOGGER.info("Headless run for %s finished (ok=%s)", version_id, result.ok)
    return result.to_payload(), 200 if result.ok else 422


@bp.post("/api/games/<version_id>/tile-snapshot")
@require_api_key
@rate_limit(limit=5, window_seconds=60)
@json_endpoint
def api_tile_snapshot(version_id: str):
    try:
        game_directory = _resolve_game_directory(version_id)
    except LookupError:
        return {"error": "Game not found"}, 404
    try:
        asyncio.run(capture_tile_snapshot(game_directory))
    except TileSnapshotError as exc:
        LOGGER.warning("Tile snapshot for %s failed: %s", version_id, exc)
        return {"error": str(exc)}, 422
    return {
        "tileSnapshotPath": f"/games/{quote(version_id)}/snapshots/tile.png",
    }, 200
