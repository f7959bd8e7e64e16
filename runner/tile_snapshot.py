"""Capture the homepage tile image for a game build."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable

from core.protocol import TILE_SNAPSHOT_SCRIPT
from runner.config import HeadlessRunnerConfig, load_runner_config
from runner.reporting import HeadlessRunResult
from runner.run_headless import run_headless

LOGGER = logging.getLogger(__name__)
TILE_FILENAME = "tile.png"

Runner = Callable[..., Awaitable[HeadlessRunResult]]


class TileSnapshotError(RuntimeError):
    """Raised when the tile script does not yield exactly one capture."""


async def capture_tile_snapshot(
    game_directory: Path,
    *,
    config: HeadlessRunnerConfig | None = None,
    runner: Runner = run_headless,
) -> Path:
    """Run the tile script and copy its capture to ``snapshots/tile.png``."""
    game_directory = game_directory.resolve()
    config = config or load_runner_config(game_root=game_directory)
    result = await runner(
        TILE_SNAPSHOT_SCRIPT,
        config=config,
        game_version_id=game_directory.name,
    )
    if not result.ok:
        raise TileSnapshotError(
            "Headless snapshot run failed: " + "; ".join(result.diagnostics)
        )
    if len(result.captures) != 1:
        raise TileSnapshotError("Headless snapshot run did not produce a capture")

    snapshots_directory = game_directory / "snapshots"
    snapshots_directory.mkdir(parents=True, exist_ok=True)
    target_path = snapshots_directory / TILE_FILENAME
    shutil.copyfile(result.captures[0].path, target_path)
    LOGGER.info("Tile snapshot written to %s", target_path)
    return target_path
