"""Configuration helpers for the headless runner."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

LOGGER = logging.getLogger(__name__)

DEFAULT_HARNESS_RELATIVE_PATH = Path("dist") / "headless-harness.js"
DEFAULT_OUTPUT_DIRNAME = "snapshots"
DEFAULT_BROWSER_TIMEOUT_MS = 30_000
SWIFTSHADER_CHROMIUM_ARGS = (
    "--use-gl=angle",
    "--use-angle=swiftshader",
    "--enable-webgl",
    "--ignore-gpu-blocklist",
    "--enable-unsafe-swiftshader",
)


class RunnerConfigError(Exception):
    """Raised when runner configuration is invalid."""


@dataclass
class HeadlessRunnerConfig:
    game_root: Path
    harness_path: Path
    output_root: Path
    show_browser: bool = False
    debug: bool = False
    browser_timeout_ms: int = DEFAULT_BROWSER_TIMEOUT_MS
    browser_args: tuple[str, ...] = SWIFTSHADER_CHROMIUM_ARGS

    def read_harness_source(self) -> str:
        if not self.harness_path.is_file():
            raise RunnerConfigError(
                f"Headless harness bundle not found: {self.harness_path}"
            )
        return self.harness_path.read_text(encoding="utf-8")


def load_runner_config(
    env: Mapping[str, str] | None = None, *, game_root: Path | None = None
) -> HeadlessRunnerConfig:
    """Load environment variables into a HeadlessRunnerConfig."""
    env = os.environ if env is None else env

    root = game_root or _parse_directory(env.get("HEADLESS_GAME_ROOT"), "HEADLESS_GAME_ROOT")
    root = root.expanduser().resolve()
    harness_path = _optional_path(env.get("HEADLESS_HARNESS_PATH"))
    if harness_path is None:
        harness_path = root / DEFAULT_HARNESS_RELATIVE_PATH
        LOGGER.debug("HEADLESS_HARNESS_PATH not set; using %s", harness_path)
    output_root = _optional_path(env.get("HEADLESS_OUTPUT_DIR"))
    if output_root is None:
        output_root = root / DEFAULT_OUTPUT_DIRNAME
        LOGGER.debug("HEADLESS_OUTPUT_DIR not set; using %s", output_root)
    show_browser = _parse_optional_bool(env.get("HEADLESS_SHOW_BROWSER"), "HEADLESS_SHOW_BROWSER")
    debug = _parse_optional_bool(env.get("HEADLESS_DEBUG"), "HEADLESS_DEBUG")
    timeout_ms = _parse_positive_int(
        env.get("HEADLESS_BROWSER_TIMEOUT_MS"),
        DEFAULT_BROWSER_TIMEOUT_MS,
        "HEADLESS_BROWSER_TIMEOUT_MS",
    )

    return HeadlessRunnerConfig(
        game_root=root,
        harness_path=harness_path,
        output_root=output_root,
        show_browser=bool(show_browser),
        debug=bool(debug),
        browser_timeout_ms=timeout_ms,
    )


def _parse_directory(raw_value: str | None, env_name: str) -> Path:
    if raw_value is None or raw_value.strip() == "":
        return Path.cwd()
    candidate = Path(raw_value.strip()).expanduser().resolve()
    if not candidate.exists():
        raise RunnerConfigError(f"{env_name} path does not exist: {candidate}")
    if not candidate.is_dir():
        raise RunnerConfigError(f"{env_name} must point to a directory: {candidate}")
    return candidate


def _optional_path(raw_value: str | None) -> Path | None:
    if raw_value is None or raw_value.strip() == "":
        return None
    return Path(raw_value.strip()).expanduser().resolve()


def _parse_positive_int(raw_value: str | None, default: int, env_name: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise RunnerConfigError(f"{env_name} must be an integer") from exc
    if value <= 0:
        raise RunnerConfigError(f"{env_name} must be greater than zero")
    return value


def _parse_optional_bool(raw_value: str | None, env_name: str) -> bool | None:
    if raw_value is None or raw_value.strip() == "":
        return None
    normalized = raw_value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RunnerConfigError(f"{env_name} must be a boolean (0/1, true/false)")
