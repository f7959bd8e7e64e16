"""Runtime configuration for the headless web service."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent
LOGGER = logging.getLogger(__name__)

_DEFAULT_GAMES_ROOT = BASE_DIR / "games"


@dataclass
class Config:
    games_root: Path = field(default_factory=lambda: _DEFAULT_GAMES_ROOT)
    request_size_limit: int = 64 * 1024  # scripts are small; 64KB by default
    rate_limit_requests: int = 20
    rate_limit_window: int = 60
    api_keys: List[str] = field(default_factory=list)


def _parse_api_keys(raw_value: str | None) -> List[str]:
    if not raw_value:
        return []
    candidate = raw_value.strip()
    if not candidate:
        return []
    keys: List[str] = []
    if candidate.startswith("["):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            LOGGER.warning("Invalid JSON provided for X_API_KEYS; ignoring value")
            return []
        if isinstance(parsed, list):
            keys = [str(item).strip() for item in parsed if str(item).strip()]
        else:
            LOGGER.warning("X_API_KEYS JSON payload must be a list; got %s", type(parsed).__name__)
    else:
        keys = [piece for piece in (part.strip() for part in candidate.split(",")) if piece]
    deduped = list(dict.fromkeys(keys))
    LOGGER.info("API key slots configured: %d", len(deduped))
    return deduped


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Invalid value '%s' for %s; using %s", raw, name, default)
        return default


def _games_root_from_env() -> Path:
    raw = os.getenv("GAMES_ROOT")
    if not raw or not raw.strip():
        return _DEFAULT_GAMES_ROOT
    return Path(raw.strip()).expanduser().resolve()


def load_config() -> Config:
    """Read environment variables into a Config object."""
    return Config(
        games_root=_games_root_from_env(),
        request_size_limit=_int_from_env("REQUEST_MAX_BYTES", Config.request_size_limit),
        rate_limit_requests=_int_from_env("RATE_LIMIT_REQUESTS", Config.rate_limit_requests),
        rate_limit_window=_int_from_env("RATE_LIMIT_WINDOW", Config.rate_limit_window),
        api_keys=_parse_api_keys(os.getenv("X_API_KEYS")),
    )
