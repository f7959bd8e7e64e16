"""Artifact helpers for persisting headless captures."""
from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

from PIL import Image, UnidentifiedImageError

from core.executor import Capture

LOGGER = logging.getLogger(__name__)

PNG_DATA_URL_PREFIX = "data:image/png;base64,"
MAX_CAPTURE_PNG_BYTES = 3 * 1024 * 1024
NON_PNG_CAPTURE_MESSAGE = "Snapshot capture returned a non-PNG data URL"
_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE = re.compile(r"\s+")


class CaptureDecodeError(ValueError):
    """Raised when a capture payload is not a decodable PNG data URL."""


@dataclass(frozen=True)
class PersistedCapture:
    label: str
    frame: int
    path: Path
    width: int
    height: int

    def to_payload(self) -> dict:
        return {
            "label": self.label,
            "frame": self.frame,
            "path": str(self.path),
            "width": self.width,
            "height": self.height,
        }


def create_snapshot_run_directory(root: Path) -> Path:
    """Create ``root/<timestamp>`` for a single run."""
    resolved_root = root.resolve()
    run_directory = resolved_root / _timestamp_directory_name()
    run_directory.mkdir(parents=True, exist_ok=True)
    return run_directory


def _timestamp_directory_name() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def is_png_data_url(value: object) -> bool:
    return isinstance(value, str) and value.strip().startswith(PNG_DATA_URL_PREFIX)


def decode_png_data_url(data_url: str, *, max_bytes: int = MAX_CAPTURE_PNG_BYTES) -> bytes:
    """Strictly decode a PNG data URL and confirm the bytes are a PNG image."""
    if not is_png_data_url(data_url):
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE)

    encoded = _WHITESPACE.sub("", data_url.strip()[len(PNG_DATA_URL_PREFIX):])
    if not encoded or len(encoded) % 4 != 0 or not _BASE64_PATTERN.match(encoded):
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE)

    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE) from exc
    if not decoded:
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE)
    if len(decoded) > max_bytes:
        raise CaptureDecodeError(
            f"Snapshot capture exceeds {max_bytes} bytes ({len(decoded)} bytes)"
        )
    # Non-canonical padding bits decode silently; reject them.
    if base64.b64encode(decoded).decode("ascii").rstrip("=") != encoded.rstrip("="):
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE)

    _verify_png(decoded)
    return decoded


def _verify_png(data: bytes) -> None:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE) from exc
    if image_format != "PNG":
        raise CaptureDecodeError(NON_PNG_CAPTURE_MESSAGE)


def png_dimensions(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as image:
        return image.size


def sanitize_label(label: str) -> str:
    normalized = re.sub(r"[^a-z0-9_-]+", "-", label.strip().lower())
    normalized = re.sub(r"-+", "-", normalized)
    normalized = re.sub(r"^[-_]+|[-_]+$", "", normalized)
    return normalized or "snap"


def persist_captures(captures: Iterable[Capture], directory: Path) -> List[PersistedCapture]:
    """Decode each capture and write it as ``NN-<label>.png`` in order."""
    persisted: List[PersistedCapture] = []
    for index, capture in enumerate(captures, start=1):
        png_bytes = decode_png_data_url(capture.image)
        filename = f"{index:02d}-{sanitize_label(capture.label)}.png"
        output_path = directory / filename
        output_path.write_bytes(png_bytes)
        width, height = png_dimensions(png_bytes)
        LOGGER.debug("Persisted capture %s (%sx%s) to %s", capture.label, width, height, output_path)
        persisted.append(
            PersistedCapture(
                label=capture.label,
                frame=capture.frame,
                path=output_path,
                width=width,
                height=height,
            )
        )
    return persisted
