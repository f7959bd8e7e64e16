"""Tests for capture decoding and persistence."""
from __future__ import annotations

import base64
import re

import pytest

from core.executor import Capture
from runner.capture import (
    NON_PNG_CAPTURE_MESSAGE,
    CaptureDecodeError,
    create_snapshot_run_directory,
    decode_png_data_url,
    is_png_data_url,
    persist_captures,
    sanitize_label,
)

from conftest import make_png_data_url


def test_decode_returns_png_bytes(png_data_url) -> None:
    data = decode_png_data_url(png_data_url)
    assert data.startswith(b"\x89PNG\r\n\x1a\n")


@pytest.mark.parametrize(
    "value",
    [
        "data:image/jpeg;base64,AAAA",
        "data:image/png;base64,",
        "data:image/png;base64,abc",
        "data:image/png;base64,ab$d",
        "data:image/png;base64," + base64.b64encode(b"not an image").decode("ascii"),
    ],
)
def test_decode_rejects_invalid_payloads(value) -> None:
    with pytest.raises(CaptureDecodeError) as excinfo:
        decode_png_data_url(value)
    assert str(excinfo.value) == NON_PNG_CAPTURE_MESSAGE


def test_decode_rejects_non_canonical_padding() -> None:
    # "AB==" and "AA==" both decode to b"\x00"; only the canonical form is allowed.
    with pytest.raises(CaptureDecodeError):
        decode_png_data_url("data:image/png;base64,AB==")


def test_decode_enforces_size_cap(png_data_url) -> None:
    with pytest.raises(CaptureDecodeError, match="exceeds 10 bytes"):
        decode_png_data_url(png_data_url, max_bytes=10)


def test_is_png_data_url() -> None:
    assert is_png_data_url("data:image/png;base64,AAAA")
    assert not is_png_data_url(b"data:image/png;base64,AAAA")
    assert not is_png_data_url("image/png")


@pytest.mark.parametrize(
    "label, expected",
    [
        ("After Input", "after-input"),
        ("  Tile!!  ", "tile"),
        ("a__b--c", "a__b-c"),
        ("---", "snap"),
        ("Ünïcode", "n-code"),
    ],
)
def test_sanitize_label(label, expected) -> None:
    assert sanitize_label(label) == expected


def test_persist_captures_writes_numbered_files(tmp_path) -> None:
    captures = [
        Capture(label="First Shot", frame=5, image=make_png_data_url(4, 6)),
        Capture(label="second", frame=9, image=make_png_data_url(8, 2)),
    ]

    persisted = persist_captures(captures, tmp_path)

    assert [item.path.name for item in persisted] == ["01-first-shot.png", "02-second.png"]
    assert (persisted[0].width, persisted[0].height) == (4, 6)
    assert (persisted[1].width, persisted[1].height) == (8, 2)
    assert persisted[0].label == "First Shot"
    assert persisted[1].frame == 9
    assert all(item.path.exists() for item in persisted)
    assert persisted[0].to_payload()["path"] == str(tmp_path / "01-first-shot.png")


def test_persist_captures_rejects_bad_image(tmp_path) -> None:
    with pytest.raises(CaptureDecodeError):
        persist_captures([Capture(label="x", frame=1, image="nope")], tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_run_directory_uses_timestamp_name(tmp_path) -> None:
    directory = create_snapshot_run_directory(tmp_path / "snapshots")
    assert directory.is_dir()
    assert directory.parent == (tmp_path / "snapshots").resolve()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z", directory.name)
