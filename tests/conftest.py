"""Shared fixtures for headless runner tests."""
from __future__ import annotations

import base64
import io
from contextlib import asynccontextmanager
from typing import Any, List, Tuple

import pytest
from PIL import Image

from core.driver import DriverCapture, SyntheticInputEvent


def make_png_data_url(width: int = 4, height: int = 6, color=(255, 0, 0)) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


class FakeDriver:
    """In-memory driver that advances its own frame counter."""

    def __init__(self, image: Any = "data:image/png;base64,AA==") -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.frame_count = 0
        self.image = image
        self.fail_on: str | None = None

    def _maybe_fail(self, name: str) -> None:
        if self.fail_on == name:
            from core.driver import DriverError

            raise DriverError(f"{name} exploded")

    async def run_frames(self, frame_count: int) -> None:
        self.calls.append(("run", frame_count))
        self._maybe_fail("run_frames")
        self.frame_count += frame_count

    async def apply_input(self, event: SyntheticInputEvent) -> None:
        self.calls.append(("input", event))
        self._maybe_fail("apply_input")

    async def capture_snapshot(self) -> DriverCapture:
        self.calls.append(("snap", None))
        self._maybe_fail("capture_snapshot")
        return DriverCapture(frame=self.frame_count, image=self.image)

    async def read_frame_count(self) -> int:
        self._maybe_fail("read_frame_count")
        return self.frame_count


@pytest.fixture()
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture()
def png_data_url() -> str:
    return make_png_data_url()


@pytest.fixture()
def fake_host(png_data_url):
    """Host factory that yields a FakeDriver producing real PNG captures."""

    driver = FakeDriver(image=png_data_url)
    opened: List[Any] = []

    @asynccontextmanager
    async def factory(config):
        opened.append(config)
        yield driver

    factory.driver = driver  # type: ignore[attr-defined]
    factory.opened = opened  # type: ignore[attr-defined]
    return factory
