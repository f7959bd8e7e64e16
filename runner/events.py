"""Event logging helpers for headless runs."""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

from core.driver import DriverCapture, DriverError, ScriptDriver, SyntheticInputEvent


class EventLogger:
    """Thread-safe logger that writes run events for reporting."""

    def __init__(self, log_path: Path):
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.log_path.exists():
            self.log_path.write_text("# Headless Runner Events\n", encoding="utf-8")
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}

    def log(self, event_type: str, message: str | None = None) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        line = f"{timestamp}\t{event_type}\t{message or ''}\n"
        with self._lock:
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(line)
            self._counts[event_type] = self._counts.get(event_type, 0) + 1

    def count(self, event_type: str) -> int:
        return self._counts.get(event_type, 0)

    def counts(self) -> Dict[str, int]:
        return dict(self._counts)


class EventLoggingDriver:
    """ScriptDriver wrapper that records every host call in the event log."""

    def __init__(self, driver: ScriptDriver, event_logger: EventLogger):
        self._driver = driver
        self._events = event_logger

    async def run_frames(self, frame_count: int) -> None:
        self._events.log("run_frames", str(frame_count))
        try:
            await self._driver.run_frames(frame_count)
        except DriverError as exc:
            self._events.log("driver_error", f"run_frames: {exc}")
            raise

    async def apply_input(self, event: SyntheticInputEvent) -> None:
        self._events.log(
            "apply_input",
            f"{event.action} pointer={event.pointer_id} "
            f"at=({event.client_x},{event.client_y}) source={event.source}",
        )
        try:
            await self._driver.apply_input(event)
        except DriverError as exc:
            self._events.log("driver_error", f"apply_input: {exc}")
            raise

    async def capture_snapshot(self) -> DriverCapture:
        try:
            capture = await self._driver.capture_snapshot()
        except DriverError as exc:
            self._events.log("driver_error", f"capture_snapshot: {exc}")
            raise
        self._events.log("capture_snapshot", f"frame={capture.frame}")
        return capture

    async def read_frame_count(self) -> int:
        try:
            frame_count = await self._driver.read_frame_count()
        except DriverError as exc:
            self._events.log("driver_error", f"read_frame_count: {exc}")
            raise
        self._events.log("read_frame_count", str(frame_count))
        return frame_count
