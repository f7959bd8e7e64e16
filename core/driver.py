"""Capability interface between the step executor and a live host."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Protocol, runtime_checkable


class DriverError(RuntimeError):
    """Raised when a host call fails or returns an unusable payload."""


@dataclass(frozen=True)
class SyntheticInputEvent:
    """One pointer event in client-space pixels.

    ``source`` carries the script's ``emit`` value unchanged, so ``both`` is
    delivered as a single event and the host decides how to fan it out.
    """

    action: str
    pointer_id: int
    client_x: float
    client_y: float
    source: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "pointerId": self.pointer_id,
            "clientX": self.client_x,
            "clientY": self.client_y,
            "source": self.source,
        }


@dataclass(frozen=True)
class DriverCapture:
    frame: int
    image: Any


@runtime_checkable
class ScriptDriver(Protocol):
    """Async operations a host must provide.

    Every call resolves only after its effects are applied on the host; the
    executor never issues two calls at once.
    """

    async def run_frames(self, frame_count: int) -> None: ...

    async def apply_input(self, event: SyntheticInputEvent) -> None: ...

    async def capture_snapshot(self) -> DriverCapture: ...

    async def read_frame_count(self) -> int: ...
