"""Sequential interpreter that replays a protocol against a ScriptDriver."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Tuple

from core.coordinates import to_client_position
from core.driver import ScriptDriver, SyntheticInputEvent
from core.protocol import (
    DEFAULT_VIEWPORT,
    MAX_RUN_SECONDS,
    HeadlessProtocol,
    InputStep,
    RunStep,
    Viewport,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class RuntimeBudgetExceeded(RuntimeError):
    """Raised when a run overruns its wall-clock budget."""

    def __init__(self, step_index: int, max_run_seconds: float, elapsed_ms: float):
        super().__init__(
            f"Headless run exceeded max runtime of {int(max_run_seconds)} seconds "
            f"at step {step_index}"
        )
        self.step_index = step_index
        self.max_run_seconds = max_run_seconds
        self.elapsed_ms = elapsed_ms


@dataclass(frozen=True)
class Capture:
    label: str
    frame: int
    image: Any


@dataclass(frozen=True)
class ExecutionResult:
    frame_count: int
    captures: Tuple[Capture, ...]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


def to_synthetic_input_event(step: InputStep, viewport: Viewport) -> SyntheticInputEvent:
    position = to_client_position(step, viewport)
    return SyntheticInputEvent(
        action=step.action,
        pointer_id=step.pointer_id,
        client_x=position.client_x,
        client_y=position.client_y,
        source=step.emit,
    )


async def execute_protocol(
    protocol: HeadlessProtocol,
    driver: ScriptDriver,
    *,
    clock: Clock | None = None,
    max_run_seconds: float = MAX_RUN_SECONDS,
    viewport: Viewport = DEFAULT_VIEWPORT,
) -> ExecutionResult:
    """Replay every step in order and return the host's frame count and captures.

    The budget is checked before each step and once after the last one, so a
    failure names the step that was about to start (or ``len(steps)`` when the
    overrun happened during the final step). Steps already applied stay
    applied; driver errors propagate unchanged.
    """

    now_ms = clock or monotonic_ms
    max_runtime_ms = max_run_seconds * 1000
    started_at_ms = now_ms()
    captures: List[Capture] = []

    for step_index, step in enumerate(protocol.steps):
        _enforce_runtime_limit(now_ms, started_at_ms, max_runtime_ms, max_run_seconds, step_index)

        if isinstance(step, RunStep):
            LOGGER.debug("Step %s: run %s frames", step_index, step.frames)
            await driver.run_frames(step.frames)
            continue

        if isinstance(step, InputStep):
            event = to_synthetic_input_event(step, viewport)
            LOGGER.debug(
                "Step %s: input %s pointer %s at (%s, %s) via %s",
                step_index,
                event.action,
                event.pointer_id,
                event.client_x,
                event.client_y,
                event.source,
            )
            await driver.apply_input(event)
            continue

        LOGGER.debug("Step %s: snap %s", step_index, step.label)
        capture = await driver.capture_snapshot()
        captures.append(Capture(label=step.label, frame=capture.frame, image=capture.image))

    _enforce_runtime_limit(
        now_ms, started_at_ms, max_runtime_ms, max_run_seconds, len(protocol.steps)
    )

    frame_count = await driver.read_frame_count()
    return ExecutionResult(frame_count=frame_count, captures=tuple(captures))


def _enforce_runtime_limit(
    now_ms: Clock,
    started_at_ms: float,
    max_runtime_ms: float,
    max_run_seconds: float,
    step_index: int,
) -> None:
    elapsed_ms = now_ms() - started_at_ms
    if elapsed_ms <= max_runtime_ms:
        return
    LOGGER.warning(
        "Runtime budget of %ss exceeded at step %s (elapsed %.0fms)",
        max_run_seconds,
        step_index,
        elapsed_ms,
    )
    raise RuntimeBudgetExceeded(step_index, max_run_seconds, elapsed_ms)
