"""Headless script protocol: grammar, limits and validation.

A script is a JSON object holding a single ``steps`` array. Each step is one
of ``{"run": frames}``, ``{"input": {...}}`` or ``{"snap": label}``. Parsing
is all-or-nothing: the whole script is validated, including the cumulative
frame, input and snapshot budgets, before any host interaction happens.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, NoReturn, Tuple, Union

STARTER_HEADLESS_VIEWPORT_WIDTH = 360
STARTER_HEADLESS_VIEWPORT_HEIGHT = 640
STARTER_HEADLESS_VIEWPORT_DPR = 1

MAX_TOTAL_FRAMES = 120
MAX_SNAPSHOTS = 1
MAX_STEPS = 64
MAX_INPUT_EVENTS = 128
MAX_RUN_SECONDS = 20

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

InputAction = Literal["down", "move", "up", "cancel"]
InputSpace = Literal["norm01", "pixels"]
InputEmit = Literal["touch", "mouse", "both"]

INPUT_ACTIONS: Tuple[str, ...] = ("down", "move", "up", "cancel")
INPUT_SPACES: Tuple[str, ...] = ("norm01", "pixels")
INPUT_EMITS: Tuple[str, ...] = ("touch", "mouse", "both")
STEP_KINDS: Tuple[str, ...] = ("run", "input", "snap")

DEFAULT_INPUT_SPACE = "norm01"
DEFAULT_INPUT_EMIT = "both"

TILE_SNAPSHOT_SCRIPT: Dict[str, Any] = {"steps": [{"run": 120}, {"snap": "tile"}]}


class ValidationError(ValueError):
    """Raised when a script violates the protocol grammar or its limits."""

    def __init__(self, message: str, *, path: str = "", reason: str | None = None):
        super().__init__(message)
        self.path = path
        self.reason = reason or message


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int
    dpr: float = 1


@dataclass(frozen=True)
class Limits:
    max_frames: int = MAX_TOTAL_FRAMES
    max_snaps: int = MAX_SNAPSHOTS


DEFAULT_VIEWPORT = Viewport(
    width=STARTER_HEADLESS_VIEWPORT_WIDTH,
    height=STARTER_HEADLESS_VIEWPORT_HEIGHT,
    dpr=STARTER_HEADLESS_VIEWPORT_DPR,
)
DEFAULT_LIMITS = Limits()


@dataclass(frozen=True)
class RunStep:
    frames: int


@dataclass(frozen=True)
class InputStep:
    action: InputAction
    pointer_id: int
    x: float
    y: float
    space: InputSpace = DEFAULT_INPUT_SPACE
    emit: InputEmit = DEFAULT_INPUT_EMIT


@dataclass(frozen=True)
class SnapStep:
    label: str


Step = Union[RunStep, InputStep, SnapStep]


@dataclass(frozen=True)
class HeadlessProtocol:
    """Validated, immutable sequence of steps."""

    steps: Tuple[Step, ...]

    def __len__(self) -> int:
        return len(self.steps)


@dataclass
class ParserState:
    """Running totals for a single parse call."""

    total_frames: int = 0
    snap_count: int = 0
    input_count: int = 0


@dataclass(frozen=True)
class ProtocolTotals:
    frames: int
    inputs: int
    snaps: int


def parse_protocol(
    value: Any,
    *,
    viewport: Viewport = DEFAULT_VIEWPORT,
    limits: Limits = DEFAULT_LIMITS,
) -> HeadlessProtocol:
    """Validate a raw (parsed JSON) script and return a HeadlessProtocol."""

    root = _expect_mapping(value, "protocol", "Protocol must be a JSON object")
    _assert_only_supported_top_level_fields(root)
    steps = _parse_steps(root.get("steps"), viewport, limits)
    return HeadlessProtocol(steps=steps)


def create_smoke_protocol() -> HeadlessProtocol:
    """Built-in script: tap near the lower middle, run, capture once."""

    tap = {
        "pointerId": 1,
        "x": 0.52,
        "y": 0.63,
        "space": "norm01",
        "emit": "both",
    }
    return parse_protocol(
        {
            "steps": [
                {"run": 5},
                {"input": {"action": "down", **tap}},
                {"run": 15},
                {"input": {"action": "up", **tap}},
                {"run": 80},
                {"snap": "smoke"},
            ]
        }
    )


def protocol_to_payload(protocol: HeadlessProtocol) -> Dict[str, Any]:
    """Serialize a protocol back into its wire shape."""

    steps: List[Dict[str, Any]] = []
    for step in protocol.steps:
        if isinstance(step, RunStep):
            steps.append({"run": step.frames})
        elif isinstance(step, InputStep):
            steps.append(
                {
                    "input": {
                        "action": step.action,
                        "pointerId": step.pointer_id,
                        "x": step.x,
                        "y": step.y,
                        "space": step.space,
                        "emit": step.emit,
                    }
                }
            )
        else:
            steps.append({"snap": step.label})
    return {"steps": steps}


def protocol_totals(protocol: HeadlessProtocol) -> ProtocolTotals:
    frames = sum(step.frames for step in protocol.steps if isinstance(step, RunStep))
    inputs = sum(1 for step in protocol.steps if isinstance(step, InputStep))
    snaps = sum(1 for step in protocol.steps if isinstance(step, SnapStep))
    return ProtocolTotals(frames=frames, inputs=inputs, snaps=snaps)


def _assert_only_supported_top_level_fields(root: Mapping[str, Any]) -> None:
    for field_name in root:
        if field_name == "steps":
            continue
        raise ValidationError(
            f'Unsupported top-level field "{field_name}". Protocol only supports "steps".',
            path=str(field_name),
            reason="unsupported top-level field",
        )


def _parse_steps(value: Any, viewport: Viewport, limits: Limits) -> Tuple[Step, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValidationError("steps must be an array", path="steps", reason="must be an array")
    if len(value) == 0:
        raise ValidationError(
            "steps must contain at least one action",
            path="steps",
            reason="must contain at least one action",
        )
    if len(value) > MAX_STEPS:
        raise ValidationError(
            f"steps cannot exceed {MAX_STEPS}",
            path="steps",
            reason=f"cannot exceed {MAX_STEPS}",
        )

    state = ParserState()
    return tuple(
        _parse_step(raw_step, index, state, viewport, limits)
        for index, raw_step in enumerate(value)
    )


def _parse_step(
    value: Any,
    index: int,
    state: ParserState,
    viewport: Viewport,
    limits: Limits,
) -> Step:
    step_path = f"steps[{index}]"
    step = _expect_mapping(value, step_path, f"{step_path} must be an object")
    present = [kind for kind in STEP_KINDS if kind in step]
    if len(present) != 1:
        raise ValidationError(
            f"{step_path} must include exactly one of run, input, or snap",
            path=step_path,
            reason="must include exactly one of run, input, or snap",
        )

    kind = present[0]
    if kind == "run":
        frames = _expect_positive_integer(step["run"], f"{step_path}.run")
        state.total_frames += frames
        if state.total_frames > limits.max_frames:
            raise ValidationError(
                f"{step_path} exceeds frame limit {limits.max_frames} "
                f"(total requested: {state.total_frames})",
                path=f"{step_path}.run",
                reason="exceeds frame limit",
            )
        return RunStep(frames=frames)

    if kind == "input":
        state.input_count += 1
        if state.input_count > MAX_INPUT_EVENTS:
            raise ValidationError(
                f"input steps cannot exceed {MAX_INPUT_EVENTS}",
                path=f"{step_path}.input",
                reason="exceeds input event limit",
            )
        return _parse_input_step(step["input"], index, viewport)

    label = _expect_non_empty_label(step["snap"], f"{step_path}.snap")
    state.snap_count += 1
    if state.snap_count > limits.max_snaps:
        raise ValidationError(
            f"{step_path} exceeds snapshot limit {limits.max_snaps} "
            f"(requested: {state.snap_count})",
            path=f"{step_path}.snap",
            reason="exceeds snapshot limit",
        )
    return SnapStep(label=label)


def _apply_input_defaults(raw: Mapping[str, Any]) -> Dict[str, Any]:
    populated = dict(raw)
    if populated.get("space") is None:
        populated["space"] = DEFAULT_INPUT_SPACE
    if populated.get("emit") is None:
        populated["emit"] = DEFAULT_INPUT_EMIT
    return populated


def _parse_input_step(value: Any, step_index: int, viewport: Viewport) -> InputStep:
    base = f"steps[{step_index}].input"
    raw = _expect_mapping(value, base, f"{base} must be an object")
    populated = _apply_input_defaults(raw)

    action = _expect_choice(populated.get("action"), f"{base}.action", INPUT_ACTIONS)
    pointer_id = _expect_integer(populated.get("pointerId"), f"{base}.pointerId")
    if pointer_id < INT64_MIN or pointer_id > INT64_MAX:
        _fail(f"{base}.pointerId", "must fit in a signed 64-bit integer")
    x = _expect_finite_number(populated.get("x"), f"{base}.x")
    y = _expect_finite_number(populated.get("y"), f"{base}.y")
    space = _expect_choice(populated["space"], f"{base}.space", INPUT_SPACES)
    emit = _expect_choice(populated["emit"], f"{base}.emit", INPUT_EMITS)

    if space == "norm01":
        _expect_bounded(x, f"{base}.x", 0, 1)
        _expect_bounded(y, f"{base}.y", 0, 1)
    else:
        _expect_bounded(x, f"{base}.x", 0, viewport.width)
        _expect_bounded(y, f"{base}.y", 0, viewport.height)

    return InputStep(
        action=action,  # type: ignore[arg-type]
        pointer_id=pointer_id,
        x=x,
        y=y,
        space=space,  # type: ignore[arg-type]
        emit=emit,  # type: ignore[arg-type]
    )


def _fail(path: str, reason: str) -> NoReturn:
    raise ValidationError(f"{path} {reason}", path=path, reason=reason)


def _expect_mapping(value: Any, path: str, message: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(message, path=path, reason="must be an object")
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _expect_integer(value: Any, path: str) -> int:
    if not _is_number(value):
        _fail(path, "must be an integer")
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            _fail(path, "must be an integer")
        return int(value)
    return value


def _expect_positive_integer(value: Any, path: str) -> int:
    parsed = _expect_integer(value, path)
    if parsed <= 0:
        _fail(path, "must be greater than 0")
    return parsed


def _expect_finite_number(value: Any, path: str) -> float:
    if not _is_number(value) or (isinstance(value, float) and not math.isfinite(value)):
        _fail(path, "must be a finite number")
    return value


def _format_bound(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _expect_bounded(value: float, path: str, minimum: float, maximum: float) -> float:
    if value < minimum or value > maximum:
        _fail(path, f"must be between {_format_bound(minimum)} and {_format_bound(maximum)}")
    return value


def _expect_choice(value: Any, path: str, choices: Tuple[str, ...]) -> str:
    if isinstance(value, str) and value in choices:
        return value
    _fail(path, f"must be one of: {', '.join(choices)}")


def _expect_non_empty_label(value: Any, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, "must be a string")
    trimmed = value.strip()
    if not trimmed:
        _fail(path, "must be a non-empty string")
    return trimmed
