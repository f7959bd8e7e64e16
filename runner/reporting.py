"""Result records and Markdown reporting for headless runs."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

from runner.capture import PersistedCapture

LOGGER = logging.getLogger(__name__)

REPORT_FILENAME = "report.md"
RESULT_FILENAME = "result.json"


@dataclass
class HeadlessRunResult:
    """Outcome of one headless run, as printed by the CLI and the web API."""

    ok: bool
    frame_count: int
    captures: List[PersistedCapture] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)
    output_directory: Path | None = None
    started_at: str = ""
    finished_at: str = ""
    runtime_seconds: float = 0.0
    event_counts: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def failed(
        cls,
        message: str,
        output_directory: Path | None = None,
        event_counts: Dict[str, int] | None = None,
    ) -> "HeadlessRunResult":
        return cls(
            ok=False,
            frame_count=0,
            diagnostics=[message],
            output_directory=output_directory,
            event_counts=dict(event_counts or {}),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "frameCount": self.frame_count,
            "captures": [capture.to_payload() for capture in self.captures],
            "diagnostics": list(self.diagnostics),
            "outputDirectory": str(self.output_directory) if self.output_directory else None,
        }


def write_run_report(
    result: HeadlessRunResult, directory: Path | None = None
) -> Tuple[Path | None, Path | None]:
    """Write ``report.md`` and ``result.json`` next to the captures."""

    target = directory or result.output_directory
    if target is None:
        return None, None
    report_path = target / REPORT_FILENAME
    result_path = target / RESULT_FILENAME
    try:
        target.mkdir(parents=True, exist_ok=True)
        report_path.write_text(render_report(result), encoding="utf-8")
        result_path.write_text(json.dumps(result.to_payload(), indent=2), encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem safety
        LOGGER.warning("Unable to write run report into %s: %s", target, exc)
        return None, None
    return report_path, result_path


def render_report(result: HeadlessRunResult) -> str:
    lines: List[str] = []
    finished = _parse_timestamp(result.finished_at) or datetime.now(timezone.utc)
    lines.append(f"# Headless Run Report — {finished:%Y-%m-%d %H:%M:%S %Z}")
    lines.append("")
    lines.append(f"- Result: **{'PASS' if result.ok else 'FAIL'}**")
    lines.append(f"- Frame count: {result.frame_count}")
    if result.started_at:
        lines.append(f"- Started: {result.started_at}")
    if result.finished_at:
        lines.append(f"- Finished: {result.finished_at}")
    lines.append(f"- Duration: {result.runtime_seconds:.2f}s")
    if result.output_directory:
        lines.append(f"- Artifacts: {result.output_directory}")
    if result.event_counts:
        counts = ", ".join(f"{key}={value}" for key, value in sorted(result.event_counts.items()))
        lines.append(f"- Driver calls: {counts}")
    lines.append("")

    if result.captures:
        lines.append("| # | Label | Frame | Size | File |")
        lines.append("| --- | --- | --- | --- | --- |")
        for index, capture in enumerate(result.captures, start=1):
            lines.append(
                f"| {index} | {capture.label} | {capture.frame} | "
                f"{capture.width}x{capture.height} | {capture.path.name} |"
            )
    else:
        lines.append("- Captures: none")
    lines.append("")

    if result.diagnostics:
        lines.append("## Diagnostics")
        for message in result.diagnostics:
            lines.append(f"- {message}")
        lines.append("")

    return "\n".join(lines).strip() + "\n"


def _parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value).astimezone(timezone.utc)
    except ValueError:
        return None
