"""Headless runner entrypoint: parse a script, drive the game, persist captures."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncContextManager, Callable, List, Sequence, TextIO

from core.driver import ScriptDriver
from core.executor import Clock, execute_protocol
from core.protocol import (
    DEFAULT_LIMITS,
    DEFAULT_VIEWPORT,
    MAX_RUN_SECONDS,
    create_smoke_protocol,
    parse_protocol,
    protocol_to_payload,
)
from runner.browser_driver import open_browser_host
from runner.capture import create_snapshot_run_directory, persist_captures
from runner.config import HeadlessRunnerConfig, RunnerConfigError, load_runner_config
from runner.events import EventLogger, EventLoggingDriver
from runner.reporting import HeadlessRunResult, write_run_report

LOGGER = logging.getLogger(__name__)
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
EVENTS_FILENAME = "events.log"
USAGE_MESSAGE = (
    "Usage: python -m runner.run_headless (--smoke | --script <path> | --json <value> | --stdin) "
    "or pipe JSON via stdin with no args"
)

HostFactory = Callable[[HeadlessRunnerConfig], AsyncContextManager[ScriptDriver]]


class ProtocolInputError(ValueError):
    """Raised when the CLI cannot obtain a script to run."""


async def run_headless(
    protocol_input: Any,
    *,
    config: HeadlessRunnerConfig,
    clock: Clock | None = None,
    game_version_id: str | None = None,
    host_factory: HostFactory = open_browser_host,
) -> HeadlessRunResult:
    """Run one script end to end.

    Failures never raise: the returned result has ``ok=False`` and the error
    message as its only diagnostic. A script that fails validation aborts
    before any directory is created or browser launched.
    """

    output_directory: Path | None = None
    event_logger: EventLogger | None = None
    started_at = datetime.now(timezone.utc)
    start = time.monotonic()
    try:
        protocol = parse_protocol(protocol_input)
        output_directory = create_snapshot_run_directory(config.output_root)
        LOGGER.info("Artifacts stored in %s", output_directory)
        event_logger = EventLogger(output_directory / EVENTS_FILENAME)
        event_logger.log("protocol", json.dumps(protocol_to_payload(protocol)))

        async with host_factory(config) as driver:
            execution = await execute_protocol(
                protocol,
                EventLoggingDriver(driver, event_logger),
                clock=clock,
                max_run_seconds=MAX_RUN_SECONDS,
            )
        captures = persist_captures(execution.captures, output_directory)
    except Exception as exc:
        LOGGER.error("Headless run failed: %s", exc)
        LOGGER.debug("Headless run failure details", exc_info=exc)
        result = HeadlessRunResult.failed(
            str(exc),
            output_directory,
            event_counts=event_logger.counts() if event_logger else None,
        )
        _finalize(result, started_at, start)
        return result

    result = HeadlessRunResult(
        ok=True,
        frame_count=execution.frame_count,
        captures=captures,
        diagnostics=[
            f"Game {game_version_id or config.game_root.name}",
            f"Viewport {DEFAULT_VIEWPORT.width}x{DEFAULT_VIEWPORT.height} @ dpr {DEFAULT_VIEWPORT.dpr}",
            f"Limits maxFrames={DEFAULT_LIMITS.max_frames}, maxSnaps={DEFAULT_LIMITS.max_snaps}",
            f"Executed {len(protocol.steps)} steps",
        ],
        output_directory=output_directory,
        event_counts=event_logger.counts(),
    )
    _finalize(result, started_at, start)
    LOGGER.info(
        "Headless run finished: %s frames, %s capture(s)",
        result.frame_count,
        len(result.captures),
    )
    return result


def _finalize(result: HeadlessRunResult, started_at: datetime, start: float) -> None:
    result.started_at = started_at.isoformat()
    result.finished_at = datetime.now(timezone.utc).isoformat()
    result.runtime_seconds = round(time.monotonic() - start, 2)
    write_run_report(result)


def read_protocol_input(
    args: argparse.Namespace, *, stdin: TextIO | None = None
) -> Any:
    """Return the raw script selected by the CLI arguments."""
    stream = stdin if stdin is not None else sys.stdin

    if args.smoke:
        return protocol_to_payload(create_smoke_protocol())
    if args.stdin:
        return _read_json_from_stream(stream)
    if args.script:
        script_path = Path(args.script).expanduser().resolve()
        try:
            return json.loads(script_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ProtocolInputError(f"Script file not found: {script_path}") from exc
        except json.JSONDecodeError as exc:
            raise ProtocolInputError(f"Script file {script_path} is not valid JSON") from exc
    if args.json is not None:
        try:
            return json.loads(args.json)
        except json.JSONDecodeError as exc:
            raise ProtocolInputError(f"--json value is not valid JSON: {exc.msg}") from exc
    if not _is_tty(stream):
        return _read_json_from_stream(stream)
    raise ProtocolInputError(USAGE_MESSAGE)


def _is_tty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _read_json_from_stream(stream: TextIO) -> Any:
    text = stream.read().strip()
    if not text:
        raise ProtocolInputError("Missing JSON protocol on stdin")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProtocolInputError(f"stdin is not valid JSON: {exc.msg}") from exc


def infer_game_version_id(working_directory: Path) -> str:
    """Use the directory after the last ``games`` segment, else the base name."""
    resolved = working_directory.resolve()
    segments = [part for part in resolved.parts if part not in ("", resolved.anchor)]
    if "games" in segments:
        index = len(segments) - 1 - segments[::-1].index("games")
        if index + 1 < len(segments):
            return segments[index + 1]
    if resolved.name:
        return resolved.name
    raise ProtocolInputError(f"Unable to infer game version from cwd: {working_directory}")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a headless script against the game harness and capture snapshots."
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--smoke", action="store_true", help="Run the built-in smoke script")
    source.add_argument("--script", help="Path to a JSON script file")
    source.add_argument("--json", help="Inline JSON script")
    source.add_argument("--stdin", action="store_true", help="Read the JSON script from stdin")
    parser.add_argument(
        "--game-root",
        help="Game directory (defaults to HEADLESS_GAME_ROOT or the current directory)",
    )
    parser.add_argument("--output-dir", help="Override HEADLESS_OUTPUT_DIR")
    parser.add_argument("--harness", help="Override HEADLESS_HARNESS_PATH")
    parser.add_argument(
        "--show-browser",
        action="store_true",
        help="Launch a visible browser window instead of headless Chromium",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose runner logging",
    )
    return parser.parse_args(argv)


def apply_cli_overrides(args: argparse.Namespace, env: dict[str, str]) -> None:
    if args.game_root:
        env["HEADLESS_GAME_ROOT"] = args.game_root
    if args.output_dir:
        env["HEADLESS_OUTPUT_DIR"] = args.output_dir
    if args.harness:
        env["HEADLESS_HARNESS_PATH"] = args.harness
    if args.show_browser:
        env["HEADLESS_SHOW_BROWSER"] = "1"
    if args.debug:
        env["HEADLESS_DEBUG"] = "1"


def _configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    host_factory: HostFactory = open_browser_host,
) -> int:
    args = parse_args(argv)
    env = dict(os.environ)
    apply_cli_overrides(args, env)
    out = stdout if stdout is not None else sys.stdout

    try:
        config = load_runner_config(env)
    except RunnerConfigError as exc:
        _configure_logging(debug=False)
        LOGGER.error("%s", exc)
        return 1
    _configure_logging(config.debug)

    try:
        protocol_input = read_protocol_input(args, stdin=stdin)
        game_version_id = infer_game_version_id(config.game_root)
    except ProtocolInputError as exc:
        LOGGER.error("%s", exc)
        return 1

    result = asyncio.run(
        run_headless(
            protocol_input,
            config=config,
            game_version_id=game_version_id,
            host_factory=host_factory,
        )
    )
    out.write(json.dumps(result.to_payload(), indent=2) + "\n")
    return 0 if result.ok else 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
