"""Developer helper commands.

Usage:
    python -m scripts.dev install
    python -m scripts.dev browsers
    python -m scripts.dev serve
    python -m scripts.dev test
    python -m scripts.dev smoke --game-root games/<version>
"""
from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def run_command(command: list[str]) -> int:
    process = subprocess.run(command, cwd=ROOT)
    return process.returncode


def cmd_install(_: argparse.Namespace) -> int:
    return run_command([sys.executable, "-m", "pip", "install", "-e", ".[test]"])


def cmd_browsers(_: argparse.Namespace) -> int:
    return run_command([sys.executable, "-m", "playwright", "install", "chromium"])


def cmd_serve(_: argparse.Namespace) -> int:
    return run_command([sys.executable, "app.py"])


def cmd_test(_: argparse.Namespace) -> int:
    return run_command([sys.executable, "-m", "pytest", "-q"])


def cmd_smoke(args: argparse.Namespace) -> int:
    command = [sys.executable, "-m", "runner.run_headless", "--smoke"]
    if args.game_root:
        command += ["--game-root", args.game_root]
    return run_command(command)


COMMANDS = {
    "install": cmd_install,
    "browsers": cmd_browsers,
    "serve": cmd_serve,
    "test": cmd_test,
    "smoke": cmd_smoke,
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Developer helper commands")
    parser.add_argument("command", choices=COMMANDS.keys())
    parser.add_argument("--game-root", help="Game directory for the smoke command")
    args = parser.parse_args()
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
