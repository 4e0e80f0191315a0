from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import jsonschema
import yaml

from .errors import CastscriptError
from .orchestrator import ExecutionOrchestrator
from .settings import (
    BASH,
    DEFAULT_PROMPT,
    DEFAULT_SECONDARY_PROMPT,
    DEFAULT_TIMEOUT,
    DEFAULT_TYPE_SPEED,
    SHELL_PROFILES,
    Settings,
    env_pairs,
    shell_profile,
)
from .timing import DurationError, format_duration, parse_duration

logger = logging.getLogger(__name__)


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except DurationError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="castscript",
        description="Run a scripted shell session and record it as an asciicast file.",
    )
    parser.add_argument("in_file", type=Path, help="YAML script to run")
    parser.add_argument("out_file", type=Path, help="asciicast file to write")
    parser.add_argument("--overwrite", action="store_true", help="replace out_file if it exists")
    parser.add_argument("--width", type=int, help="terminal width (default: current terminal)")
    parser.add_argument("--height", type=int, help="terminal height (default: current terminal)")
    parser.add_argument("-t", "--title", help="title of the asciicast")
    parser.add_argument(
        "--shell",
        choices=sorted(SHELL_PROFILES),
        help="builtin shell to run the instructions in (custom shells go in the script)",
    )
    parser.add_argument(
        "-e",
        "--environment",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="environment variable for the shell, recorded in the header",
    )
    parser.add_argument(
        "--environment-capture",
        "--env-cap",
        action="append",
        default=[],
        metavar="ENV_VAR",
        help="environment variable to capture in the header (default: TERM)",
    )
    parser.add_argument(
        "-d",
        "--type-speed",
        "--delay",
        type=_duration_arg,
        default=DEFAULT_TYPE_SPEED,
        help=f"time between key presses when typing commands (default: {format_duration(DEFAULT_TYPE_SPEED)})",
    )
    parser.add_argument("--prompt", default=DEFAULT_PROMPT, help="prompt drawn in the recording")
    parser.add_argument(
        "--secondary-prompt",
        default=DEFAULT_SECONDARY_PROMPT,
        help="prompt drawn before continuation lines of multiline commands",
    )
    parser.add_argument(
        "--timeout",
        type=_duration_arg,
        default=DEFAULT_TIMEOUT,
        help=f"maximum time to wait for the shell prompt (default: {format_duration(DEFAULT_TIMEOUT)})",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="log progress when stderr is not a terminal (-vv for debug)")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        width=args.width,
        height=args.height,
        title=args.title,
        shell=shell_profile(args.shell) if args.shell else BASH,
        environment=env_pairs(args.environment),
        environment_capture=tuple(args.environment_capture),
        type_speed=args.type_speed,
        prompt=args.prompt,
        secondary_prompt=args.secondary_prompt,
        timeout=args.timeout,
    )


def log_level(verbosity: int, interactive: bool) -> int:
    """Progress is shown by default on a terminal, otherwise only with -v."""

    if verbosity > 1:
        return logging.DEBUG
    if verbosity == 1 or interactive:
        return logging.INFO
    return logging.WARNING


def _configure_logging(verbosity: int) -> None:
    level = log_level(verbosity, sys.stderr.isatty())
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        result = ExecutionOrchestrator().execute(
            args.in_file,
            args.out_file,
            overrides=settings_from_args(args),
            overwrite=args.overwrite,
        )
    except jsonschema.ValidationError as exc:
        logger.error("Invalid script %s: %s", args.in_file, exc.message)
        return 1
    except yaml.YAMLError as exc:
        logger.error("Could not parse %s: %s", args.in_file, exc)
        return 1
    except (CastscriptError, OSError) as exc:
        logger.error("%s", exc)
        return 1

    logger.info("Recorded %d events to %s", len(result.timeline), result.path)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual entry point
    sys.exit(main())
