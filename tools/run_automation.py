#!/usr/bin/env python3
"""Fetch recent Zendesk tickets, analyse their content and apply tags."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from ticket_automation.config import ConfigError  # type: ignore  # pylint: disable=import-error
from ticket_automation.errors import ServiceUnavailableError  # type: ignore  # pylint: disable=import-error
from ticket_automation.workflow import (  # type: ignore  # pylint: disable=import-error
    AutomationOptions,
    connection_status,
    run_automation,
    run_self_test,
)

LOGGER = logging.getLogger(__name__)


def _confidence(value: str) -> float:
    number = float(value)
    if not 0.0 <= number <= 1.0:
        raise argparse.ArgumentTypeError("confidence must be between 0 and 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Analyse recent Zendesk tickets and apply classification tags."
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_const",
        const=True,
        help="Run the full pipeline without writing tags (the default unless configured otherwise).",
    )
    mode.add_argument(
        "--live",
        dest="dry_run",
        action="store_const",
        const=False,
        help="Write tags back to Zendesk.",
    )
    parser.add_argument(
        "--confidence",
        type=_confidence,
        help="Minimum overall confidence required before tags are applied (0-1).",
    )
    parser.add_argument(
        "--hours-back", type=int, help="Hours back to search for new tickets (default 24)."
    )
    parser.add_argument(
        "--status", help="Fetch tickets by status (new, open, pending, ...) instead of recency."
    )
    parser.add_argument(
        "--continuous",
        action="store_true",
        default=None,
        help="Keep running, repeating the pipeline every --interval minutes.",
    )
    parser.add_argument("--interval", type=int, help="Minutes between continuous runs.")
    parser.add_argument(
        "--max-runs", type=int, help="Stop continuous mode after this many runs."
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Run a dry-run self test over the last week of tickets and exit.",
    )
    parser.add_argument(
        "--check-connection",
        action="store_true",
        help="Verify credentials and print new/open/pending ticket counts.",
    )
    parser.add_argument(
        "--output-directory",
        help="Directory for JSON/HTML reports. Overrides reporting.output_directory.",
    )
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=["json", "html"],
        help="Report format to write (repeatable). Overrides reporting.formats.",
    )
    parser.add_argument(
        "--show-console-log",
        action="store_true",
        help="Show detailed log output instead of the default progress display.",
    )
    parser.add_argument(
        "--simple-console",
        action="store_true",
        help="Use a simple console log format instead of Rich formatting.",
    )
    parser.add_argument(
        "--console-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the console logging level.",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> AutomationOptions:
    return AutomationOptions(
        config_path=args.config,
        dry_run=args.dry_run,
        min_confidence=args.confidence,
        hours_back=args.hours_back,
        status=args.status,
        continuous=args.continuous,
        interval_minutes=args.interval,
        max_runs=args.max_runs,
        output_directory=args.output_directory,
        formats=args.formats,
        disable_console=not args.show_console_log,
        simple_console=args.simple_console,
        console_level=args.console_level,
        show_console_log=args.show_console_log,
    )


def run(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    try:
        if args.check_connection:
            stats = connection_status(options, base_dir=BASE_DIR)
            print(
                f"Connected. new={stats['new']} open={stats['open']} "
                f"pending={stats['pending']} total={stats['total']}"
            )
            return 0
        if args.test:
            success = run_self_test(options, base_dir=BASE_DIR)
            print("Self test passed" if success else "Self test failed")
            return 0 if success else 1
        run_automation(options, base_dir=BASE_DIR)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except ServiceUnavailableError as exc:
        LOGGER.error("Automation aborted: %s", exc)
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1
    return 0


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    raise SystemExit(run(args))


if __name__ == "__main__":
    main()
