#!/usr/bin/env python3
"""Run the Slack agent that answers FAQ and ticket commands in a channel."""
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

from ticket_automation.chat_agent import ChatAgent, SlackClient  # type: ignore  # pylint: disable=import-error
from ticket_automation.config import ConfigError, load_config  # type: ignore  # pylint: disable=import-error
from ticket_automation.logging_setup import configure_logging  # type: ignore  # pylint: disable=import-error
from ticket_automation.workflow import _create_client  # type: ignore  # pylint: disable=import-error

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Poll a Slack channel and answer faq/ticket commands."
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    parser.add_argument("--channel", help="Slack channel ID. Overrides slack.channel.")
    parser.add_argument(
        "--poll-interval", type=float, help="Seconds between history polls (default 5)."
    )
    parser.add_argument(
        "--max-polls", type=int, help="Stop after this many polls (runs forever by default)."
    )
    return parser


def build_agent(config: dict, channel: str | None = None) -> ChatAgent:
    slack_cfg = config.get("slack", {})
    token = slack_cfg.get("token")
    channel = channel or slack_cfg.get("channel")
    if not token or not channel:
        raise ConfigError("Missing slack.token or slack.channel (or SLACK_TOKEN / SLACK_CHANNEL)")
    return ChatAgent(
        SlackClient(token),
        channel,
        _create_client(config),
        history_limit=int(slack_cfg.get("history_limit", 5)),
    )


def run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config, required=False)
        configure_logging(config, base_dir=BASE_DIR)
        agent = build_agent(config, args.channel)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    poll_interval = args.poll_interval or float(config.get("slack", {}).get("poll_interval", 5))
    try:
        agent.run_forever(poll_interval, max_polls=args.max_polls)
    except KeyboardInterrupt:
        LOGGER.info("Slack agent stopped")
    return 0


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    raise SystemExit(run(args))


if __name__ == "__main__":
    main()
