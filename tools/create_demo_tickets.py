#!/usr/bin/env python3
"""Seed a Zendesk instance with sample tickets for trying out the automation."""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List

from requests import HTTPError

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from ticket_automation.config import ConfigError, load_config  # type: ignore  # pylint: disable=import-error
from ticket_automation.errors import describe_http_error  # type: ignore  # pylint: disable=import-error
from ticket_automation.logging_setup import configure_logging  # type: ignore  # pylint: disable=import-error
from ticket_automation.workflow import _create_client  # type: ignore  # pylint: disable=import-error

LOGGER = logging.getLogger(__name__)

SAMPLE_TICKETS: List[Dict[str, Any]] = [
    {
        "subject": "Login issues with mobile app - urgent help needed",
        "description": (
            "I've been trying to log into the mobile app for the past hour but keep getting "
            "error messages. This is blocking my work and I need access immediately. The error "
            "says 'invalid credentials' but I'm sure my password is correct. Please help ASAP!"
        ),
        "priority": "normal",
        "type": "problem",
        "tags": ["mobile"],
    },
    {
        "subject": "Billing question about subscription charges",
        "description": (
            "Hello, I noticed an unexpected charge on my credit card for $29.99 last month. "
            "I thought I was on the free plan. Could you please explain what this charge is for "
            "and help me understand my current subscription status? I'd also like to know how "
            "to cancel if needed."
        ),
        "priority": "normal",
        "type": "question",
        "tags": ["billing"],
    },
    {
        "subject": "Feature request: Dark mode for the web interface",
        "description": (
            "Hi team! I love using your product but I spend a lot of time in the interface "
            "during evening hours. Would it be possible to add a dark mode theme? This would "
            "really help reduce eye strain. Many users in our company have requested this "
            "enhancement."
        ),
        "priority": "low",
        "type": "task",
        "tags": ["enhancement"],
    },
    {
        "subject": "API integration not working - production system down",
        "description": (
            "URGENT: Our production system that integrates with your API has been down for "
            "30 minutes. We're getting 500 errors when calling the /api/v2/users endpoint. "
            "This is affecting our customers and causing revenue impact. We need immediate "
            "technical support to resolve this critical issue."
        ),
        "priority": "urgent",
        "type": "problem",
        "tags": ["api", "production"],
    },
    {
        "subject": "Thank you for the excellent customer service!",
        "description": (
            "I just wanted to reach out and thank Sarah from your support team. She helped me "
            "resolve my account setup issues yesterday and was incredibly patient and "
            "knowledgeable. The whole experience was fantastic. Keep up the great work!"
        ),
        "priority": "low",
        "type": "question",
        "tags": ["feedback"],
    },
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create sample Zendesk tickets for exercising the tagging automation."
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the tickets that would be created without calling Zendesk.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.5,
        help="Seconds to wait between ticket creations (default 0.5).",
    )
    return parser


def create_demo_tickets(
    client: Any,
    tickets: Iterable[Dict[str, Any]] = SAMPLE_TICKETS,
    *,
    dry_run: bool = False,
    delay: float = 0.5,
) -> List[Dict[str, Any]]:
    created: List[Dict[str, Any]] = []
    ticket_list = list(tickets)
    for index, data in enumerate(ticket_list, start=1):
        if dry_run:
            print(f"[DRY RUN] Would create ticket {index}: {data['subject']}")
            continue
        try:
            ticket = client.create_ticket(
                subject=data["subject"],
                description=data["description"],
                status="new",
                priority=data.get("priority", "normal"),
                ticket_type=data.get("type"),
                tags=data.get("tags"),
            )
        except HTTPError as exc:
            LOGGER.error(describe_http_error(exc))
            continue
        created.append(ticket)
        print(f"Created ticket #{ticket.get('id')}: {data['subject']}")
        if delay and index < len(ticket_list):
            time.sleep(delay)
    return created


def run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config, required=False)
        configure_logging(config, base_dir=BASE_DIR)
        client = None if args.dry_run else _create_client(config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if client is not None and not client.test_connection():
        print("Failed to connect to the Zendesk API; check the configured credentials.", file=sys.stderr)
        return 1

    created = create_demo_tickets(client, dry_run=args.dry_run, delay=args.delay)
    if not args.dry_run:
        print(f"Created {len(created)} of {len(SAMPLE_TICKETS)} demo tickets.")
        print("Wait a few minutes for search indexing, then run tools/run_automation.py --dry-run")
    return 0


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    raise SystemExit(run(args))


if __name__ == "__main__":
    main()
