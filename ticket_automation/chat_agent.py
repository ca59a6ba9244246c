"""Slack chat agent: command parsing, replies and the channel polling loop."""
from __future__ import annotations

import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Set

import requests

from .errors import SlackApiError
from .faq import FaqLookup
from .zendesk_client import ZendeskClient

LOGGER = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api"
VALID_STATUSES = ("new", "open", "pending", "solved", "closed")

HELP_TEXT = (
    "*Zendesk Agent Commands:*\n"
    "• `faq [question]` - Search FAQ/Knowledge Base\n"
    "• `ticket create [subject] | [description]` - Create new ticket\n"
    "• `ticket update [id] [status]` - Update ticket status "
    f"({', '.join(VALID_STATUSES)})\n"
    "• `help` - Show this help message\n\n"
    "*Examples:*\n"
    "• `faq How do I reset my password?`\n"
    "• `ticket create Login Issue | Cannot access my account`\n"
    "• `ticket update 123 solved`\n\n"
    "_Don't use / before commands to avoid Slack conflicts_"
)
FAQ_USAGE = "Please provide a question. Example: `faq How do I reset my password?`"
CREATE_USAGE = (
    "Please provide subject and description. "
    "Example: `ticket create Login Issue | Cannot access my account`"
)
UPDATE_USAGE = "Please provide ticket ID and status. Example: `ticket update 123 solved`"

_FAQ_RE = re.compile(r".*faq", re.IGNORECASE | re.DOTALL)
_CREATE_RE = re.compile(r".*ticket create", re.IGNORECASE | re.DOTALL)
_UPDATE_RE = re.compile(r".*ticket update", re.IGNORECASE | re.DOTALL)


class SlackClient:
    """Minimal Slack Web API client for reading history and posting replies."""

    def __init__(self, token: str, *, timeout: int = 10, base_url: str = SLACK_API_URL) -> None:
        if not token:
            raise ValueError("A Slack bot token is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _call(self, http_method: str, method: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}/{method}"
        LOGGER.debug("Slack %s %s", http_method, method)
        response = self.session.request(http_method, url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise SlackApiError(method, str(payload.get("error", "unknown_error")))
        return payload

    def history(self, channel: str, limit: int = 5) -> List[Dict[str, Any]]:
        payload = self._call(
            "GET", "conversations.history", params={"channel": channel, "limit": limit}
        )
        return list(payload.get("messages") or [])

    def post_message(
        self, channel: str, text: str, *, thread_ts: Optional[str] = None
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            body["thread_ts"] = thread_ts
        return self._call("POST", "chat.postMessage", json=body)


def send_notification(client: SlackClient, channel: str, message: str) -> Dict[str, Any]:
    """Post a standalone message, logging and re-raising failures."""
    try:
        return client.post_message(channel, message)
    except (requests.RequestException, SlackApiError) as exc:
        LOGGER.error("Error sending Slack notification: %s", exc)
        raise


@dataclass
class ChatCommand:
    name: str
    args: List[str] = field(default_factory=list)


def parse_command(text: str) -> Optional[ChatCommand]:
    """Recognise a command anywhere in ``text``.

    Checked in order: help, faq, ticket create, ticket update. Anything else
    yields ``None`` and gets no reply.
    """
    stripped = (text or "").strip()
    lowered = stripped.lower()
    if "help" in lowered or "ajuda" in lowered:
        return ChatCommand("help")
    if "faq" in lowered:
        return ChatCommand("faq", [_FAQ_RE.sub("", stripped, count=1).strip()])
    if "ticket create" in lowered:
        remainder = _CREATE_RE.sub("", stripped, count=1).strip()
        return ChatCommand("ticket_create", [part.strip() for part in remainder.split("|")])
    if "ticket update" in lowered:
        remainder = _UPDATE_RE.sub("", stripped, count=1).strip()
        return ChatCommand("ticket_update", remainder.split())
    return None


class ChatAgent:
    """Poll a Slack channel and answer commands in-thread."""

    def __init__(
        self,
        slack: SlackClient,
        channel: str,
        zendesk: ZendeskClient,
        *,
        faq: Optional[FaqLookup] = None,
        history_limit: int = 5,
        processed_limit: int = 500,
    ) -> None:
        self.slack = slack
        self.channel = channel
        self.zendesk = zendesk
        self.faq = faq or FaqLookup(zendesk)
        self.history_limit = history_limit
        # never forget a message that can still appear in the history window
        self.processed_limit = max(processed_limit, history_limit)
        self.processed: Set[str] = set()
        self._processed_order: Deque[str] = deque()

    # -- Command handlers -------------------------------------------------------
    def respond(self, text: str) -> Optional[str]:
        command = parse_command(text)
        if command is None:
            return None
        if command.name == "help":
            return HELP_TEXT
        if command.name == "faq":
            question = command.args[0] if command.args else ""
            return self.faq.answer(question) if question else FAQ_USAGE
        if command.name == "ticket_create":
            return self._create_ticket(command.args)
        return self._update_ticket(command.args)

    def _create_ticket(self, parts: List[str]) -> str:
        if len(parts) < 2 or not parts[0] or not parts[1]:
            return CREATE_USAGE
        subject, description = parts[0], parts[1]
        try:
            ticket = self.zendesk.create_ticket(subject=subject, description=description)
        except requests.RequestException as exc:
            LOGGER.error("Error creating ticket from Slack: %s", exc)
            return "Error creating ticket. Please try again later."
        ticket_id = ticket.get("id")
        return (
            "Ticket created successfully!\n"
            f"*ID:* {ticket_id}\n"
            f"*Subject:* {ticket.get('subject', subject)}\n"
            f"*Status:* {ticket.get('status', 'new')}\n"
            f"*URL:* {self.zendesk.ticket_url(ticket_id)}"
        )

    def _update_ticket(self, parts: List[str]) -> str:
        if len(parts) < 2 or not parts[0].isdigit():
            return UPDATE_USAGE
        ticket_id, status = int(parts[0]), parts[1].lower()
        if status not in VALID_STATUSES:
            return f"Invalid status. Valid statuses: {', '.join(VALID_STATUSES)}"
        try:
            ticket = self.zendesk.update_ticket(ticket_id, {"status": status})
        except requests.RequestException as exc:
            LOGGER.error("Error updating ticket %s from Slack: %s", ticket_id, exc)
            return "Error updating ticket. Please check the ticket ID and try again."
        return (
            "Ticket updated successfully!\n"
            f"*ID:* {ticket.get('id', ticket_id)}\n"
            f"*Status:* {ticket.get('status', status)}\n"
            f"*URL:* {self.zendesk.ticket_url(ticket_id)}"
        )

    # -- Polling -----------------------------------------------------------------
    def _remember(self, ts: str) -> None:
        self.processed.add(ts)
        self._processed_order.append(ts)
        while len(self._processed_order) > self.processed_limit:
            self.processed.discard(self._processed_order.popleft())

    def poll_once(self) -> int:
        """Answer new messages from the channel history; return how many were handled."""
        handled = 0
        for message in self.slack.history(self.channel, self.history_limit):
            ts = message.get("ts")
            text = message.get("text")
            if not text or message.get("bot_id") or not ts or ts in self.processed:
                continue
            self._remember(ts)
            LOGGER.info("New message %s: %r", ts, text[:50])
            reply = self.respond(text)
            if reply is None:
                continue
            self.slack.post_message(
                self.channel, f"<@{message.get('user')}> {reply}", thread_ts=ts
            )
            handled += 1
        return handled

    def run_forever(
        self,
        poll_interval: float = 5.0,
        *,
        max_polls: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        LOGGER.info(
            "Slack agent started, polling %s every %ss", self.channel, poll_interval
        )
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            try:
                self.poll_once()
            except (requests.RequestException, SlackApiError) as exc:
                LOGGER.error("Error during polling: %s", exc)
            if max_polls is not None and polls >= max_polls:
                break
            sleep(poll_interval)
