"""Tests for the Slack chat agent."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import MagicMock, Mock

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ticket_automation.chat_agent import (  # noqa: E402
    CREATE_USAGE,
    FAQ_USAGE,
    HELP_TEXT,
    UPDATE_USAGE,
    ChatAgent,
    ChatCommand,
    SlackClient,
    parse_command,
    send_notification,
)
from ticket_automation.errors import SlackApiError  # noqa: E402


@pytest.mark.parametrize(
    "text, expected",
    [
        ("help", ChatCommand("help")),
        ("Ajuda por favor", ChatCommand("help")),
        ("faq help with billing", ChatCommand("help")),
        ("faq How do I reset my password?", ChatCommand("faq", ["How do I reset my password?"])),
        ("<@U1> FAQ export data", ChatCommand("faq", ["export data"])),
        (
            "ticket create Login Issue | Cannot access my account",
            ChatCommand("ticket_create", ["Login Issue", "Cannot access my account"]),
        ),
        ("ticket update 123 solved", ChatCommand("ticket_update", ["123", "solved"])),
        ("good morning", None),
        ("", None),
    ],
)
def test_parse_command(text: str, expected: Any) -> None:
    assert parse_command(text) == expected


def _agent(**kwargs: Any) -> ChatAgent:
    zendesk = Mock()
    zendesk.ticket_url.side_effect = lambda ticket_id: f"https://acme.zendesk.com/agent/tickets/{ticket_id}"
    faq = Mock()
    faq.answer.return_value = "*Password Reset*"
    return ChatAgent(kwargs.pop("slack", Mock()), "C123", zendesk, faq=faq, **kwargs)


def test_respond_help_and_faq() -> None:
    agent = _agent()

    assert agent.respond("help") == HELP_TEXT
    assert agent.respond("faq reset password") == "*Password Reset*"
    agent.faq.answer.assert_called_once_with("reset password")
    assert agent.respond("faq") == FAQ_USAGE
    assert agent.respond("hello there") is None


def test_create_ticket_reply() -> None:
    agent = _agent()
    agent.zendesk.create_ticket.return_value = {"id": 42, "subject": "Login Issue", "status": "new"}

    reply = agent.respond("ticket create Login Issue | Cannot access my account")

    agent.zendesk.create_ticket.assert_called_once_with(
        subject="Login Issue", description="Cannot access my account"
    )
    assert reply.startswith("Ticket created successfully!")
    assert "*ID:* 42" in reply
    assert "https://acme.zendesk.com/agent/tickets/42" in reply


def test_create_ticket_usage_and_failure() -> None:
    agent = _agent()

    assert agent.respond("ticket create Only a subject") == CREATE_USAGE

    agent.zendesk.create_ticket.side_effect = requests.HTTPError("500")
    assert agent.respond("ticket create A | B") == "Error creating ticket. Please try again later."


def test_update_ticket_validation() -> None:
    agent = _agent()

    assert agent.respond("ticket update abc solved") == UPDATE_USAGE
    assert agent.respond("ticket update 12") == UPDATE_USAGE
    assert agent.respond("ticket update 12 archived").startswith("Invalid status. Valid statuses:")
    agent.zendesk.update_ticket.assert_not_called()


def test_update_ticket_success_and_failure() -> None:
    agent = _agent()
    agent.zendesk.update_ticket.return_value = {"id": 12, "status": "solved"}

    reply = agent.respond("ticket update 12 SOLVED")

    agent.zendesk.update_ticket.assert_called_once_with(12, {"status": "solved"})
    assert reply.startswith("Ticket updated successfully!")
    assert "*Status:* solved" in reply

    agent.zendesk.update_ticket.side_effect = requests.HTTPError("404")
    assert "Error updating ticket" in agent.respond("ticket update 99 open")


def test_poll_once_replies_in_thread_once_per_message() -> None:
    slack = Mock()
    messages: List[Dict[str, Any]] = [
        {"ts": "1.0", "user": "U1", "text": "help"},
        {"ts": "2.0", "user": "U2", "text": "just chatting"},
        {"ts": "3.0", "bot_id": "B1", "text": "help"},
        {"ts": "4.0", "user": "U3", "text": ""},
    ]
    slack.history.return_value = messages
    agent = _agent(slack=slack, history_limit=10)

    assert agent.poll_once() == 1
    assert agent.poll_once() == 0

    slack.history.assert_called_with("C123", 10)
    slack.post_message.assert_called_once_with("C123", f"<@U1> {HELP_TEXT}", thread_ts="1.0")


def test_processed_messages_are_bounded() -> None:
    slack = Mock()
    agent = _agent(slack=slack, history_limit=2, processed_limit=3)
    batches = [
        [{"ts": f"{index}.0", "user": "U1", "text": "chat"}, {"ts": f"{index}.5", "user": "U1", "text": "chat"}]
        for index in range(1, 6)
    ]

    for batch in batches:
        slack.history.return_value = batch
        agent.poll_once()

    assert agent.processed == {"4.5", "5.0", "5.5"}
    assert list(agent._processed_order) == ["4.5", "5.0", "5.5"]

    slack.history.return_value = batches[-1]
    agent.poll_once()
    assert agent.processed == {"4.5", "5.0", "5.5"}


def test_processed_limit_never_drops_below_history_window() -> None:
    agent = _agent(history_limit=50, processed_limit=10)

    assert agent.processed_limit == 50


def test_run_forever_keeps_polling_after_errors() -> None:
    slack = Mock()
    slack.history.side_effect = [SlackApiError("conversations.history", "ratelimited"), []]
    sleeps: List[float] = []

    _agent(slack=slack).run_forever(2.0, max_polls=2, sleep=sleeps.append)

    assert slack.history.call_count == 2
    assert sleeps == [2.0]


def _slack_response(payload: Dict[str, Any]) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def test_slack_client_posts_json_with_bearer_token() -> None:
    client = SlackClient("xoxb-token")
    assert client.session.headers["Authorization"] == "Bearer xoxb-token"
    client.session = MagicMock()
    client.session.request.return_value = _slack_response({"ok": True, "ts": "9.9"})

    payload = client.post_message("C123", "hi", thread_ts="1.0")

    assert payload["ts"] == "9.9"
    method, url = client.session.request.call_args[0]
    assert method == "POST"
    assert url == "https://slack.com/api/chat.postMessage"
    assert client.session.request.call_args[1]["json"] == {
        "channel": "C123",
        "text": "hi",
        "thread_ts": "1.0",
    }


def test_slack_client_raises_on_api_error() -> None:
    client = SlackClient("xoxb-token")
    client.session = MagicMock()
    client.session.request.return_value = _slack_response({"ok": False, "error": "channel_not_found"})

    with pytest.raises(SlackApiError) as excinfo:
        client.history("C404")

    assert excinfo.value.error == "channel_not_found"


def test_slack_client_requires_token() -> None:
    with pytest.raises(ValueError):
        SlackClient("")


def test_send_notification_reraises() -> None:
    client = Mock()
    client.post_message.side_effect = SlackApiError("chat.postMessage", "not_in_channel")

    with pytest.raises(SlackApiError):
        send_notification(client, "C1", "deploy finished")
