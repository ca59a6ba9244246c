"""Tests for FAQ lookups."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import Mock

import requests

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ticket_automation.faq import (  # noqa: E402
    NO_FAQ_FOUND,
    PREVIEW_LENGTH,
    FaqLookup,
    builtin_answer,
    format_article,
    strip_html,
)


def test_strip_html_removes_markup_and_entities() -> None:
    assert strip_html("<p>Reset&nbsp;your <b>password</b></p>\n<br/>now") == "Reset your password now"
    assert strip_html(None) == ""


def test_format_article_truncates_preview() -> None:
    article = {"title": "Passwords", "body": "x" * 400, "html_url": "https://help.example.com/1"}

    text = format_article(article)

    title, preview, link = text.split("\n\n")
    assert title == "*Passwords*"
    assert preview == "x" * PREVIEW_LENGTH + "..."
    assert link == "Read more: https://help.example.com/1"


def test_builtin_answer_matches_keywords() -> None:
    assert builtin_answer("How do I reset my password?").startswith("*Password Reset*")
    assert builtin_answer("Where is my INVOICE?").startswith("*Billing Information*")
    assert builtin_answer("tell me a joke") == NO_FAQ_FOUND


def test_lookup_prefers_search_results() -> None:
    client = Mock()
    client.search_articles.return_value = [{"title": "Reset password", "body": "<p>Steps</p>"}]

    answer = FaqLookup(client).answer("reset password")

    assert answer == "*Reset password*\n\nSteps"
    client.list_articles.assert_not_called()


def test_lookup_scans_articles_when_search_is_empty() -> None:
    client = Mock()
    client.search_articles.return_value = []
    client.list_articles.return_value = [
        {"title": "Shipping", "body": "We ship worldwide"},
        {"title": "Export data", "body": "Use the export menu to download data"},
    ]

    answer = FaqLookup(client).answer("export data")

    assert answer.startswith("*Export data*")


def test_lookup_falls_back_to_builtin_answers() -> None:
    client = Mock()
    client.search_articles.return_value = []
    client.list_articles.return_value = []

    assert FaqLookup(client).answer("api rate limits").startswith("*API Authentication")


def test_lookup_survives_api_failures() -> None:
    client = Mock()
    client.search_articles.side_effect = requests.ConnectionError("offline")

    assert FaqLookup(client).answer("forgot password").startswith("*Password Reset*")


def test_lookup_without_client_uses_builtin_table() -> None:
    assert FaqLookup().answer("who do I contact?").startswith("*Contact Support*")
