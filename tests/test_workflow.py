"""Tests for the automation pipeline orchestration."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest
import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ticket_automation import workflow  # noqa: E402
from ticket_automation.analysis import TicketRecord  # noqa: E402
from ticket_automation.config import AutomationSettings, ConfigError  # noqa: E402
from ticket_automation.errors import ServiceUnavailableError  # noqa: E402
from ticket_automation.fetcher import TicketFetchCriteria  # noqa: E402
from ticket_automation.workflow import (  # noqa: E402
    AutomationOptions,
    TicketAutomationSystem,
    connection_status,
    run_automation,
    run_self_test,
)

OUTAGE_TEXT = "URGENT: production API down, 500 errors, revenue impact"


class FakeFetcher:
    def __init__(self, tickets: List[TicketRecord], error: Optional[Exception] = None) -> None:
        self.tickets = tickets
        self.errors: List[Exception] = [error] if error else []
        self.batch_pause = 0.0
        self.new_calls: List[tuple] = []
        self.criteria_calls: List[TicketFetchCriteria] = []
        self.detail_calls: List[tuple] = []

    def _next(self) -> List[TicketRecord]:
        if self.errors:
            raise self.errors.pop(0)
        return list(self.tickets)

    def fetch_new_tickets(self, hours_back, exclude_tags) -> List[TicketRecord]:
        self.new_calls.append((hours_back, list(exclude_tags)))
        return self._next()

    def fetch_tickets_by_criteria(self, criteria) -> List[TicketRecord]:
        self.criteria_calls.append(criteria)
        return self._next()

    def batch_fetch_detailed_tickets(self, tickets, batch_size) -> List[TicketRecord]:
        self.detail_calls.append(([ticket.id for ticket in tickets], batch_size))
        return list(tickets)


class FakeZendesk:
    """In-memory stand-in for the Zendesk API used by the full pipeline."""

    retry_base_delay = 0.0

    def __init__(self, tickets: Dict[int, Dict[str, Any]]) -> None:
        self.tickets = tickets
        self.tag_updates: List[tuple] = []
        self.connected = True

    def get_recent_tickets(self, hours_back: int) -> Dict[str, Any]:
        return {"results": list(self.tickets.values())}

    def get_ticket(self, ticket_id: int) -> Dict[str, Any]:
        return self.tickets.get(ticket_id, {})

    def get_ticket_comments(self, ticket_id: int) -> List[Dict[str, Any]]:
        return []

    def get_tickets_by_status(self, status: str) -> Dict[str, Any]:
        return {"count": sum(1 for item in self.tickets.values() if item["status"] == status)}

    def update_tags(self, ticket_id: int, tags) -> Dict[str, Any]:
        self.tag_updates.append((ticket_id, list(tags)))
        return {"id": ticket_id, "tags": list(tags)}

    def test_connection(self) -> bool:
        return self.connected


def _ticket(ticket_id: int, text: str) -> TicketRecord:
    return TicketRecord(id=ticket_id, subject="Subject", description=text)


def _settings(**values: Any) -> AutomationSettings:
    values.setdefault("delay_between_items", 0.0)
    values.setdefault("min_confidence", 0.5)
    return AutomationSettings(**values)


def _system(fetcher: FakeFetcher, client: Any = None, **values: Any) -> TicketAutomationSystem:
    return TicketAutomationSystem(
        _settings(**values),
        client or Mock(),
        fetcher=fetcher,
        fetch_retries=0,
        retry_base_delay=0.0,
    )


def test_dry_run_never_writes_tags() -> None:
    client = Mock()
    fetcher = FakeFetcher([_ticket(1, OUTAGE_TEXT), _ticket(2, "hello")])

    report = _system(fetcher, client, dry_run=True).run()

    client.update_tags.assert_not_called()
    assert report.tickets_processed == 2
    assert report.tickets_tagged == 0
    assert report.tickets_skipped == 2
    assert report.configuration["dry_run"] is True
    assert "DRY RUN MODE" in report.tagging_report


def test_live_run_tags_confident_tickets_only() -> None:
    client = Mock()
    client.update_tags.return_value = {}
    fetcher = FakeFetcher([_ticket(1, OUTAGE_TEXT), _ticket(2, "hello")])

    report = _system(fetcher, client, dry_run=False).run()

    client.update_tags.assert_called_once()
    ticket_id, tags = client.update_tags.call_args[0]
    assert ticket_id == 1
    assert "category-technical" in tags
    assert (report.tickets_tagged, report.tickets_skipped, report.errors) == (1, 1, 0)
    assert report.success_rate == 50.0
    assert report.analysis["total_tickets"] == 2
    assert fetcher.new_calls == [(24, ["auto-processed"])]


def test_run_respects_max_tickets_and_batch_size() -> None:
    fetcher = FakeFetcher([_ticket(i, "hello") for i in range(1, 6)])

    _system(fetcher, max_tickets=2, batch_size=3).run()

    assert fetcher.detail_calls == [([1, 2], 3)]


def test_run_uses_explicit_criteria() -> None:
    fetcher = FakeFetcher([])
    criteria = TicketFetchCriteria(status="open")

    report = _system(fetcher).run(criteria)

    assert fetcher.criteria_calls == [criteria]
    assert fetcher.new_calls == []
    assert report.tickets_processed == 0
    assert report.tagging is None


def test_fetch_failure_raises_service_unavailable() -> None:
    fetcher = FakeFetcher([], error=RuntimeError("connection refused"))

    with pytest.raises(ServiceUnavailableError):
        _system(fetcher).run()


def test_tagging_errors_are_tracked() -> None:
    client = Mock()
    client.update_tags.side_effect = RuntimeError("write failed")
    fetcher = FakeFetcher([_ticket(1, OUTAGE_TEXT)])

    report = _system(fetcher, client, dry_run=False).run()

    assert report.errors == 1
    assert report.error_stats["error_types"]["tagging"]["count"] == 1


def test_update_settings_validates() -> None:
    system = _system(FakeFetcher([]))

    system.update_settings(min_confidence=0.9, delay_between_batches=2.5)

    assert system.settings.min_confidence == 0.9
    assert system.fetcher.batch_pause == 2.5
    with pytest.raises(ConfigError):
        system.update_settings(min_confidence=1.5)


def test_self_test_uses_safe_overrides_and_restores_settings() -> None:
    client = Mock()
    fetcher = FakeFetcher([_ticket(1, OUTAGE_TEXT)])
    system = _system(fetcher, client, dry_run=False, min_confidence=0.9, hours_back=12)

    assert system.test() is True

    client.update_tags.assert_not_called()
    assert fetcher.new_calls[0][0] == 168
    assert system.settings.dry_run is False
    assert system.settings.hours_back == 12


def test_self_test_reports_failure() -> None:
    system = _system(FakeFetcher([], error=RuntimeError("down")))

    assert system.test() is False


def test_run_continuously_survives_failed_runs() -> None:
    fetcher = FakeFetcher([_ticket(1, "hello")], error=RuntimeError("down"))
    sleeps: List[float] = []
    seen: List[Any] = []

    reports = _system(fetcher).run_continuously(
        5, max_runs=3, sleep=sleeps.append, on_report=seen.append
    )

    assert len(reports) == 2
    assert seen == reports
    assert sleeps == [300, 300]


def test_create_client_requires_credentials() -> None:
    with pytest.raises(ConfigError) as excinfo:
        workflow._create_client({"zendesk": {"subdomain": "acme"}})

    assert "zendesk.email" in str(excinfo.value)
    assert "zendesk.api_token" in str(excinfo.value)


@pytest.fixture
def fake_zendesk(monkeypatch: pytest.MonkeyPatch) -> FakeZendesk:
    fake = FakeZendesk(
        {
            1: {"id": 1, "subject": "API down", "description": OUTAGE_TEXT, "status": "new", "tags": []},
            2: {"id": 2, "subject": "Hi", "description": "hello", "status": "open", "tags": []},
        }
    )
    monkeypatch.setattr(
        workflow.ZendeskClient, "from_config", classmethod(lambda cls, config, **kwargs: fake)
    )
    return fake


def _write_config(tmp_path: Path, **automation: Any) -> Path:
    automation.setdefault("delay_between_items", 0)
    config = {
        "zendesk": {"subdomain": "acme", "email": "agent@example.com", "api_token": "secret"},
        "automation": automation,
        "logging": {"console": {"enabled": False}, "file": {"enabled": False}},
        "reporting": {"output_directory": str(tmp_path / "reports"), "formats": ["json", "html"]},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


def test_run_automation_writes_reports(tmp_path: Path, fake_zendesk: FakeZendesk) -> None:
    options = AutomationOptions(
        config_path=str(_write_config(tmp_path)),
        dry_run=False,
        min_confidence=0.5,
        show_console_log=True,
    )

    reports = run_automation(options, base_dir=tmp_path)

    assert len(reports) == 1
    assert reports[0].tickets_tagged == 1
    assert [ticket_id for ticket_id, _ in fake_zendesk.tag_updates] == [1]
    assert len(list((tmp_path / "reports").glob("automation_report_*.json"))) == 1
    assert len(list((tmp_path / "reports").glob("automation_report_*.html"))) == 1


def test_run_automation_defaults_to_dry_run(tmp_path: Path, fake_zendesk: FakeZendesk) -> None:
    options = AutomationOptions(
        config_path=str(_write_config(tmp_path)),
        min_confidence=0.5,
        formats=["json"],
        show_console_log=True,
    )

    reports = run_automation(options, base_dir=tmp_path)

    assert reports[0].configuration["dry_run"] is True
    assert fake_zendesk.tag_updates == []
    assert not list((tmp_path / "reports").glob("*.html"))


def test_run_self_test_and_connection_status(tmp_path: Path, fake_zendesk: FakeZendesk) -> None:
    options = AutomationOptions(config_path=str(_write_config(tmp_path)), show_console_log=True)

    assert run_self_test(options, base_dir=tmp_path) is True
    assert fake_zendesk.tag_updates == []
    assert connection_status(options, base_dir=tmp_path) == {
        "new": 1,
        "open": 1,
        "pending": 0,
        "total": 2,
    }

    fake_zendesk.connected = False
    with pytest.raises(ServiceUnavailableError):
        connection_status(options, base_dir=tmp_path)
