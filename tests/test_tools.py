"""Tests for the command line entry points under tools/."""

from __future__ import annotations

import sys
from importlib import util
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List
from unittest.mock import Mock

import pytest
from requests import HTTPError

PROJECT_ROOT = Path(__file__).resolve().parents[1]
TOOLS_DIR = PROJECT_ROOT / "tools"


def _load_tool(name: str) -> ModuleType:
    spec = util.spec_from_file_location(f"ticket_tools.{name}", TOOLS_DIR / f"{name}.py")
    assert spec and spec.loader
    module = util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


run_automation_tool = _load_tool("run_automation")
chat_agent_tool = _load_tool("chat_agent")
demo_tool = _load_tool("create_demo_tickets")

from ticket_automation.chat_agent import ChatAgent  # noqa: E402
from ticket_automation.config import ConfigError  # noqa: E402
from ticket_automation.errors import ServiceUnavailableError  # noqa: E402


def test_run_automation_parser_defaults() -> None:
    args = run_automation_tool.build_parser().parse_args([])
    options = run_automation_tool.options_from_args(args)

    assert options.dry_run is None
    assert options.continuous is None
    assert options.disable_console is True
    assert options.formats is None


def test_run_automation_parser_live_mode() -> None:
    args = run_automation_tool.build_parser().parse_args(
        ["--live", "--confidence", "0.6", "--status", "open", "--format", "html", "--max-runs", "2"]
    )
    options = run_automation_tool.options_from_args(args)

    assert options.dry_run is False
    assert options.min_confidence == 0.6
    assert options.status == "open"
    assert options.formats == ["html"]
    assert options.max_runs == 2


def test_run_automation_parser_rejects_bad_confidence() -> None:
    with pytest.raises(SystemExit):
        run_automation_tool.build_parser().parse_args(["--confidence", "1.5"])

    with pytest.raises(SystemExit):
        run_automation_tool.build_parser().parse_args(["--dry-run", "--live"])


def test_run_automation_exit_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    parser = run_automation_tool.build_parser()
    calls: List[Any] = []
    monkeypatch.setattr(run_automation_tool, "run_automation", lambda options, base_dir: calls.append(options))

    assert run_automation_tool.run(parser.parse_args(["--dry-run"])) == 0
    assert calls[0].dry_run is True

    def _config_error(options, base_dir):
        raise ConfigError("missing zendesk.api_token")

    monkeypatch.setattr(run_automation_tool, "run_automation", _config_error)
    assert run_automation_tool.run(parser.parse_args([])) == 2

    def _unavailable(options, base_dir):
        raise ServiceUnavailableError("down")

    monkeypatch.setattr(run_automation_tool, "run_automation", _unavailable)
    assert run_automation_tool.run(parser.parse_args([])) == 1


def test_run_automation_self_test_and_connection(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    parser = run_automation_tool.build_parser()
    monkeypatch.setattr(run_automation_tool, "run_self_test", lambda options, base_dir: False)
    monkeypatch.setattr(
        run_automation_tool,
        "connection_status",
        lambda options, base_dir: {"new": 1, "open": 2, "pending": 3, "total": 6},
    )

    assert run_automation_tool.run(parser.parse_args(["--test"])) == 1
    assert run_automation_tool.run(parser.parse_args(["--check-connection"])) == 0

    output = capsys.readouterr().out
    assert "Self test failed" in output
    assert "Connected. new=1 open=2 pending=3 total=6" in output


def test_build_agent_requires_slack_settings() -> None:
    with pytest.raises(ConfigError):
        chat_agent_tool.build_agent({"slack": {"token": "xoxb"}})


def test_build_agent_wires_clients() -> None:
    config: Dict[str, Any] = {
        "zendesk": {"subdomain": "acme", "email": "agent@example.com", "api_token": "secret"},
        "slack": {"token": "xoxb", "channel": "C1", "history_limit": 20},
    }

    agent = chat_agent_tool.build_agent(config, channel="C2")

    assert isinstance(agent, ChatAgent)
    assert agent.channel == "C2"
    assert agent.history_limit == 20
    assert agent.zendesk.base_url == "https://acme.zendesk.com/api/v2"


def test_create_demo_tickets_dry_run_prints_plan(capsys: pytest.CaptureFixture[str]) -> None:
    created = demo_tool.create_demo_tickets(None, dry_run=True)

    assert created == []
    output = capsys.readouterr().out
    assert output.count("[DRY RUN] Would create ticket") == len(demo_tool.SAMPLE_TICKETS)


def test_create_demo_tickets_continues_after_http_errors() -> None:
    class DummyResponse:
        status_code = 422
        reason = "Unprocessable Entity"
        text = ""

        @staticmethod
        def json():
            return {"error": "RecordInvalid"}

    client = Mock()
    client.create_ticket.side_effect = [HTTPError(response=DummyResponse()), {"id": 2}]
    tickets = demo_tool.SAMPLE_TICKETS[:2]

    created = demo_tool.create_demo_tickets(client, tickets, delay=0)

    assert created == [{"id": 2}]
    assert client.create_ticket.call_count == 2
    first_call = client.create_ticket.call_args_list[0][1]
    assert first_call["ticket_type"] == "problem"
    assert first_call["status"] == "new"
