"""Automation pipeline orchestration used by the command line entry points."""
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .analysis import Analysis, ContentAnalyzer, TicketRecord
from .config import AutomationSettings, ConfigError, load_config, resolve_path
from .errors import ErrorTracker, ServiceUnavailableError, call_with_retry
from .fetcher import TicketFetchCriteria, TicketFetcher
from .logging_setup import configure_logging
from .reporting import (
    AutomationReport,
    format_summary_table,
    format_tagging_report,
    render_html,
    save_report_json,
    summarize_analyses,
)
from .rules import DEFAULT_RULES, RuleTables, build_rule_tables
from .updates import STATUS_ERROR, TaggingConfig, TagUpdater
from .zendesk_client import ZendeskClient

LOGGER = logging.getLogger(__name__)

TEST_OVERRIDES = {"dry_run": True, "min_confidence": 0.5, "hours_back": 168}


def _current_utc_timestamp() -> str:
    """Return a compact UTC timestamp for report filenames."""

    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


@dataclass
class AutomationOptions:
    config_path: Optional[str] = None
    dry_run: Optional[bool] = None
    min_confidence: Optional[float] = None
    hours_back: Optional[int] = None
    status: Optional[str] = None
    continuous: Optional[bool] = None
    interval_minutes: Optional[int] = None
    max_runs: Optional[int] = None
    output_directory: Optional[str] = None
    formats: Optional[List[str]] = None
    disable_console: bool = False
    simple_console: bool = False
    console_level: Optional[str] = None
    show_console_log: bool = False


class _ProgressTask:
    """Lightweight textual progress indicator with optional ETA."""

    _BAR_WIDTH = 30

    def __init__(self, description: str, enabled: bool) -> None:
        self.description = description
        self.enabled = enabled
        self.start_time = time.monotonic()
        self.total: Optional[int] = None
        self.count = 0

    def update(self, count: int, total: Optional[int] = None) -> None:
        if not self.enabled:
            return
        if total is not None and total >= 0:
            self.total = total
        self.count = max(count, 0)
        elapsed = max(time.monotonic() - self.start_time, 0.0)
        rate = self.count / elapsed if elapsed > 0 and self.count > 0 else 0.0
        eta: Optional[float] = None
        if self.total and rate > 0:
            eta = max(self.total - self.count, 0) / rate

        parts = [self.description]
        if self.total:
            fraction = min(max(self.count / self.total, 0.0), 1.0)
            filled = min(int(round(fraction * self._BAR_WIDTH)), self._BAR_WIDTH)
            parts.append(f"[{'#' * filled}{'-' * (self._BAR_WIDTH - filled)}]")
            parts.append(f"{self.count}/{self.total} ({fraction * 100:5.1f}%)")
        else:
            parts.append(str(self.count))
        parts.append(f"elapsed {elapsed:6.1f}s")
        parts.append(f"eta {eta:6.1f}s" if eta is not None else "eta --")
        sys.stdout.write("\r" + " ".join(parts))
        sys.stdout.flush()

    def done(self) -> None:
        if not self.enabled:
            return
        self.update(self.count, self.total)
        sys.stdout.write("\n")
        sys.stdout.flush()


class TicketAutomationSystem:
    """Fetch, analyse and tag Zendesk tickets in one pass."""

    def __init__(
        self,
        settings: AutomationSettings,
        client: ZendeskClient,
        rules: RuleTables = DEFAULT_RULES,
        *,
        fetcher: Optional[TicketFetcher] = None,
        error_tracker: Optional[ErrorTracker] = None,
        fetch_retries: int = 3,
        retry_base_delay: float = 1.0,
        show_progress: bool = False,
    ) -> None:
        settings.validate()
        self.settings = settings
        self.client = client
        self.rules = rules
        self.fetcher = fetcher or TicketFetcher(client, batch_pause=settings.delay_between_batches)
        self.analyzer = ContentAnalyzer(rules)
        self.error_tracker = error_tracker or ErrorTracker()
        self.fetch_retries = fetch_retries
        self.retry_base_delay = retry_base_delay
        self.show_progress = show_progress
        LOGGER.info("Ticket automation initialised with %s", settings.as_dict())

    # -- Configuration ---------------------------------------------------------
    def update_settings(self, **changes: Any) -> AutomationSettings:
        self.settings = self.settings.with_changes(**changes)
        self.fetcher.batch_pause = self.settings.delay_between_batches
        LOGGER.info("Configuration updated: %s", changes)
        return self.settings

    def _tagging_config(self) -> TaggingConfig:
        return TaggingConfig(
            min_confidence=self.settings.min_confidence,
            dry_run=self.settings.dry_run,
            delay_between_items=self.settings.delay_between_items,
        )

    # -- Pipeline steps --------------------------------------------------------
    def fetch_tickets(self, criteria: Optional[TicketFetchCriteria] = None) -> List[TicketRecord]:
        def _fetch() -> List[TicketRecord]:
            if criteria is not None:
                return self.fetcher.fetch_tickets_by_criteria(criteria)
            return self.fetcher.fetch_new_tickets(
                self.settings.hours_back, self.settings.exclude_tags
            )

        try:
            tickets = call_with_retry(
                _fetch,
                operation_name="fetch_tickets",
                max_retries=self.fetch_retries,
                base_delay=self.retry_base_delay,
                tracker=self.error_tracker,
            )
        except Exception as exc:
            raise ServiceUnavailableError(f"Unable to fetch tickets from Zendesk: {exc}") from exc

        if len(tickets) > self.settings.max_tickets:
            LOGGER.info(
                "Limiting run to %s of %s tickets", self.settings.max_tickets, len(tickets)
            )
            tickets = tickets[: self.settings.max_tickets]
        if not tickets:
            return []
        return self.fetcher.batch_fetch_detailed_tickets(tickets, self.settings.batch_size)

    def analyze_tickets(self, tickets: List[TicketRecord]) -> List[Analysis]:
        progress = _ProgressTask("Analyzing tickets", self.show_progress)
        try:
            return self.analyzer.batch_analyze(tickets, progress_callback=progress.update)
        finally:
            progress.done()

    def run(self, criteria: Optional[TicketFetchCriteria] = None) -> AutomationReport:
        start_time = datetime.now(timezone.utc)
        LOGGER.info("Step 1: fetching tickets")
        tickets = self.fetch_tickets(criteria)
        if not tickets:
            LOGGER.info("No tickets found matching criteria")
            return self._build_report(start_time)
        LOGGER.info("Found %s tickets to process", len(tickets))

        LOGGER.info("Step 2: analyzing ticket content")
        analyses = self.analyze_tickets(tickets)

        LOGGER.info("Step 3: applying tags")
        updater = TagUpdater(self.client, self._tagging_config())
        progress = _ProgressTask("Tagging tickets", self.show_progress)
        try:
            result = updater.batch_apply(analyses, tickets, progress_callback=progress.update)
        finally:
            progress.done()
        for detail in result.details:
            if detail.status == STATUS_ERROR:
                self.error_tracker.record(
                    RuntimeError(detail.error or detail.reason or "unknown"),
                    "apply_tags",
                    error_type="tagging",
                )

        tagging_report = format_tagging_report(result)
        LOGGER.info("Tagging report:\n%s", tagging_report)
        report = self._build_report(
            start_time,
            tickets_processed=len(tickets),
            tickets_tagged=result.success,
            tickets_skipped=result.skipped,
            errors=result.errors,
            tagging=result,
            analysis=summarize_analyses(analyses),
            tagging_report=tagging_report,
        )
        LOGGER.info("Automation complete: %s", report.summary())
        return report

    def _build_report(self, start_time: datetime, **values: Any) -> AutomationReport:
        return AutomationReport(
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            configuration=self.settings.as_dict(),
            error_stats=self.error_tracker.stats(),
            **values,
        )

    def test(self) -> bool:
        """Run once in dry-run mode over the last week, then restore the settings."""
        original = self.settings
        LOGGER.info("Testing automation system")
        try:
            self.update_settings(**TEST_OVERRIDES)
            report = self.run()
        except Exception as exc:
            LOGGER.error("Automation system test failed: %s", exc)
            return False
        finally:
            self.settings = original
            self.fetcher.batch_pause = original.delay_between_batches
        LOGGER.info(
            "Automation system test completed: processed=%s success_rate=%.1f%%",
            report.tickets_processed,
            report.success_rate,
        )
        return True

    def run_continuously(
        self,
        interval_minutes: Optional[int] = None,
        *,
        max_runs: Optional[int] = None,
        criteria: Optional[TicketFetchCriteria] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_report: Optional[Callable[[AutomationReport], None]] = None,
    ) -> List[AutomationReport]:
        """Repeat :meth:`run` every ``interval_minutes`` until ``max_runs`` is reached.

        A failed run is logged and the loop waits for the next interval.
        """
        interval = interval_minutes or self.settings.interval_minutes
        reports: List[AutomationReport] = []
        runs = 0
        while max_runs is None or runs < max_runs:
            runs += 1
            LOGGER.info("Starting automation run %s", runs)
            try:
                report = self.run(criteria)
            except ServiceUnavailableError as exc:
                LOGGER.error("Automation run %s failed: %s", runs, exc)
            else:
                reports.append(report)
                if on_report:
                    on_report(report)
            if max_runs is not None and runs >= max_runs:
                break
            LOGGER.info("Next run in %s minutes", interval)
            sleep(interval * 60)
        return reports


def _prepare_logging(config: dict, options: AutomationOptions, *, base_dir: Path) -> None:
    logging_config = config.setdefault("logging", {})
    console_cfg = logging_config.setdefault("console", {})
    if options.disable_console:
        console_cfg["enabled"] = False
    if options.simple_console:
        console_cfg["rich_format"] = False
    if options.console_level:
        console_cfg["level"] = options.console_level
    configure_logging(config, base_dir=base_dir)


def _create_client(config: dict, *, error_tracker: Optional[ErrorTracker] = None) -> ZendeskClient:
    zd_cfg = config.get("zendesk", {})
    missing = [key for key in ("subdomain", "email", "api_token") if not zd_cfg.get(key)]
    if missing:
        raise ConfigError(
            "Configuration missing zendesk."
            + ", zendesk.".join(missing)
            + " (or the ZENDESK_SUBDOMAIN / ZENDESK_EMAIL / ZENDESK_TOKEN variables)"
        )
    return ZendeskClient.from_config(config, error_tracker=error_tracker)


def build_system(
    options: AutomationOptions, *, base_dir: Optional[Path] = None
) -> tuple[TicketAutomationSystem, dict]:
    """Load configuration, configure logging and wire the automation system."""
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path, required=False)
    _prepare_logging(config, options, base_dir=base_dir)

    settings = AutomationSettings.from_config(
        config,
        dry_run=options.dry_run,
        min_confidence=options.min_confidence,
        hours_back=options.hours_back,
        continuous=options.continuous,
        interval_minutes=options.interval_minutes,
    )
    tracker = ErrorTracker()
    client = _create_client(config, error_tracker=tracker)
    system = TicketAutomationSystem(
        settings,
        client,
        build_rule_tables(config),
        error_tracker=tracker,
        # Each request is already retried by the client.
        fetch_retries=1,
        retry_base_delay=client.retry_base_delay,
        show_progress=not options.show_console_log,
    )
    return system, config


def _write_reports(
    report: AutomationReport, config: dict, options: AutomationOptions, *, base_dir: Path
) -> List[Path]:
    reporting_cfg = config.get("reporting", {})
    output_directory = resolve_path(
        options.output_directory or reporting_cfg.get("output_directory", "reports"), base=base_dir
    )
    formats = [fmt.lower() for fmt in (options.formats or reporting_cfg.get("formats") or ["json"])]
    stem = f"automation_report_{_current_utc_timestamp()}"
    written: List[Path] = []
    if "json" in formats:
        written.append(save_report_json(report, output_directory / f"{stem}.json"))
    if "html" in formats:
        written.append(render_html(report, output_directory / f"{stem}.html"))
    unknown = sorted(set(formats) - {"json", "html"})
    if unknown:
        LOGGER.warning("Ignoring unsupported report formats: %s", ", ".join(unknown))
    return written


def _print_summary(report: AutomationReport, written: List[Path], options: AutomationOptions) -> None:
    LOGGER.info("Automation summary:\n%s", format_summary_table(report))
    if options.show_console_log:
        return
    print()
    print(format_summary_table(report))
    for path in written:
        print(f"Report written to {path}")


def run_automation(
    options: AutomationOptions, *, base_dir: Optional[Path] = None
) -> List[AutomationReport]:
    """Run the pipeline once, or repeatedly in continuous mode."""
    base_dir = base_dir or Path.cwd()
    system, config = build_system(options, base_dir=base_dir)
    criteria = TicketFetchCriteria(status=options.status) if options.status else None

    def _handle(report: AutomationReport) -> None:
        written: List[Path] = []
        if system.settings.enable_reporting:
            written = _write_reports(report, config, options, base_dir=base_dir)
        _print_summary(report, written, options)

    if system.settings.continuous:
        return system.run_continuously(
            system.settings.interval_minutes,
            max_runs=options.max_runs,
            criteria=criteria,
            on_report=_handle,
        )
    report = system.run(criteria)
    _handle(report)
    return [report]


def run_self_test(options: AutomationOptions, *, base_dir: Optional[Path] = None) -> bool:
    system, _ = build_system(options, base_dir=base_dir)
    return system.test()


def connection_status(options: AutomationOptions, *, base_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Check credentials and return live ticket counts."""
    system, _ = build_system(options, base_dir=base_dir)
    if not system.client.test_connection():
        raise ServiceUnavailableError("Zendesk API connection failed")
    return system.fetcher.get_ticket_stats()
