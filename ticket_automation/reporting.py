"""Text, JSON and HTML projections of tagging runs."""
from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from jinja2 import Template

from .analysis import Analysis
from .updates import BatchResult

LOGGER = logging.getLogger(__name__)


@dataclass
class AutomationReport:
    """Everything a single automation run produced."""

    start_time: datetime
    end_time: datetime
    tickets_processed: int = 0
    tickets_tagged: int = 0
    tickets_skipped: int = 0
    errors: int = 0
    configuration: Dict[str, Any] = field(default_factory=dict)
    tagging: Optional[BatchResult] = None
    analysis: Dict[str, Any] = field(default_factory=dict)
    error_stats: Dict[str, Any] = field(default_factory=dict)
    tagging_report: str = ""

    @property
    def duration(self) -> float:
        return max((self.end_time - self.start_time).total_seconds(), 0.0)

    @property
    def success_rate(self) -> float:
        if not self.tickets_processed:
            return 0.0
        return self.tickets_tagged / self.tickets_processed * 100

    def summary(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": round(self.duration, 3),
            "tickets_processed": self.tickets_processed,
            "tickets_tagged": self.tickets_tagged,
            "tickets_skipped": self.tickets_skipped,
            "errors": self.errors,
            "success_rate": round(self.success_rate, 2),
        }


def tag_frequency(result: BatchResult) -> Counter[str]:
    counter: Counter[str] = Counter()
    for detail in result.details:
        counter.update(detail.tags)
    return counter


def format_tagging_report(result: BatchResult, *, top_tags: int = 10, max_errors: int = 5) -> str:
    lines = [
        "=== AUTO-TAGGING REPORT ===",
        "",
        "Summary:",
        f"   Total Tickets: {result.total}",
        f"   Success: {result.success}",
        f"   Skipped: {result.skipped}",
        f"   Errors: {result.errors}",
        "",
    ]
    if result.dry_run:
        lines.extend(["DRY RUN MODE - No actual changes were made", ""])

    frequency = tag_frequency(result)
    if frequency:
        lines.append("Most Applied Tags:")
        for tag, count in frequency.most_common(top_tags):
            lines.append(f"   {tag}: {count} tickets")
        lines.append("")

    errors = result.error_details
    if errors:
        lines.append(f"Errors ({len(errors)}):")
        for item in errors[:max_errors]:
            lines.append(f"   Ticket {item.ticket_id}: {item.reason or item.error}")
        if len(errors) > max_errors:
            lines.append(f"   ... and {len(errors) - max_errors} more")
        lines.append("")

    lines.extend([
        "Configuration:",
        f"   Min Confidence: {result.min_confidence}",
        f"   Dry Run: {result.dry_run}",
    ])
    return "\n".join(lines)


def format_summary_table(report: AutomationReport) -> str:
    """Return a bordered table summarising the run."""
    rows = [
        ("Tickets processed", report.tickets_processed),
        ("Tickets tagged", report.tickets_tagged),
        ("Skipped / dry run", report.tickets_skipped),
        ("Errors", report.errors),
        ("Success rate", f"{report.success_rate:.1f}%"),
        ("Duration", f"{report.duration:.1f}s"),
    ]
    label_width = max(len(label) for label, _ in rows)
    value_width = max(len(str(value)) for _, value in rows)

    border = f"+{'-' * (label_width + 2)}+{'-' * (value_width + 2)}+"
    header = f"| {'Metric'.ljust(label_width)} | {'Count'.rjust(value_width)} |"

    lines = [border, header, border]
    for label, value in rows:
        lines.append(f"| {label.ljust(label_width)} | {str(value).rjust(value_width)} |")
    lines.append(border)

    if report.configuration.get("dry_run"):
        lines.extend(["", "Dry run enabled: no tags were written to Zendesk."])
    return "\n".join(lines)


def summarize_analyses(analyses: Sequence[Analysis]) -> Dict[str, Any]:
    tags: Counter[str] = Counter()
    categories: Counter[str] = Counter()
    for analysis in analyses:
        tags.update(analysis.suggested_tags)
        if analysis.top_category is not None:
            categories[analysis.top_category.category] += 1
    total = len(analyses)
    average = sum(item.confidence for item in analyses) / total if total else 0.0
    return {
        "total_tickets": total,
        "average_confidence": round(average, 4),
        "failed_analyses": sum(1 for item in analyses if item.error),
        "tag_frequency": dict(tags.most_common()),
        "category_distribution": dict(categories.most_common()),
    }


def _normalise_for_json(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _normalise_for_json(asdict(value))
    if isinstance(value, Counter):
        return {str(k): v for k, v in value.items()}
    if isinstance(value, dict):
        return {str(k): _normalise_for_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise_for_json(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    return value


def report_to_dict(report: AutomationReport) -> Dict[str, Any]:
    tagging: Optional[Dict[str, Any]] = None
    if report.tagging is not None:
        tagging = _normalise_for_json(report.tagging)
        tagging["tag_frequency"] = dict(tag_frequency(report.tagging).most_common())
    return {
        "summary": report.summary(),
        "configuration": _normalise_for_json(report.configuration),
        "tagging_results": tagging,
        "analysis_report": _normalise_for_json(report.analysis),
        "error_stats": _normalise_for_json(report.error_stats),
    }


def save_report_json(report: AutomationReport, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report_to_dict(report), indent=2), encoding="utf-8")
    LOGGER.info("Saved JSON report to %s", output_path)
    return output_path


HTML_TEMPLATE = Template(
    """
<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Zendesk Auto-Tagging Report</title>
    <style>
      body { font-family: Arial, sans-serif; margin: 2rem; }
      h1, h2 { color: #03363d; }
      table { border-collapse: collapse; width: 100%; margin-bottom: 1.5rem; }
      th, td { border: 1px solid #ccc; padding: 0.4rem 0.6rem; text-align: left; }
      th { background-color: #eef6f6; }
      .meta { font-size: 0.9rem; color: #555; margin-bottom: 2rem; }
      .dry-run { color: #a15c00; font-weight: bold; }
      .status-error { color: #b00020; }
    </style>
  </head>
  <body>
    <h1>Zendesk Auto-Tagging Report</h1>
    <div class="meta">
      <strong>Started:</strong> {{ data.summary.start_time }}<br />
      <strong>Finished:</strong> {{ data.summary.end_time }}<br />
      <strong>Duration:</strong> {{ data.summary.duration }}s
    </div>
    {% if data.configuration.dry_run %}
    <p class="dry-run">Dry run mode: no tags were written to Zendesk.</p>
    {% endif %}

    <h2>Summary</h2>
    <table>
      <thead><tr><th>Metric</th><th>Value</th></tr></thead>
      <tbody>
        <tr><td>Tickets processed</td><td>{{ data.summary.tickets_processed }}</td></tr>
        <tr><td>Tickets tagged</td><td>{{ data.summary.tickets_tagged }}</td></tr>
        <tr><td>Skipped / dry run</td><td>{{ data.summary.tickets_skipped }}</td></tr>
        <tr><td>Errors</td><td>{{ data.summary.errors }}</td></tr>
        <tr><td>Success rate</td><td>{{ data.summary.success_rate }}%</td></tr>
      </tbody>
    </table>

    {% if data.tagging_results and data.tagging_results.tag_frequency %}
    <h2>Most Applied Tags</h2>
    <table>
      <thead><tr><th>Tag</th><th>Tickets</th></tr></thead>
      <tbody>
        {% for tag, count in data.tagging_results.tag_frequency.items() %}
        <tr><td>{{ tag }}</td><td>{{ count }}</td></tr>
        {% endfor %}
      </tbody>
    </table>
    {% endif %}

    {% if data.tagging_results %}
    <h2>Ticket Results</h2>
    <table>
      <thead><tr><th>Ticket</th><th>Status</th><th>Confidence</th><th>Tags</th><th>Reason</th></tr></thead>
      <tbody>
        {% for row in data.tagging_results.details %}
        <tr class="status-{{ row.status }}">
          <td>{{ row.ticket_id }}</td>
          <td>{{ row.status }}</td>
          <td>{{ '%.2f'|format(row.confidence) }}</td>
          <td>{{ row.tags|join(', ') }}</td>
          <td>{{ row.reason or row.error or '' }}</td>
        </tr>
        {% endfor %}
      </tbody>
    </table>
    {% endif %}

    {% if data.analysis_report.category_distribution %}
    <h2>Category Distribution</h2>
    <table>
      <thead><tr><th>Category</th><th>Tickets</th></tr></thead>
      <tbody>
        {% for category, count in data.analysis_report.category_distribution.items() %}
        <tr><td>{{ category }}</td><td>{{ count }}</td></tr>
        {% endfor %}
      </tbody>
    </table>
    {% endif %}

    <h2>Configuration</h2>
    <table>
      <tbody>
        {% for key, value in data.configuration.items() %}
        <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
        {% endfor %}
      </tbody>
    </table>
  </body>
</html>
""",
    autoescape=True,
)


def render_html(report: AutomationReport, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    html = HTML_TEMPLATE.render(data=report_to_dict(report))
    output_path.write_text(html, encoding="utf-8")
    LOGGER.info("Saved HTML report to %s", output_path)
    return output_path
