"""Fetch, filter and enrich tickets from Zendesk before analysis."""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from dateutil import parser as date_parser

from .analysis import TicketRecord
from .zendesk_client import ZendeskClient

LOGGER = logging.getLogger(__name__)

DEFAULT_DETAIL_BATCH_SIZE = 5
DEFAULT_BATCH_PAUSE = 1.0
STAT_STATUSES = ("new", "open", "pending")


@dataclass
class TicketFetchCriteria:
    status: str = "new"
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    assignee_id: Optional[int] = None
    group_id: Optional[int] = None
    created_after: Optional[Union[str, datetime]] = None

    def to_query(self) -> str:
        parts = ["type:ticket", f"status:{self.status}"]
        if self.priority:
            parts.append(f"priority:{self.priority}")
        parts.extend(f"tags:{tag}" for tag in self.tags if tag)
        if self.assignee_id:
            parts.append(f"assignee:{self.assignee_id}")
        if self.group_id:
            parts.append(f"group:{self.group_id}")
        if self.created_after:
            parts.append(f"created>{_format_timestamp(self.created_after)}")
        return " ".join(parts)


def _format_timestamp(value: Union[str, datetime]) -> str:
    moment = value if isinstance(value, datetime) else date_parser.parse(str(value))
    return moment.isoformat()


def build_full_text(ticket: Dict[str, Any], comments: Sequence[Dict[str, Any]]) -> str:
    """Concatenate subject, description and public comment bodies for analysis."""
    sections: List[str] = []
    if ticket.get("subject"):
        sections.append(f"Subject: {ticket['subject']}")
    if ticket.get("description"):
        sections.append(f"Description: {ticket['description']}")
    for index, comment in enumerate(comments, start=1):
        if comment.get("body") and comment.get("public"):
            sections.append(f"Comment {index}: {comment['body']}")
    return "\n\n".join(sections).strip()


class TicketFetcher:
    """Load tickets for the automation and enrich them with their comments."""

    def __init__(
        self,
        client: ZendeskClient,
        *,
        batch_pause: float = DEFAULT_BATCH_PAUSE,
    ) -> None:
        self.client = client
        self.batch_pause = batch_pause

    def fetch_new_tickets(
        self, hours_back: int = 24, exclude_tags: Iterable[str] = ("auto-processed",)
    ) -> List[TicketRecord]:
        """Return recent tickets that carry none of ``exclude_tags``."""
        LOGGER.info("Fetching tickets from the last %s hours", hours_back)
        payload = self.client.get_recent_tickets(hours_back)
        results = payload.get("results") or []
        if not results:
            LOGGER.info("No recent tickets found")
            return []
        LOGGER.info("Found %s recent tickets", len(results))
        excluded = set(exclude_tags)
        tickets = [
            TicketRecord.from_api(item)
            for item in results
            if not excluded.intersection(item.get("tags") or [])
        ]
        LOGGER.info("%s tickets need processing", len(tickets))
        return tickets

    def fetch_tickets_by_criteria(
        self, criteria: Optional[TicketFetchCriteria] = None
    ) -> List[TicketRecord]:
        query = (criteria or TicketFetchCriteria()).to_query()
        LOGGER.info("Searching tickets with query: %s", query)
        payload = self.client.search(query)
        return [TicketRecord.from_api(item) for item in payload.get("results") or []]

    def get_detailed_ticket(self, ticket_id: int) -> TicketRecord:
        ticket = self.client.get_ticket(ticket_id)
        if not ticket:
            raise LookupError(f"Ticket {ticket_id} not found")
        comments = self.client.get_ticket_comments(ticket_id)
        record = TicketRecord.from_api(ticket)
        record.full_text = build_full_text(ticket, comments)
        return record

    def batch_fetch_detailed_tickets(
        self,
        tickets: Sequence[TicketRecord],
        batch_size: int = DEFAULT_DETAIL_BATCH_SIZE,
    ) -> List[TicketRecord]:
        """Load ticket details in groups of ``batch_size`` worker threads.

        A group with any failure is logged and dropped; later groups still run.
        """
        detailed: List[TicketRecord] = []
        total_batches = (len(tickets) + batch_size - 1) // batch_size
        for start in range(0, len(tickets), batch_size):
            batch = tickets[start : start + batch_size]
            LOGGER.info(
                "Processing batch %s of %s (%s tickets)",
                start // batch_size + 1,
                total_batches,
                len(batch),
            )
            try:
                with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                    results = list(
                        executor.map(lambda item: self.get_detailed_ticket(item.id), batch)
                    )
                detailed.extend(results)
            except Exception as exc:
                LOGGER.error("Error processing batch starting at index %s: %s", start, exc)
            if start + batch_size < len(tickets) and self.batch_pause:
                time.sleep(self.batch_pause)
        return detailed

    def get_ticket_stats(self) -> Dict[str, Any]:
        try:
            counts = {
                status: int(self.client.get_tickets_by_status(status).get("count") or 0)
                for status in STAT_STATUSES
            }
        except Exception as exc:
            LOGGER.error("Error fetching ticket statistics: %s", exc)
            stats: Dict[str, Any] = {status: 0 for status in STAT_STATUSES}
            stats.update(total=0, error=str(exc))
            return stats
        return {**counts, "total": sum(counts.values())}
