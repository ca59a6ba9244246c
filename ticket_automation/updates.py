"""Apply generated tags to Zendesk tickets."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from .analysis import Analysis, TicketRecord
from .errors import describe_error

LOGGER = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_SKIPPED = "skipped"
STATUS_DRY_RUN = "dry-run"
STATUS_ERROR = "error"
STATUS_APPLY = "apply"

NO_NEW_TAGS_REASON = "No new tags to apply"


class TagWriter(Protocol):
    def update_tags(self, ticket_id: int, tags: Sequence[str]) -> Dict[str, Any]:
        ...


@dataclass
class TaggingConfig:
    min_confidence: float = 0.7
    dry_run: bool = True
    delay_between_items: float = 0.1


@dataclass
class TagDecision:
    """Outcome of the side-effect free part of tagging a single ticket."""

    ticket_id: int
    status: str
    confidence: float
    tags_to_apply: List[str] = field(default_factory=list)
    new_tag_set: List[str] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass(frozen=True)
class TaggingResult:
    ticket_id: int
    status: str
    confidence: float
    tags: Tuple[str, ...] = ()
    reason: Optional[str] = None
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class BatchResult:
    total: int
    success: int
    skipped: int
    errors: int
    details: Tuple[TaggingResult, ...]
    dry_run: bool
    min_confidence: float
    duration_seconds: float = 0.0

    @property
    def error_details(self) -> List[TaggingResult]:
        return [item for item in self.details if item.status == STATUS_ERROR]


def filter_new_tags(suggested: Iterable[str], existing: Iterable[str]) -> List[str]:
    """Return suggested tags that are not blank and not already on the ticket."""
    current = set(existing)
    selected: List[str] = []
    for tag in suggested:
        if not isinstance(tag, str) or not tag.strip():
            continue
        if tag in current or tag in selected:
            continue
        selected.append(tag)
    return selected


class TagUpdater:
    """Decide and write tag updates for analysed tickets."""

    def __init__(
        self,
        client: TagWriter,
        config: Optional[TaggingConfig] = None,
        *,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.client = client
        self.config = config or TaggingConfig()
        self._sleep = sleep

    def decide(self, ticket: TicketRecord, analysis: Analysis) -> TagDecision:
        confidence = analysis.confidence
        if confidence < self.config.min_confidence:
            return TagDecision(
                ticket_id=ticket.id,
                status=STATUS_SKIPPED,
                confidence=confidence,
                reason=(
                    f"Confidence {confidence:.2f} below threshold {self.config.min_confidence}"
                ),
            )

        tags_to_apply = filter_new_tags(analysis.suggested_tags, ticket.tags)
        if not tags_to_apply:
            return TagDecision(
                ticket_id=ticket.id,
                status=STATUS_SKIPPED,
                confidence=confidence,
                reason=NO_NEW_TAGS_REASON,
            )

        new_tag_set = list(dict.fromkeys([*ticket.tags, *tags_to_apply]))
        if self.config.dry_run:
            return TagDecision(
                ticket_id=ticket.id,
                status=STATUS_DRY_RUN,
                confidence=confidence,
                tags_to_apply=tags_to_apply,
                new_tag_set=new_tag_set,
                reason=f"[DRY RUN] Would apply {len(tags_to_apply)} tags",
            )
        return TagDecision(
            ticket_id=ticket.id,
            status=STATUS_APPLY,
            confidence=confidence,
            tags_to_apply=tags_to_apply,
            new_tag_set=new_tag_set,
        )

    def apply(self, ticket: TicketRecord, analysis: Analysis) -> TaggingResult:
        decision = self.decide(ticket, analysis)
        if decision.status == STATUS_SKIPPED:
            LOGGER.info("Skipping ticket %s: %s", ticket.id, decision.reason)
            return TaggingResult(
                ticket_id=ticket.id,
                status=STATUS_SKIPPED,
                confidence=decision.confidence,
                reason=decision.reason,
            )
        if decision.status == STATUS_DRY_RUN:
            LOGGER.info(
                "Dry run: ticket %s would receive tags %s", ticket.id, decision.tags_to_apply
            )
            return TaggingResult(
                ticket_id=ticket.id,
                status=STATUS_DRY_RUN,
                confidence=decision.confidence,
                tags=tuple(decision.tags_to_apply),
                reason=decision.reason,
            )

        try:
            response = self.client.update_tags(ticket.id, decision.new_tag_set)
        except Exception as exc:
            message = describe_error(exc, ticket.id)
            LOGGER.error("Error applying tags to ticket %s: %s", ticket.id, message)
            return TaggingResult(
                ticket_id=ticket.id,
                status=STATUS_ERROR,
                confidence=decision.confidence,
                error=message,
                reason=f"Failed to apply tags: {message}",
            )
        LOGGER.info("Applied tags %s to ticket %s", decision.tags_to_apply, ticket.id)
        return TaggingResult(
            ticket_id=ticket.id,
            status=STATUS_SUCCESS,
            confidence=decision.confidence,
            tags=tuple(decision.tags_to_apply),
            response=response,
        )

    def batch_apply(
        self,
        analyses: Sequence[Analysis],
        tickets: Iterable[TicketRecord],
        *,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> BatchResult:
        """Tag each analysed ticket in order, pausing between remote writes.

        Per-ticket failures are recorded in the result and never stop the batch.
        Dry-run outcomes count as skipped.
        """
        started = time.monotonic()
        ticket_map = {ticket.id: ticket for ticket in tickets}
        total = len(analyses)
        LOGGER.info("Starting batch tagging for %s tickets", total)
        details: List[TaggingResult] = []
        counts = {STATUS_SUCCESS: 0, STATUS_SKIPPED: 0, STATUS_ERROR: 0}

        for index, analysis in enumerate(analyses):
            ticket = ticket_map.get(analysis.ticket_id)
            if ticket is None:
                LOGGER.warning("Ticket %s not found in provided tickets", analysis.ticket_id)
                result = TaggingResult(
                    ticket_id=analysis.ticket_id,
                    status=STATUS_ERROR,
                    confidence=analysis.confidence,
                    error="Ticket not found",
                    reason="Ticket not found in fetched tickets",
                )
            else:
                LOGGER.debug("Processing ticket %s (%s/%s)", ticket.id, index + 1, total)
                try:
                    result = self.apply(ticket, analysis)
                except Exception as exc:
                    LOGGER.exception("Unexpected error while tagging ticket %s", ticket.id)
                    result = TaggingResult(
                        ticket_id=ticket.id,
                        status=STATUS_ERROR,
                        confidence=analysis.confidence,
                        error=str(exc),
                        reason=f"Failed to process: {exc}",
                    )
            details.append(result)
            if result.status == STATUS_DRY_RUN:
                counts[STATUS_SKIPPED] += 1
            else:
                counts[result.status] += 1

            if progress_callback:
                progress_callback(index + 1, total)
            if index < total - 1 and self.config.delay_between_items > 0:
                (self._sleep or time.sleep)(self.config.delay_between_items)

        batch = BatchResult(
            total=total,
            success=counts[STATUS_SUCCESS],
            skipped=counts[STATUS_SKIPPED],
            errors=counts[STATUS_ERROR],
            details=tuple(details),
            dry_run=self.config.dry_run,
            min_confidence=self.config.min_confidence,
            duration_seconds=time.monotonic() - started,
        )
        LOGGER.info(
            "Batch tagging complete: total=%s success=%s skipped=%s errors=%s duration=%.1fs",
            batch.total,
            batch.success,
            batch.skipped,
            batch.errors,
            batch.duration_seconds,
        )
        return batch
