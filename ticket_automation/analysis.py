"""Keyword driven content analysis for Zendesk tickets."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from dateutil import parser as date_parser

from .rules import DEFAULT_RULES, NORMAL_PRIORITY, RuleTables
from .tag_policy import ANALYSIS_FAILED_TAG, PROCESSED_TAG, generate_tags

LOGGER = logging.getLogger(__name__)

CATEGORY_SCORE_SCALE = 5.0
PRIORITY_WEIGHT_SCALE = 3.0
PRIORITY_DEFAULT_CONFIDENCE = 0.5
SENTIMENT_HIT_SCALE = 3.0
LENGTH_SCALE = 500.0


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, TypeError):
            LOGGER.debug("Unable to parse datetime value %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class TicketRecord:
    id: int
    subject: str
    description: str
    tags: List[str] = field(default_factory=list)
    status: Optional[str] = None
    priority: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    full_text: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "TicketRecord":
        raw_tags = payload.get("tags") or []
        if isinstance(raw_tags, str):
            raw_tags = [raw_tags]
        tags = list(dict.fromkeys(str(tag) for tag in raw_tags if tag))
        return cls(
            id=int(payload.get("id", 0)),
            subject=payload.get("subject") or "",
            description=payload.get("description") or "",
            tags=tags,
            status=payload.get("status"),
            priority=payload.get("priority"),
            created_at=_parse_timestamp(payload.get("created_at")),
            updated_at=_parse_timestamp(payload.get("updated_at")),
            full_text=payload.get("fullText") or payload.get("full_text"),
        )

    @property
    def analysis_text(self) -> str:
        return self.full_text or self.description or self.subject or ""


@dataclass
class CategoryMatch:
    category: str
    score: float
    matched_keywords: List[str]
    confidence: float


@dataclass
class PriorityMatch:
    level: str
    score: float
    matched_keywords: List[str]
    confidence: float


@dataclass
class SentimentMatch:
    sentiment: str
    score: int
    positive_words: List[str]
    negative_words: List[str]
    confidence: float


@dataclass
class ProductMatch:
    product: str
    matched_keywords: List[str]
    confidence: float


@dataclass
class Analysis:
    ticket_id: int
    categories: List[CategoryMatch]
    priority: PriorityMatch
    sentiment: SentimentMatch
    products: List[ProductMatch]
    suggested_tags: List[str] = field(default_factory=list)
    confidence: float = 0.0
    error: Optional[str] = None

    @property
    def top_category(self) -> Optional[CategoryMatch]:
        return self.categories[0] if self.categories else None

    @property
    def top_product(self) -> Optional[ProductMatch]:
        return self.products[0] if self.products else None

    @classmethod
    def failed(cls, ticket_id: int, message: str) -> "Analysis":
        """Degraded result used when a ticket cannot be analysed."""
        return cls(
            ticket_id=ticket_id,
            categories=[],
            priority=PriorityMatch(level=NORMAL_PRIORITY, score=0, matched_keywords=[], confidence=0.0),
            sentiment=SentimentMatch(
                sentiment="neutral", score=0, positive_words=[], negative_words=[], confidence=0.0
            ),
            products=[],
            suggested_tags=[PROCESSED_TAG, ANALYSIS_FAILED_TAG],
            confidence=0.0,
            error=message,
        )


class ContentAnalyzer:
    """Score ticket text against weighted keyword rule tables.

    Matching is a literal, case-insensitive substring scan per keyword, so
    "api" also matches inside "capitalize".
    """

    def __init__(self, rules: RuleTables = DEFAULT_RULES) -> None:
        self.rules = rules

    # -- Per dimension scoring ---------------------------------------------------
    def categorize(self, text: str) -> List[CategoryMatch]:
        categories: List[CategoryMatch] = []
        for category, rule in self.rules.categories.items():
            matched = [keyword for keyword in rule.keywords if keyword in text]
            score = rule.weight * len(matched)
            if score > 0:
                categories.append(
                    CategoryMatch(
                        category=category,
                        score=score,
                        matched_keywords=matched,
                        confidence=min(score / CATEGORY_SCORE_SCALE, 1.0),
                    )
                )
        # sorted() is stable: equal scores keep rule table order.
        return sorted(categories, key=lambda match: match.score, reverse=True)

    def analyze_priority(self, text: str) -> PriorityMatch:
        level = NORMAL_PRIORITY
        best_weight = 0.0
        matched_keywords: List[str] = []
        for tier, rule in self.rules.priorities.items():
            for keyword in rule.keywords:
                if keyword not in text:
                    continue
                if rule.weight > best_weight:
                    level = tier
                    best_weight = rule.weight
                matched_keywords.append(keyword)
        if matched_keywords:
            confidence = min(best_weight / PRIORITY_WEIGHT_SCALE, 1.0)
        else:
            confidence = PRIORITY_DEFAULT_CONFIDENCE
        return PriorityMatch(
            level=level,
            score=best_weight,
            matched_keywords=matched_keywords,
            confidence=confidence,
        )

    def analyze_sentiment(self, text: str) -> SentimentMatch:
        positive_words = [word for word in self.rules.sentiment["positive"] if word in text]
        negative_words = [word for word in self.rules.sentiment["negative"] if word in text]
        positive, negative = len(positive_words), len(negative_words)
        if negative > positive:
            sentiment = "negative"
        elif positive > negative:
            sentiment = "positive"
        else:
            sentiment = "neutral"
        return SentimentMatch(
            sentiment=sentiment,
            score=abs(positive - negative),
            positive_words=positive_words,
            negative_words=negative_words,
            confidence=min((positive + negative) / SENTIMENT_HIT_SCALE, 1.0),
        )

    def analyze_products(self, text: str) -> List[ProductMatch]:
        products: List[ProductMatch] = []
        for product, keywords in self.rules.products.items():
            if not keywords:
                continue
            matched = [keyword for keyword in keywords if keyword in text]
            if matched:
                products.append(
                    ProductMatch(
                        product=product,
                        matched_keywords=matched,
                        confidence=min(len(matched) / len(keywords), 1.0),
                    )
                )
        return sorted(products, key=lambda match: match.confidence, reverse=True)

    @staticmethod
    def overall_confidence(
        categories: Sequence[CategoryMatch],
        priority: PriorityMatch,
        sentiment: SentimentMatch,
        text_length: int,
    ) -> float:
        top_category = categories[0].confidence if categories else 0.0
        length_factor = min(text_length / LENGTH_SCALE, 1.0)
        return (top_category + priority.confidence + sentiment.confidence + length_factor) / 4

    # -- Public API --------------------------------------------------------------
    def analyze_text(self, text: str, *, ticket_id: int = 0) -> Analysis:
        normalised = (text or "").lower()
        categories = self.categorize(normalised)
        priority = self.analyze_priority(normalised)
        sentiment = self.analyze_sentiment(normalised)
        analysis = Analysis(
            ticket_id=ticket_id,
            categories=categories,
            priority=priority,
            sentiment=sentiment,
            products=self.analyze_products(normalised),
        )
        analysis.suggested_tags = generate_tags(analysis)
        analysis.confidence = self.overall_confidence(
            categories, priority, sentiment, len(normalised)
        )
        return analysis

    def analyze_ticket(self, ticket: TicketRecord) -> Analysis:
        return self.analyze_text(ticket.analysis_text, ticket_id=ticket.id)

    def batch_analyze(
        self,
        tickets: Iterable[TicketRecord],
        *,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> List[Analysis]:
        """Analyse every ticket, replacing failures with a degraded result."""
        ticket_list = list(tickets)
        total = len(ticket_list)
        LOGGER.info("Analyzing %s tickets", total)
        results: List[Analysis] = []
        for index, ticket in enumerate(ticket_list, start=1):
            try:
                analysis = self.analyze_ticket(ticket)
            except Exception as exc:
                LOGGER.error("Error analyzing ticket %s: %s", ticket.id, exc)
                analysis = Analysis.failed(ticket.id, str(exc))
            else:
                LOGGER.info(
                    "Ticket %s analysed: confidence=%.2f priority=%s sentiment=%s tags=%s",
                    analysis.ticket_id,
                    analysis.confidence,
                    analysis.priority.level,
                    analysis.sentiment.sentiment,
                    analysis.suggested_tags,
                )
            results.append(analysis)
            if progress_callback:
                progress_callback(index, total)
        LOGGER.info("Analysis complete for %s tickets", len(results))
        return results


def analyze(text: str, rules: RuleTables = DEFAULT_RULES, *, ticket_id: int = 0) -> Analysis:
    """Analyse ``text`` against ``rules``; a pure function of its inputs."""
    return ContentAnalyzer(rules).analyze_text(text, ticket_id=ticket_id)
