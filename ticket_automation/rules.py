"""Weighted keyword rule tables used by the content analyzer."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

LOGGER = logging.getLogger(__name__)

NORMAL_PRIORITY = "normal"
SENTIMENT_POLARITIES = ("positive", "negative")


def _normalise_keywords(keywords: Iterable[Any]) -> Tuple[str, ...]:
    """Lower-case, strip and de-duplicate keywords keeping first-seen order."""
    if isinstance(keywords, str):
        raise ValueError(f"Keywords must be a sequence of strings, not a string ({keywords!r})")
    ordered: Dict[str, None] = {}
    for keyword in keywords:
        text = str(keyword or "").strip().lower()
        if text:
            ordered.setdefault(text, None)
    return tuple(ordered)


@dataclass(frozen=True)
class KeywordRule:
    keywords: Tuple[str, ...]
    weight: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "keywords", _normalise_keywords(self.keywords))
        if self.weight <= 0:
            raise ValueError(f"Keyword rule weight must be positive (got {self.weight})")


@dataclass(frozen=True)
class RuleTables:
    """Immutable bundle of the four analysis dimensions.

    Mapping order is significant: categories tie-break on it and priority
    tiers are scanned in it.
    """

    categories: Mapping[str, KeywordRule]
    priorities: Mapping[str, KeywordRule]
    sentiment: Mapping[str, Tuple[str, ...]]
    products: Mapping[str, Tuple[str, ...]]

    def __post_init__(self) -> None:
        missing = [polarity for polarity in SENTIMENT_POLARITIES if polarity not in self.sentiment]
        if missing:
            raise ValueError(f"Sentiment rules missing polarities: {', '.join(missing)}")
        if NORMAL_PRIORITY in self.priorities:
            raise ValueError("'normal' is the default priority and cannot carry keywords")
        object.__setattr__(self, "categories", MappingProxyType(dict(self.categories)))
        object.__setattr__(self, "priorities", MappingProxyType(dict(self.priorities)))
        object.__setattr__(
            self,
            "sentiment",
            MappingProxyType({k: _normalise_keywords(v) for k, v in self.sentiment.items()}),
        )
        object.__setattr__(
            self,
            "products",
            MappingProxyType({k: _normalise_keywords(v) for k, v in self.products.items()}),
        )


DEFAULT_RULES = RuleTables(
    categories={
        "technical": KeywordRule(
            keywords=(
                "bug", "error", "crash", "broken", "not working", "malfunction",
                "technical issue", "system down", "outage", "server", "api",
                "integration", "database", "connection", "timeout", "performance",
                "slow loading", "loading time", "latency", "500 error", "404 error",
            ),
            weight=2,
        ),
        "billing": KeywordRule(
            keywords=(
                "billing", "payment", "invoice", "charge", "refund", "subscription",
                "credit card", "transaction", "receipt", "price", "cost", "fee",
                "upgrade", "downgrade", "plan", "pricing", "discount", "promo code",
            ),
            weight=2,
        ),
        "account": KeywordRule(
            keywords=(
                "account", "login", "password", "forgot password", "reset password",
                "username", "profile", "settings", "security", "two-factor",
                "verification", "email change", "phone number", "personal information",
            ),
            weight=2,
        ),
        "feature_request": KeywordRule(
            keywords=(
                "feature request", "new feature", "enhancement", "suggestion",
                "improvement", "would like", "wish", "could you add", "missing",
                "please add", "request",
            ),
            weight=2,
        ),
        "support": KeywordRule(
            keywords=(
                "help", "question", "how to", "tutorial", "guide", "documentation",
                "instructions", "explain", "clarification", "confused", "understand",
            ),
            weight=1,
        ),
        "sales": KeywordRule(
            keywords=(
                "sales", "demo", "trial", "purchase", "buy", "quote", "pricing",
                "enterprise", "business plan", "custom plan", "consultation",
                "pre-sales", "product information",
            ),
            weight=2,
        ),
    },
    priorities={
        "urgent": KeywordRule(
            keywords=(
                "urgent", "emergency", "critical", "asap", "immediately", "down",
                "broken", "not working", "production", "live site", "revenue impact",
                "security breach", "data loss", "urgent help needed",
            ),
            weight=3,
        ),
        "high": KeywordRule(
            keywords=(
                "important", "priority", "business impact", "customer facing",
                "deadline", "time sensitive", "blocking", "major issue",
            ),
            weight=2,
        ),
        "low": KeywordRule(
            keywords=(
                "when you have time", "no rush", "minor", "cosmetic", "nice to have",
                "suggestion", "feedback", "general question",
            ),
            weight=1,
        ),
    },
    sentiment={
        "negative": (
            "frustrated", "angry", "disappointed", "terrible", "awful", "horrible",
            "worst", "hate", "useless", "broken", "fed up", "unacceptable",
            "ridiculous", "pathetic", "disgusted",
        ),
        "positive": (
            "great", "excellent", "amazing", "wonderful", "fantastic", "love",
            "perfect", "awesome", "brilliant", "outstanding", "impressed",
            "satisfied", "happy", "pleased",
        ),
    },
    products={
        "mobile": ("mobile", "app", "ios", "android", "phone", "smartphone", "tablet"),
        "web": ("website", "browser", "chrome", "firefox", "safari", "edge", "web app"),
        "api": ("api", "endpoint", "webhook", "integration", "developer", "sdk"),
        "desktop": ("desktop", "windows", "mac", "macos", "linux", "software", "application"),
    },
)


def _keyword_sequence(value: Any, path: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{path} must be a list of keywords (got {value!r})")
    return list(value)


def _weighted_rules(
    base: Mapping[str, KeywordRule], overrides: Optional[Mapping[str, Any]], section: str
) -> Dict[str, KeywordRule]:
    merged: Dict[str, KeywordRule] = dict(base)
    for label, spec in (overrides or {}).items():
        if not isinstance(spec, Mapping):
            raise ValueError(f"rules.{section}.{label} must be a mapping with keywords/weight")
        current = merged.get(label)
        keywords = _keyword_sequence(spec.get("keywords"), f"rules.{section}.{label}.keywords")
        if spec.get("extend", False) and current is not None:
            keywords = list(current.keywords) + keywords
        weight = spec.get("weight", current.weight if current else 1)
        merged[str(label)] = KeywordRule(keywords=tuple(keywords), weight=float(weight))
    return merged


def _keyword_lists(
    base: Mapping[str, Tuple[str, ...]], overrides: Optional[Mapping[str, Any]], section: str
) -> Dict[str, Tuple[str, ...]]:
    merged: Dict[str, Tuple[str, ...]] = dict(base)
    for label, keywords in (overrides or {}).items():
        merged[str(label)] = tuple(_keyword_sequence(keywords, f"rules.{section}.{label}"))
    return merged


def build_rule_tables(
    config: Optional[Mapping[str, Any]] = None, *, base: RuleTables = DEFAULT_RULES
) -> RuleTables:
    """Return rule tables with the optional ``rules`` config section merged over ``base``.

    Weighted sections accept ``{label: {keywords: [...], weight: n, extend: bool}}``;
    sentiment and product sections accept ``{label: [...]}``. Labels that are not
    present in ``base`` are appended after the built-in ones.
    """
    section = (config or {}).get("rules") or {}
    if not section:
        return base
    tables = RuleTables(
        categories=_weighted_rules(base.categories, section.get("categories"), "categories"),
        priorities=_weighted_rules(base.priorities, section.get("priorities"), "priorities"),
        sentiment=_keyword_lists(base.sentiment, section.get("sentiment"), "sentiment"),
        products=_keyword_lists(base.products, section.get("products"), "products"),
    )
    LOGGER.info(
        "Loaded rule tables: %s categories, %s priority tiers, %s products",
        len(tables.categories),
        len(tables.priorities),
        len(tables.products),
    )
    return tables
