"""Shared modules for the Zendesk ticket automation scripts."""

from .config import AutomationSettings, ConfigError, load_config, resolve_path
from .logging_setup import configure_logging
from .zendesk_client import ZendeskClient
from .rules import DEFAULT_RULES, RuleTables, build_rule_tables
from .analysis import Analysis, ContentAnalyzer, TicketRecord, analyze
from .tag_policy import generate_tags
from .updates import BatchResult, TaggingConfig, TaggingResult, TagUpdater
from .fetcher import TicketFetchCriteria, TicketFetcher
from .reporting import AutomationReport, format_tagging_report
from .workflow import TicketAutomationSystem
from .chat_agent import ChatAgent, SlackClient, parse_command
from .faq import FaqLookup

__all__ = [
    "AutomationSettings",
    "ConfigError",
    "load_config",
    "resolve_path",
    "configure_logging",
    "ZendeskClient",
    "DEFAULT_RULES",
    "RuleTables",
    "build_rule_tables",
    "Analysis",
    "ContentAnalyzer",
    "TicketRecord",
    "analyze",
    "generate_tags",
    "BatchResult",
    "TaggingConfig",
    "TaggingResult",
    "TagUpdater",
    "TicketFetchCriteria",
    "TicketFetcher",
    "AutomationReport",
    "format_tagging_report",
    "TicketAutomationSystem",
    "ChatAgent",
    "SlackClient",
    "parse_command",
    "FaqLookup",
]
