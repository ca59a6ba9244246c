"""Configuration helpers for the Zendesk ticket automation tools."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONFIG_LOCATIONS = (
    PACKAGE_ROOT / "config" / "config.yaml",
    PACKAGE_ROOT / "config" / "config.yml",
    Path("./config/config.yaml"),
    Path("./config/config.yml"),
    Path.home() / ".zendesk_automation" / "config.yaml",
)

# (environment variable, config section, key)
ENV_OVERRIDES = (
    ("ZENDESK_EMAIL", "zendesk", "email"),
    ("ZENDESK_TOKEN", "zendesk", "api_token"),
    ("ZENDESK_SUBDOMAIN", "zendesk", "subdomain"),
    ("SLACK_TOKEN", "slack", "token"),
    ("SLACK_CHANNEL", "slack", "channel"),
)


def resolve_path(path_str: str | None, *, base: Path | None = None) -> Path:
    """Resolve a path string that may be relative to an optional base directory."""
    base_path = base or Path.cwd()
    if not path_str:
        return base_path
    path = Path(path_str)
    if not path.is_absolute():
        path = base_path / path
    return path


def load_config(
    path: str | os.PathLike[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    required: bool = True,
) -> Dict[str, Any]:
    """Load configuration from YAML and apply environment overrides.

    Parameters
    ----------
    path: Optional path to a configuration file. If not provided, default
        locations will be searched.
    environ: Mapping used for credential overrides, ``os.environ`` by default.
    required: When false a missing file yields an empty configuration so that
        environment variables alone can drive the tools.
    """
    if path:
        candidate_paths = [Path(path)]
    else:
        candidate_paths = list(DEFAULT_CONFIG_LOCATIONS)

    data: Dict[str, Any] | None = None
    for candidate in candidate_paths:
        if candidate.exists():
            with candidate.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Unable to parse configuration file {candidate}") from exc
            break
    if data is None:
        if required:
            raise ConfigError(
                "No configuration file could be located. Provide --config or create "
                "config/config.yaml (see config/config.example.yaml)."
            )
        data = {}
    return apply_env_overrides(data, environ=environ)


def apply_env_overrides(
    config: Dict[str, Any], *, environ: Mapping[str, str] | None = None
) -> Dict[str, Any]:
    """Copy credentials and the log level from environment variables into ``config``."""
    env = os.environ if environ is None else environ
    for variable, section, key in ENV_OVERRIDES:
        value = env.get(variable)
        if value:
            config.setdefault(section, {})[key] = value
    log_level = env.get("LOG_LEVEL")
    if log_level:
        console_cfg = config.setdefault("logging", {}).setdefault("console", {})
        console_cfg["level"] = log_level.upper()
    return config


@dataclass
class AutomationSettings:
    """Typed view over the ``automation`` configuration section."""

    hours_back: int = 24
    batch_size: int = 10
    max_tickets: int = 50
    delay_between_items: float = 0.1
    delay_between_batches: float = 1.0
    dry_run: bool = True
    min_confidence: float = 0.7
    enable_reporting: bool = True
    continuous: bool = False
    interval_minutes: int = 60
    exclude_tags: List[str] = field(default_factory=lambda: ["auto-processed"])

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides: Any) -> "AutomationSettings":
        section = dict(config.get("automation") or {})
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in section.items() if key in known}
        values.update({key: value for key, value in overrides.items() if value is not None})
        settings = cls(**values)
        settings.validate()
        return settings

    def validate(self) -> None:
        if not 0.0 <= float(self.min_confidence) <= 1.0:
            raise ConfigError(
                f"automation.min_confidence must be between 0 and 1 (got {self.min_confidence})"
            )
        if int(self.hours_back) <= 0:
            raise ConfigError("automation.hours_back must be positive")
        if int(self.batch_size) <= 0:
            raise ConfigError("automation.batch_size must be positive")

    def with_changes(self, **changes: Any) -> "AutomationSettings":
        updated = replace(self, **changes)
        updated.validate()
        return updated

    def as_dict(self) -> Dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}
