"""Logging configuration for the ticket automation scripts."""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from rich.logging import RichHandler

from .config import resolve_path

DEFAULT_LOG_PATH = "logs/automation.log"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5


def configure_logging(config: Dict[str, Any], *, base_dir: Path | None = None) -> None:
    """Configure logging sinks based on YAML configuration."""
    logging.captureWarnings(True)
    logging.getLogger().handlers.clear()
    logging.getLogger().setLevel(logging.DEBUG)
    # urllib3 logs every connection at DEBUG, which drowns the file log.
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logging_config = config.get("logging", {})
    console_cfg = logging_config.get("console", {})
    file_cfg = logging_config.get("file", {})

    if console_cfg.get("enabled", True):
        level = str(console_cfg.get("level", "INFO")).upper()
        if console_cfg.get("rich_format", True):
            handler = RichHandler(level=level, rich_tracebacks=True, show_path=False)
            formatter = logging.Formatter("%(message)s")
        else:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(level)
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        handler.setFormatter(formatter)
        logging.getLogger().addHandler(handler)

    if file_cfg.get("enabled", True):
        file_path = resolve_path(file_cfg.get("path", DEFAULT_LOG_PATH), base=base_dir)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            file_path,
            mode="a",
            maxBytes=int(file_cfg.get("max_bytes", DEFAULT_MAX_BYTES)),
            backupCount=int(file_cfg.get("backup_count", DEFAULT_BACKUP_COUNT)),
            encoding="utf-8",
        )
        handler.setLevel(str(file_cfg.get("level", "DEBUG")).upper())
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logging.getLogger().addHandler(handler)
