from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

ROOT_LOGGER_NAME = "chart_agent"

# Structured fields lifted from ``extra={...}`` into the JSON record
STRUCTURED_FIELDS = (
    "event_type",
    "workflow_id",
    "stage",
    "chart_type",
    "tool",
    "duration_ms",
    "input",
    "output",
    "error",
)


class JSONFormatter(logging.Formatter):
    """Structured JSON formatter for telemetry-friendly logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(
    log_level: str = "INFO",
    log_file: str | None = "chart_agent.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    enable_console: bool = True,
) -> None:
    """
    Configure the ``chart_agent`` logger tree.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to the JSON log file; empty or None disables file logging
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of rotated files to keep
        enable_console: Whether to also log human-readable lines to stderr
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.propagate = False

    # Remove existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(console_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``chart_agent`` tree."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# Initialize logging on module import (can be reconfigured later)
if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
    setup_logging(
        log_level=os.getenv("CHART_AGENT_LOG_LEVEL", "INFO"),
        log_file=os.getenv("CHART_AGENT_LOG_FILE", "chart_agent.log"),
    )
