"""
Centralized logging configuration.

Usage:
    from eipbot.logging_config import configure_logging, correlation_id_var

    configure_logging()
    correlation_id_var.set("ethereum/EIPs#1234")

Environment Variables:
    EIPBOT_LOG_LEVEL - Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from typing import Optional

# Pull request currently being processed, e.g. "ethereum/EIPs#1234"
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "exc_info",
    "exc_text",
    "stack_info",
    "message",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter that tags every record with the current pull request."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def _resolve_level(log_level: Optional[str]) -> int:
    if log_level is None:
        log_level = os.environ.get("EIPBOT_LOG_LEVEL", "INFO")
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_structured_logging(log_level: Optional[str] = None) -> None:
    """Configure the root logger for JSON output on stdout.

    Meant for CI runners that ship logs to an aggregator.
    """
    level = _resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.setLevel(level)
    root_logger.addHandler(handler)


def configure_logging(log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure plain-text console logging for the ``eipbot`` logger tree.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("eipbot")

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()
    logger.setLevel(_resolve_level(log_level))

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
