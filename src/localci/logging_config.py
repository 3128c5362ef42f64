"""
Centralized Logging Configuration

Configures the ``localci`` logger for both local shells and pipeline jobs.
Log lines go to stderr so they never interleave with a phase handler's own
stdout. Supports plain text and structured JSON output.

Usage:
    from localci.logging_config import configure_logging, phase_var

    configure_logging(log_level="DEBUG")
    phase_var.set("script")

Environment Variables (read through localci.config.Settings):
    LOCALCI_LOG_LEVEL - Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    LOCALCI_LOG_FORMAT - "text" (default) or "json"
    LOCALCI_LOG_DIR - Also write a log file into this directory
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional

# Phase currently being handled, attached to structured log records
phase_var: ContextVar[Optional[str]] = ContextVar("phase", default=None)

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_STANDARD_ATTRS = frozenset(
    {
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
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter that tags every record with the active phase."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "phase": phase_var.get(),
            "pid": record.process,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(
    log_level: Optional[str] = None,
    log_format: str = "text",
    log_dir: Optional[Path] = None,
    stream=None,
) -> logging.Logger:
    """
    Configure the ``localci`` logger.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "text" or "json"
        log_dir: Directory for an additional log file (disabled when None)
        stream: Console stream (defaults to sys.stderr)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("localci")

    # Clear existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_level is None:
        log_level = os.environ.get("LOCALCI_LOG_LEVEL", "INFO")
    level = getattr(logging, str(log_level).upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter(datefmt=DATE_FORMAT)
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        phase = phase_var.get() or "localci"
        log_path = log_dir / f"{phase}_{timestamp}_{os.getpid()}.log"

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        if level > logging.DEBUG:
            logger.setLevel(logging.DEBUG)
            console_handler.setLevel(level)

        logger.debug(f"Logging to: {log_path}")

    return logger
