"""Logging utilities with structured output and context propagation.

This module provides:
    - JSON structured logging for log aggregation systems
    - generation_id / stage context propagation across all log messages
    - Console + rotating file handlers

Usage:
    >>> from observability.logging import setup_logging, stage_context
    >>> setup_logging(config)
    >>> with stage_context("3f2a...", "execute-research"):
    ...     logger.info("Search complete")  # Tagged with generation_id and stage
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler, RotatingFileHandler
from typing import Any, Iterator

LOG_FILE_NAME = "press_review.log"

generation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("generation_id", default="-")
stage_var: contextvars.ContextVar[str] = contextvars.ContextVar("stage", default="-")

# Attributes present on every LogRecord; anything else is an "extra" field
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "generation_id", "stage", "message",
))


@contextmanager
def stage_context(generation_id: str, stage: str) -> Iterator[None]:
    """Tag every log record in the block with the generation id and stage.

    Previous values are restored on exit, so an inline handoff that runs
    the next stage inside this block does not leak its context back.
    """
    id_token = generation_id_var.set(generation_id)
    stage_token = stage_var.set(stage)
    try:
        yield
    finally:
        stage_var.reset(stage_token)
        generation_id_var.reset(id_token)


class ContextFilter(logging.Filter):
    """Injects generation_id and stage into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.generation_id = generation_id_var.get()
        record.stage = stage_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "...", "message": "...",
         "generation_id": "...", "stage": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "generation_id": getattr(record, "generation_id", "-"),
            "stage": getattr(record, "stage", "-"),
        }

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Text formatter with context information.

    Format: TIMESTAMP [LEVEL] [generation_id/stage] logger: message
    """

    def __init__(self, include_date: bool = False):
        datefmt = "%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S"
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(generation_id)s/%(stage)s] %(name)s: %(message)s",
            datefmt=datefmt,
        )


def setup_logging(
    config: Any,
    verbose: bool = False,
) -> bool:
    """Configure logging with console and file handlers.

    If the log directory is not writable, falls back to console-only logging.

    Args:
        config: Application configuration with logging settings
        verbose: If True, override config and use DEBUG level for console

    Returns:
        True if file logging is enabled, False if console-only (fallback)
    """
    console_level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    context_filter = ContextFilter()

    if config.log_format == "json":
        console_fmt = JsonFormatter()
        file_fmt = JsonFormatter()
    else:
        console_fmt = TextFormatter(include_date=False)
        file_fmt = TextFormatter(include_date=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(console_fmt)
    console.addFilter(context_filter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.addHandler(console)

    file_logging_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        test_file = config.log_dir / ".write_test"
        test_file.touch()
        test_file.unlink()

        log_file = config.log_dir / LOG_FILE_NAME
        if config.log_max_bytes > 0:
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
        else:
            file_handler = TimedRotatingFileHandler(
                log_file,
                when="midnight",
                interval=1,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )

        file_handler.setLevel(logging.DEBUG)  # File always captures everything
        file_handler.setFormatter(file_fmt)
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True

    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    # Reduce noise from third-party libraries
    for lib in ("aiohttp", "openai", "httpx", "httpcore", "asyncio"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return file_logging_enabled
