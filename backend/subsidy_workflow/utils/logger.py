"""Structured JSON Logging with Correlation ID Support

Every record is one JSON object. Transition and outbox code passes the case
fields through ``extra=`` so a single application can be traced across the
API, the engine and the dispatcher:

    logger.info("Transition applied", extra={"application_id": ..., "to_state": ...})
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from ..config.settings import settings


# Context variable for correlation ID
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOG_FILE = "workflow.log"
ERROR_LOG_FILE = "workflow-error.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "pymongo", "apscheduler")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with the case fields passed via extra"""

    CASE_FIELDS = (
        "application_id", "from_state", "to_state", "actor_id",
        "idempotency_key", "version", "notification_id", "error_code",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update({
            field: getattr(record, field)
            for field in self.CASE_FIELDS
            if getattr(record, field, None) is not None
        })

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _rotating_handler(path: str, formatter: logging.Formatter, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: Optional[str] = None, logs_path: Optional[str] = None) -> None:
    """
    Configure the root logger: stdout plus workflow.log and workflow-error.log

    Args:
        level: Overrides LOG_LEVEL
        logs_path: Overrides LOGS_PATH; created if missing
    """
    logs_path = logs_path or settings.logs_path
    os.makedirs(logs_path, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = JsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler(os.path.join(logs_path, LOG_FILE), formatter))
    root_logger.addHandler(_rotating_handler(os.path.join(logs_path, ERROR_LOG_FILE), formatter, logging.ERROR))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name"""
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context"""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from context"""
    return correlation_id_var.get()
