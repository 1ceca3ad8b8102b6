"""
JSON logging for the notifier.

Every line carries the correlation id of the request or scheduler run that
produced it. Dispatch and webhook records are also written to a separate
delivery log so outbound traffic can be audited without the API noise.
"""
import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from ..config.settings import Settings, settings as default_settings


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Structured `extra=` keys copied onto the JSON line
CONTEXT_KEYS = (
    "app_user_id",
    "chat_user_id",
    "event_type",
    "project_id",
    "task_id",
    "reason",
    "status_code",
    "recipient",
    "code_prefix",
    "error_type",
    "duration_ms",
)

DELIVERY_LOGGERS = ("tasknotify.services.dispatcher", "tasknotify.services.webhook_client")

_MAX_BYTES = 5 * 1024 * 1024


class CorrelationFilter(logging.Filter):
    """Stamps the current correlation id and environment on each record"""

    def __init__(self, environment: str):
        super().__init__()
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.environment = self.environment
        return True


class NotifierJsonFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "env": getattr(record, "environment", None),
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            line["correlation_id"] = correlation_id

        line.update({key: getattr(record, key) for key in CONTEXT_KEYS if hasattr(record, key)})

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


def _rotating(path: str, formatter: logging.Formatter, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure root logging: stdout, notifier.log, errors.log and delivery.log"""
    config = config or default_settings
    os.makedirs(config.logs_path, exist_ok=True)

    formatter = NotifierJsonFormatter()
    context = CorrelationFilter(config.environment)

    root = logging.getLogger()
    root.setLevel(config.log_level.upper())
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    handlers = [
        console,
        _rotating(os.path.join(config.logs_path, "notifier.log"), formatter),
        _rotating(os.path.join(config.logs_path, "errors.log"), formatter, logging.ERROR),
    ]
    for handler in handlers:
        handler.addFilter(context)
        root.addHandler(handler)

    delivery = _rotating(os.path.join(config.logs_path, "delivery.log"), formatter)
    delivery.addFilter(context)
    for name in DELIVERY_LOGGERS:
        delivery_logger = logging.getLogger(name)
        delivery_logger.handlers.clear()
        delivery_logger.addHandler(delivery)

    for noisy in ("uvicorn.access", "httpx", "httpcore", "pymongo", "motor", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
