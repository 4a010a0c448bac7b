"""
Structured logging for the workout API.

One JSON object per line in production. Every record carries the service
name and environment; request middleware and services attach context via
``extra={"extra_fields": {...}}``. Provider SDK loggers are capped at
WARNING so prompts and request bodies never reach the log.
"""
import logging
import sys
import json
from datetime import datetime
from typing import Any, Dict, Optional
from core.clock import isoformat_utc
from core.config import settings

SERVICE_NAME = "workout-api"

# SDKs that log request/response bodies at INFO/DEBUG
QUIET_LOGGERS = ("openai", "anthropic", "stripe", "httpx", "httpcore", "urllib3")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, environment: Optional[str] = None):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": isoformat_utc(datetime.fromtimestamp(record.created).astimezone()),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "environment": self.environment,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            log_data["exception_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            # Context never overwrites the envelope
            for key, value in extra_fields.items():
                log_data.setdefault(key, value)

        return json.dumps(log_data, default=str)


def setup_logging():
    """
    Configure application-wide logging.

    JSON when LOG_FORMAT=json or in production, plain text otherwise.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter: logging.Formatter = JSONFormatter(environment=settings.ENVIRONMENT)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s - {SERVICE_NAME} - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
