"""Structured logging configuration.

Provides JSON-formatted logging suitable for ELK, CloudWatch, Datadog or any
JSON-based log aggregation system.

All logs include:
- ISO8601 timestamp
- Log level
- Logger name
- Event type (for filtering)
- Additional structured data

Token lifecycle events are tagged as security events so that issuance,
activation and revocation can be traced without ever logging a token id.
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from keygate.core.config import settings


class SIEMJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding service metadata and an event_type to every record."""

    def __init__(self, *args, **kwargs):
        super().__init__(
            *args,
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "@timestamp",
                "levelname": "level",
                "name": "logger",
            },
            **kwargs,
        )

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["@timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record["service"] = {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

        if "level" in log_record:
            log_record["level"] = log_record["level"].upper()

        if "event_type" not in log_record:
            log_record["event_type"] = f"log.{record.name}"

        log_record["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }


class SecurityEventFilter(logging.Filter):
    """Tag records from security loggers or about tokens as security events."""

    SECURITY_LOGGERS = {
        "security.tokens",
        "security.operator",
    }

    SECURITY_KEYWORDS = {
        "token", "device", "revoke", "denied", "rejected", "operator",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        is_security_logger = any(
            record.name.startswith(name) for name in self.SECURITY_LOGGERS
        )
        msg_lower = str(record.getMessage()).lower()
        has_security_keyword = any(
            keyword in msg_lower for keyword in self.SECURITY_KEYWORDS
        )

        if not getattr(record, "is_security_event", False):
            record.is_security_event = is_security_logger or has_security_keyword

        return True


class _SecurityOnlyFilter(logging.Filter):
    """Filter that only allows security events."""

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "is_security_event", False)


def configure_logging(log_dir: str | None = None) -> None:
    """Configure structured logging for the application.

    Sets up:
    1. Console handler with JSON formatting
    2. Rotating file handlers (if the log directory exists)
    3. Security event tagging

    Call this at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root_logger.handlers.clear()

    json_formatter = SIEMJsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    console_handler.addFilter(SecurityEventFilter())
    root_logger.addHandler(console_handler)

    path = Path(log_dir or settings.LOG_DIR)
    if path.exists():
        _setup_file_handlers(path, json_formatter)

    _configure_uvicorn_loggers(json_formatter)

    logging.info(
        "Logging configured",
        extra={
            "event_type": "system.startup.logging_configured",
            "log_level": settings.LOG_LEVEL,
            "file_logging": path.exists(),
        },
    )


def _setup_file_handlers(log_dir: Path, formatter: logging.Formatter) -> None:
    """Set up rotating file handlers for application and security logs."""
    root_logger = logging.getLogger()

    app_handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / "application.log",
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
    )
    app_handler.setFormatter(formatter)
    app_handler.addFilter(SecurityEventFilter())
    root_logger.addHandler(app_handler)

    security_handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / "security.log",
        when="midnight",
        interval=1,
        backupCount=365,
        encoding="utf-8",
    )
    security_handler.setFormatter(formatter)
    security_handler.addFilter(SecurityEventFilter())
    security_handler.addFilter(_SecurityOnlyFilter())
    root_logger.addHandler(security_handler)


def _configure_uvicorn_loggers(formatter: logging.Formatter) -> None:
    """Configure uvicorn loggers to use JSON format."""
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def format_security_event(
    event_type: str,
    severity: str,
    description: str,
    device_id: str | None = None,
    token_hint: str | None = None,
    ip_address: str | None = None,
    metadata: dict | None = None,
) -> dict:
    """Format a security event for structured logging.

    Returns a dict suitable for logging.info(..., extra=...).

    Usage:
        logger.info(
            "Token activated",
            extra=format_security_event(
                event_type="token.activated",
                severity="info",
                description="Pending token activated on first validation",
                device_id=device_id,
                token_hint=token_hint(token_id),
            )
        )
    """
    event = {
        "event_type": event_type,
        "severity": severity,
        "description": description,
        "is_security_event": True,
    }

    if device_id:
        event["device_id"] = device_id
    if token_hint:
        event["token_hint"] = token_hint
    if ip_address:
        event["ip_address"] = ip_address
    if metadata:
        event["metadata"] = metadata

    return event
