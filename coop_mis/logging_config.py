"""
Structured Logging Configuration Module

JSON (or plain text) log lines for cooperative operations. Every line logged
while an API request is being served carries that request's correlation id.
"""

import contextvars
import logging
import json
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SERVICE_NAME = "coop_mis"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Structured attributes copied from a record into the JSON line when present
STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")

_request_id = contextvars.ContextVar('request_id', default=None)


def get_request_id() -> Optional[str]:
    """Correlation id of the request being served, if any"""
    return _request_id.get()


@contextmanager
def request_context(request_id: Optional[str] = None):
    """Bind a correlation id to everything logged inside the block"""
    token = _request_id.set(request_id or uuid.uuid4().hex)
    try:
        yield _request_id.get()
    finally:
        _request_id.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per log record"""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = getattr(record, 'correlation_id', None) or get_request_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = SERVICE_NAME,
                  log_format: str = "json") -> logging.Logger:
    """
    Configure the application logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        logger_name: Root of the application's logger tree
        log_format: "json" for structured lines, "text" for plain lines

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(TEXT_FORMAT) if log_format == "text" else JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    # Handlers sit on this logger only
    logger.propagate = False
    return logger


def get_logger(name: str = SERVICE_NAME) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a user action with structured fields.

    Args:
        logger: Logger to write to
        level: info, warning, error...
        message: Human readable message
        user_id: Email or id of the acting user
        action: What was attempted (login, login_failed, permission_denied...)
        resource: What it was attempted on
        correlation_id: Overrides the current request's id
        extra: Any further structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    fields = {'user_id': user_id, 'action': action, 'resource': resource,
              'correlation_id': correlation_id, 'extra': extra}
    logger.log(levelno, message, extra={k: v for k, v in fields.items() if v})
