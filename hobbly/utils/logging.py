"""
Structured logging for the catalog.

Every record carries the request's correlation id and, once the bearer
token has been resolved, the masked subject of the requester. Keyword
arguments passed to the logger become JSON fields.
"""

import hashlib
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Optional

from hobbly.utils.logging_config import LoggingConfig, get_logger

_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_requester_var: ContextVar[Optional[str]] = ContextVar("requester", default=None)

# Applied in order; the phone pattern must not run before the token patterns
_REDACTIONS = [
    (re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[REDACTED_TOKEN]"),
    (re.compile(r"(?i)(api[_-]?key|apikey|token|secret|password)[\s:=]+[A-Za-z0-9_.-]{20,}"), r"\1=[REDACTED]"),
    (re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE), "[REDACTED_EMAIL]"),
    (re.compile(r"\+?\d[\d\s().-]{7,}\d"), "[REDACTED_PHONE]"),
]


def generate_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Bind a correlation id (generated when not given) for the duration of a request."""
    correlation_id = correlation_id or generate_correlation_id()
    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)


def bind_requester(subject_id: Optional[str]) -> None:
    """Attach the (masked) requester to every later record of this request."""
    _requester_var.set(mask_user_id(subject_id))


def mask_sensitive_data(text: str) -> str:
    """Redact tokens, emails and phone numbers from free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Shorten a subject id to a prefix plus a stable hash."""
    if not user_id or not LoggingConfig.LOG_MASK_SENSITIVE or len(user_id) <= 12:
        return user_id
    digest = hashlib.sha256(user_id.encode()).hexdigest()[:8]
    return f"{user_id[:4]}...{digest}"


def sanitize_text(text: Optional[str], max_length: int = 200) -> Optional[str]:
    """Search term or title as it may appear in a log record (None when suppressed)."""
    if not text or not LoggingConfig.LOG_SEARCH_TERMS:
        return None
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return mask_sensitive_data(text)


class StructuredLogger:
    """Thin wrapper over a stdlib logger: keyword arguments become record fields."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        extra = {}
        correlation_id = _correlation_id_var.get()
        if correlation_id:
            extra["correlation_id"] = correlation_id
        requester = _requester_var.get()
        if requester:
            extra["requester"] = requester
        extra.update(fields)
        return extra

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._fields(fields), exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **fields)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Time a backend round trip; slow ones are logged as warnings."""
    logger = logger or get_structured_logger(__name__)
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if elapsed_ms > threshold:
            logger.warning(
                f"Slow operation: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold,
                **context
            )
        else:
            logger.debug(
                f"Completed {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                **context
            )
