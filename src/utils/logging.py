"""Structured logging with correlation ids, operation timing and redaction of chat content."""

import hashlib
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

from src.utils.logging_config import LoggingConfig, get_logger

_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_REDACTIONS = (
    (re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE), "[REDACTED_EMAIL]"),
    (re.compile(r"\b\+?\d[\d\s().-]{7,}\b"), "[REDACTED_PHONE]"),
    (re.compile(r"(?i)(api[_-]?key|token|secret|password|auth)[\s:=]+([A-Za-z0-9_-]{20,})"), r"\1=[REDACTED]"),
    (re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/-]+=*"), "Bearer [REDACTED]"),
)


def generate_correlation_id(prefix: str = "ntf") -> str:
    """``<prefix>_<12 hex>``; ntf for notifications, cmd for chat commands, req for API calls."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Scope a correlation id to the enclosed block (and tasks created inside it)."""
    token = _correlation_id_var.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Redact emails, phone numbers and credentials."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def mask_sender_id(sender_id: Optional[str]) -> Optional[str]:
    """Keep the first four characters of a long chat sender id plus a short hash."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not sender_id or len(sender_id) <= 12:
        return sender_id
    digest = hashlib.sha256(sender_id.encode()).hexdigest()[:8]
    return f"{sender_id[:4]}...{digest}"


def sanitize_message_text(text: Optional[str], max_length: int = 500) -> Optional[str]:
    """Truncated, redacted message text; None when message logging is off."""
    if not LoggingConfig.LOG_MESSAGE_CONTENT or not text:
        return None
    if len(text) > max_length:
        text = f"{text[:max_length]}..."
    return mask_sensitive_data(text)


class StructuredLogger:
    """Wraps a stdlib logger; keyword arguments become record attributes."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        correlation_id = get_correlation_id()
        if correlation_id:
            fields.setdefault("correlation_id", correlation_id)
        self.logger.log(level, message, extra=fields, exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any) -> Iterator[None]:
    """
    Log how long the enclosed block took.

    Completion is logged at debug; anything slower than
    LOG_SLOW_OPERATION_THRESHOLD_MS is also logged as a warning.
    """
    logger = logger or get_structured_logger(__name__)
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.debug(f"Completed {operation_name}", operation=operation_name, processing_time_ms=elapsed_ms, **context)
        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if elapsed_ms > threshold:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold,
                **context
            )
