"""
Error Classification & Recovery Policy

Maps any failure from admission, routing, or orchestration to a stable
ErrorRecord, and decides what is retryable and what is critical.
Nothing here retries; retryability is surfaced as data for the caller.
"""

from .errors import (
    CRITICAL_CODES,
    DEFAULT_MESSAGES,
    RETRYABLE_CODES,
    STATUS_CODES,
    ErrorCode,
    ErrorRecord,
    SwapError,
    classify_error,
    is_critical,
    is_retryable,
    status_for,
)
from .result import Result

__all__ = [
    "ErrorCode",
    "ErrorRecord",
    "SwapError",
    "Result",
    "classify_error",
    "is_retryable",
    "is_critical",
    "status_for",
    "STATUS_CODES",
    "DEFAULT_MESSAGES",
    "RETRYABLE_CODES",
    "CRITICAL_CODES",
]
