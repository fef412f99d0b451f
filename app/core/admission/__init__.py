"""
Admission Layer

Cheap request gating before any provider call: shape validation and a
fixed-window rate limiter.
"""

from .rate_limit import (
    FixedWindowRateLimiter,
    RateLimitBucket,
    RateLimitDecision,
    RateLimitExceeded,
    RateLimitStore,
)
from .validation import (
    MAX_AMOUNT_DIGITS,
    MAX_REQUEST_BYTES,
    REQUIRED_FIELDS,
    is_json_content_type,
    parse_amount,
    parse_body,
    validate_swap_request,
)

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitBucket",
    "RateLimitDecision",
    "RateLimitExceeded",
    "RateLimitStore",
    "MAX_AMOUNT_DIGITS",
    "MAX_REQUEST_BYTES",
    "REQUIRED_FIELDS",
    "is_json_content_type",
    "parse_amount",
    "parse_body",
    "validate_swap_request",
]
