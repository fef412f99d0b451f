from .logging_middleware import RequestLoggingMiddleware
from .rate_limit import (
    RateLimitMiddleware,
    build_rate_limiter,
    client_identity,
)

__all__ = [
    "RequestLoggingMiddleware",
    "RateLimitMiddleware",
    "build_rate_limiter",
    "client_identity",
]
