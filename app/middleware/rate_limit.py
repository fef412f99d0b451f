"""
Rate limiting middleware.

Fixed-window counter per client network identity, backed by an explicitly
owned in-memory store. Rejections use the standard structured error body.
"""

from typing import Awaitable, Callable, Optional, Sequence

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..api.errors import error_response
from ..config import Settings
from ..core.admission import FixedWindowRateLimiter, RateLimitStore
from ..core.recovery import ErrorCode, ErrorRecord

DEFAULT_EXCLUDED_PATHS = (
    "/docs",
    "/redoc",
    "/openapi.json",
    "/health",
    "/healthz",
)


def client_identity(request: Request) -> str:
    return request.client.host if request.client and request.client.host else "unknown"


def build_rate_limiter(config: Settings) -> FixedWindowRateLimiter:
    store = RateLimitStore(
        max_buckets=config.rate_limit_max_buckets,
        sweep_interval_seconds=config.rate_limit_sweep_interval_seconds,
    )
    return FixedWindowRateLimiter(
        store,
        window_seconds=config.rate_limit_window_seconds,
        max_requests=config.rate_limit_max_requests,
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for rate limiting.

    The limiter is looked up on app.state at request time unless one is
    passed in, so tests and the app factory can swap it.
    """

    def __init__(
        self,
        app,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        exclude_paths: Optional[Sequence[str]] = None,
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.exclude_paths = tuple(exclude_paths or DEFAULT_EXCLUDED_PATHS)

    def _limiter(self, request: Request) -> Optional[FixedWindowRateLimiter]:
        return self.rate_limiter or getattr(request.app.state, "rate_limiter", None)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        # Skip rate limiting for excluded paths
        path = request.url.path
        limiter = self._limiter(request)
        if limiter is None or path == "/" or any(path.startswith(p) for p in self.exclude_paths):
            return await call_next(request)

        decision = limiter.check(client_identity(request))
        if not decision.allowed:
            return error_response(
                request,
                ErrorRecord.of(ErrorCode.RATE_LIMIT_EXCEEDED, client=client_identity(request)),
                retry_after=decision.retry_after,
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Window": str(decision.window_seconds),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
