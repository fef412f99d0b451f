"""
HTTP request logging middleware.

Attaches the correlation context to every request: a request id (taken from
X-Request-ID or freshly generated) and a start time, bound into structlog's
contextvars so every downstream log line carries the id. Logs one line per
request with method, path, status code, and duration.
"""

import json
import time
import uuid
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

REQUEST_ID_HEADER = "x-request-id"

SENSITIVE_KEYS = ("privatekey", "secret", "password", "token", "key", "credential")
# Public identifiers that happen to contain a sensitive word.
SAFE_KEYS = frozenset({"tokenaddress"})

MAX_LOGGED_BODY_BYTES = 4096


def new_request_id() -> str:
    return str(uuid.uuid4())[:8]


def sanitize(body: Any) -> Any:
    """Redact values whose keys look like secrets (one level deep)."""
    if not isinstance(body, dict):
        return body
    sanitized = {}
    for key, value in body.items():
        lowered = str(key).lower()
        if lowered not in SAFE_KEYS and any(s in lowered for s in SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        else:
            sanitized[key] = value
    return sanitized


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with timing and status info."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()

        # Bind request context for all downstream logs
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        request.state.request_id = request_id
        request.state.started_at = time.time()

        start = time.perf_counter()
        status_code = 500

        if request.method in ("POST", "PUT", "PATCH"):
            await self._log_body(request)

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)

            log = logger.info if status_code < 400 else logger.warning
            if status_code >= 500:
                log = logger.error

            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
                client=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )

    async def _log_body(self, request: Request) -> None:
        declared = request.headers.get("content-length")
        if declared is None or not declared.isdigit() or int(declared) > MAX_LOGGED_BODY_BYTES:
            logger.debug("http_request_body", size=declared)
            return
        # Starlette caches the body, so the endpoint can read it again.
        raw = await request.body()
        try:
            body = json.loads(raw)
        except ValueError:
            logger.debug("http_request_body", size=len(raw), json=False)
            return
        logger.debug("http_request_body", body=sanitize(body))
