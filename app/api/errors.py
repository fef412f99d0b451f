"""
Structured error responses and application-wide exception handlers.

Every failure leaves the service as the same JSON shape, with the HTTP
status taken from the error code and the request's correlation id attached.
"""

import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings
from ..core.recovery import ErrorCode, ErrorRecord, SwapError, classify_error
from ..types.responses import ErrorDetail, ErrorResponse

logger = structlog.stdlib.get_logger("errors")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _include_details(request: Request) -> bool:
    config: Optional[Settings] = getattr(request.app.state, "settings", None)
    return config is not None and not config.is_production


def error_response(
    request: Request,
    record: ErrorRecord,
    *,
    swap_id: Optional[str] = None,
    final_state: Optional[str] = None,
    retry_after: Optional[int] = None,
    headers: Optional[Dict[str, str]] = None,
    exc: Optional[BaseException] = None,
) -> JSONResponse:
    details: Optional[Dict[str, Any]] = None
    if _include_details(request):
        details = dict(record.details) or None
        if exc is not None:
            details = details or {}
            details["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    body = ErrorResponse(
        error=ErrorDetail(
            code=record.code.value,
            message=record.message,
            retryable=record.retryable,
            swapId=swap_id,
            finalState=final_state,
            retryAfter=retry_after,
            requestId=get_request_id(request),
            timestamp=utc_timestamp(),
            details=details,
        )
    )

    log = logger.error if record.critical else logger.warning
    log(
        "request_failed",
        code=record.code.value,
        status=record.status_code,
        retryable=record.retryable,
        critical=record.critical,
        swap_id=swap_id,
        reason=record.details.get("reason"),
    )

    return JSONResponse(
        status_code=record.status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


async def _swap_error_handler(request: Request, exc: SwapError) -> JSONResponse:
    return error_response(request, exc.record, exc=exc)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        record = ErrorRecord.of(ErrorCode.ENDPOINT_NOT_FOUND, path=request.url.path)
    elif exc.status_code == 405:
        record = ErrorRecord.of(ErrorCode.INVALID_REQUEST_FORMAT, f"Method {request.method} not allowed")
    elif exc.status_code == 413:
        record = ErrorRecord.of(ErrorCode.REQUEST_TOO_LARGE)
    elif exc.status_code < 500:
        record = ErrorRecord.of(ErrorCode.INVALID_REQUEST_FORMAT, str(exc.detail))
    else:
        record = ErrorRecord.of(ErrorCode.INTERNAL_SERVER_ERROR, reason=str(exc.detail))
    return error_response(request, record)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
    record = ErrorRecord.of(ErrorCode.INVALID_REQUEST_FORMAT, errors=errors)
    return error_response(request, record)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    record = classify_error(exc)
    logger.exception("unhandled_exception", path=request.url.path, code=record.code.value)
    return error_response(request, record, exc=exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SwapError, _swap_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
