"""
Error Classification

Closed error taxonomy for swap admission, routing, and orchestration.
Every failure, whatever its origin, is reduced to an ErrorRecord whose HTTP
status, caller-safe message, and retryability come from fixed lookups keyed by
its code.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorCode(str, Enum):
    """Stable error codes returned to callers."""

    # Validation
    MISSING_REQUIRED_FIELDS = "MISSING_REQUIRED_FIELDS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_TOKEN_ADDRESS = "INVALID_TOKEN_ADDRESS"
    INVALID_REQUEST_FORMAT = "INVALID_REQUEST_FORMAT"
    ENDPOINT_NOT_FOUND = "ENDPOINT_NOT_FOUND"

    # Service
    SWAP_EXECUTION_FAILED = "SWAP_EXECUTION_FAILED"
    BALANCE_QUERY_FAILED = "BALANCE_QUERY_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Resource availability
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    LIGHTNING_NOT_AVAILABLE = "LIGHTNING_NOT_AVAILABLE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Network and timeouts
    NETWORK_ERROR = "NETWORK_ERROR"
    PAYMENT_TIMEOUT = "PAYMENT_TIMEOUT"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RPC_CONNECTION_FAILED = "RPC_CONNECTION_FAILED"

    # Admission
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"


STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.MISSING_REQUIRED_FIELDS: 400,
    ErrorCode.INVALID_AMOUNT: 400,
    ErrorCode.INVALID_ADDRESS: 400,
    ErrorCode.INVALID_TOKEN_ADDRESS: 400,
    ErrorCode.INVALID_REQUEST_FORMAT: 400,
    ErrorCode.TOKEN_NOT_FOUND: 400,
    ErrorCode.INSUFFICIENT_BALANCE: 400,
    ErrorCode.INVALID_CONTENT_TYPE: 400,
    ErrorCode.ENDPOINT_NOT_FOUND: 404,
    ErrorCode.PAYMENT_TIMEOUT: 408,
    ErrorCode.TIMEOUT_ERROR: 408,
    ErrorCode.REQUEST_TOO_LARGE: 413,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.SWAP_EXECUTION_FAILED: 500,
    ErrorCode.BALANCE_QUERY_FAILED: 500,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.LIGHTNING_NOT_AVAILABLE: 503,
    ErrorCode.NETWORK_ERROR: 503,
    ErrorCode.RPC_CONNECTION_FAILED: 503,
}

# Safe to expose to clients
DEFAULT_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.MISSING_REQUIRED_FIELDS: "Required fields are missing from the request",
    ErrorCode.INVALID_AMOUNT: "Amount must be a positive number",
    ErrorCode.INVALID_ADDRESS: "Address format is invalid",
    ErrorCode.INVALID_TOKEN_ADDRESS: "Token address must be a valid hex string (66 characters starting with 0x)",
    ErrorCode.INVALID_REQUEST_FORMAT: "Request format is invalid",
    ErrorCode.ENDPOINT_NOT_FOUND: "Endpoint not found",
    ErrorCode.TOKEN_NOT_FOUND: "Token not available for swapping",
    ErrorCode.LIGHTNING_NOT_AVAILABLE: "Lightning Network service is currently unavailable",
    ErrorCode.INSUFFICIENT_BALANCE: "Insufficient balance for the requested operation",
    ErrorCode.SWAP_EXECUTION_FAILED: "Atomic swap execution failed",
    ErrorCode.BALANCE_QUERY_FAILED: "Failed to retrieve balance information",
    ErrorCode.CONFIGURATION_ERROR: "System configuration error",
    ErrorCode.INTERNAL_SERVER_ERROR: "An internal server error occurred",
    ErrorCode.NETWORK_ERROR: "Network connectivity issue",
    ErrorCode.PAYMENT_TIMEOUT: "Payment not received within timeout period",
    ErrorCode.TIMEOUT_ERROR: "Operation timed out",
    ErrorCode.RPC_CONNECTION_FAILED: "Failed to connect to blockchain RPC",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Rate limit exceeded, please try again later",
    ErrorCode.REQUEST_TOO_LARGE: "Request payload is too large",
    ErrorCode.INVALID_CONTENT_TYPE: "Invalid or missing Content-Type header",
}

RETRYABLE_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT_ERROR,
    ErrorCode.PAYMENT_TIMEOUT,
    ErrorCode.RPC_CONNECTION_FAILED,
    ErrorCode.LIGHTNING_NOT_AVAILABLE,
})

CRITICAL_CODES = frozenset({
    ErrorCode.CONFIGURATION_ERROR,
    ErrorCode.INTERNAL_SERVER_ERROR,
})


def status_for(code: ErrorCode) -> int:
    return STATUS_CODES[code]


def is_retryable(code: ErrorCode) -> bool:
    return code in RETRYABLE_CODES


def is_critical(code: ErrorCode) -> bool:
    return code in CRITICAL_CODES


@dataclass(frozen=True)
class ErrorRecord:
    """Classified failure. Immutable once created."""

    code: ErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        return status_for(self.code)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.code)

    @property
    def critical(self) -> bool:
        return is_critical(self.code)

    @classmethod
    def of(
        cls,
        code: ErrorCode,
        message: Optional[str] = None,
        **details: Any,
    ) -> "ErrorRecord":
        return cls(
            code=code,
            message=message or DEFAULT_MESSAGES[code],
            details={k: v for k, v in details.items() if v is not None},
        )

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if include_details and self.details:
            data["details"] = self.details
        return data


class SwapError(Exception):
    """
    Exception carrying an already-classified error code.

    Raised by provider adapters and startup code when the failure kind is
    known at the point it is observed; classify_error passes it through
    unchanged.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        **details: Any,
    ):
        self.record = ErrorRecord.of(code, message, **details)
        self.code = code
        self.message = self.record.message
        super().__init__(self.message)


_KEYWORD_SIGNALS = (
    (ErrorCode.NETWORK_ERROR, ("network", "connection", "econnrefused")),
    (ErrorCode.RPC_CONNECTION_FAILED, ("rpc", "node", "provider")),
    (ErrorCode.TIMEOUT_ERROR, ("timeout", "timed out")),
    (ErrorCode.INSUFFICIENT_BALANCE, ("insufficient balance", "insufficient funds")),
    (ErrorCode.CONFIGURATION_ERROR, ("config", "environment", "missing")),
)


def classify_error(
    error: BaseException,
    fallback: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
) -> ErrorRecord:
    """
    Classify an exception into an ErrorRecord.

    Already-classified errors pass through; transport exceptions map by
    type; anything else is matched on message keywords before falling back.
    """
    if isinstance(error, SwapError):
        return error.record

    message = str(error) or error.__class__.__name__
    details = {"exception": error.__class__.__name__, "reason": message}

    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorRecord.of(ErrorCode.TIMEOUT_ERROR, **details)
    if isinstance(error, (httpx.ConnectError, httpx.NetworkError, ConnectionError)):
        return ErrorRecord.of(ErrorCode.NETWORK_ERROR, **details)

    lowered = message.lower()
    for code, keywords in _KEYWORD_SIGNALS:
        if any(k in lowered for k in keywords):
            return ErrorRecord.of(code, **details)

    return ErrorRecord.of(fallback, **details)
