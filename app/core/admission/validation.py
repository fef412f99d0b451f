"""
Request shape validation for swap requests.

Checks run in a fixed order and the first violation wins, so a given bad
request always produces the same error code.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Optional

from ..recovery import ErrorCode, Result
from ..routing import SwapDirection
from ..swap.models import SwapIntent

REQUIRED_FIELDS = ("amountSats", "lightningDestination", "tokenAddress")
MAX_REQUEST_BYTES = 1024 * 1024
MAX_COMMENT_LENGTH = 500

TOKEN_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_DIGITS_RE = re.compile(r"^\s*[0-9]+\s*$")

# Ledger amounts are u256, which never needs more than 78 decimal digits.
MAX_AMOUNT_DIGITS = 78


def _parse_json_int(literal: str) -> Any:
    # Oversized literals stay strings and fail the amount check later.
    if len(literal.lstrip("-")) > MAX_AMOUNT_DIGITS:
        return literal
    return int(literal)


def parse_body(raw: bytes) -> Any:
    """Decode a JSON body; anything undecodable is treated as no fields."""
    if not raw:
        return {}
    try:
        return json.loads(raw, parse_int=_parse_json_int)
    except (ValueError, UnicodeDecodeError):
        return {}


def parse_amount(value: Any) -> Optional[int]:
    """Positive integer from an int or a decimal-digit string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        amount = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        amount = int(value)
    elif isinstance(value, str) and _DIGITS_RE.match(value):
        digits = value.strip().lstrip("0")
        if len(digits) > MAX_AMOUNT_DIGITS:
            return None
        amount = int(digits or "0")
    else:
        return None
    return amount if amount > 0 else None


def is_json_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_swap_request(
    payload: Any,
    *,
    content_type: Optional[str],
    body_size: int,
    source_party: Optional[str] = None,
    max_bytes: int = MAX_REQUEST_BYTES,
) -> Result[SwapIntent]:
    """Validate a ledger -> Lightning swap request and build its SwapIntent."""
    fields: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}

    missing = [name for name in REQUIRED_FIELDS if _missing(fields.get(name))]
    if missing:
        return Result.fail(
            ErrorCode.MISSING_REQUIRED_FIELDS,
            f"Missing required fields: {', '.join(missing)}",
            fields=missing,
        )

    amount = parse_amount(fields["amountSats"])
    if amount is None:
        return Result.fail(ErrorCode.INVALID_AMOUNT, "amountSats must be a positive integer")

    token_address = fields["tokenAddress"]
    if not isinstance(token_address, str) or not TOKEN_ADDRESS_RE.match(token_address):
        return Result.fail(ErrorCode.INVALID_TOKEN_ADDRESS)

    if not is_json_content_type(content_type):
        return Result.fail(ErrorCode.INVALID_CONTENT_TYPE, "Content-Type must be application/json")

    if body_size >= max_bytes:
        return Result.fail(
            ErrorCode.REQUEST_TOO_LARGE,
            f"Request body too large (max {max_bytes // 1024}KB)",
        )

    exact_in = fields.get("exactIn", False)
    if exact_in is None:
        exact_in = False
    if not isinstance(exact_in, bool):
        return Result.fail(ErrorCode.INVALID_REQUEST_FORMAT, "exactIn must be a boolean")

    destination = fields["lightningDestination"]
    if not isinstance(destination, str):
        return Result.fail(ErrorCode.INVALID_ADDRESS, "lightningDestination must be a string")

    comment = fields.get("comment")
    if comment is not None and (not isinstance(comment, str) or len(comment) > MAX_COMMENT_LENGTH):
        return Result.fail(
            ErrorCode.INVALID_REQUEST_FORMAT,
            f"comment must be a string of at most {MAX_COMMENT_LENGTH} characters",
        )

    return Result.success(
        SwapIntent(
            amount=amount,
            direction=SwapDirection.LEDGER_TO_PAYMENT,
            source_party=source_party,
            destination_party=destination.strip(),
            exact_in=exact_in,
            comment=comment or None,
        )
    )
