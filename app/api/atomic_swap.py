"""
Atomic swap endpoints: execute a ledger -> Lightning swap, inspect a swap,
and refund one whose counterparty never paid.
"""

from decimal import Decimal
from typing import Optional

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..core.admission import validate_swap_request, parse_body
from ..core.recovery import ErrorCode, ErrorRecord, SwapError, classify_error
from ..core.routing import RouteResolver, SwapDirection
from ..core.swap import SwapOrchestrator, SwapSession, SwapState, TimeoutPolicy
from ..providers.base import LedgerAccount
from ..types.requests import AtomicSwapRequest
from ..types.responses import AtomicSwapResponse, SwapStatusResponse
from .errors import error_response, get_request_id, utc_timestamp

router = APIRouter(prefix="/api/atomic-swap")
logger = structlog.stdlib.get_logger("atomic_swap")


def format_amount(value: Optional[int], decimals: int, ticker: str) -> str:
    """Render a smallest-unit integer as '<amount> <TICKER>'."""
    if value is None:
        return f"0 {ticker}".strip()
    amount = Decimal(value).scaleb(-decimals) if decimals else Decimal(value)
    return f"{amount:f} {ticker}".strip()


def _raw_amount(value: Optional[int]) -> Optional[str]:
    return str(value) if value is not None else None


def _state(request: Request):
    return request.app.state


def _session_error(request: Request, session: SwapSession) -> JSONResponse:
    if session.state == SwapState.REFUNDABLE:
        record = ErrorRecord.of(
            ErrorCode.PAYMENT_TIMEOUT,
            "Lightning payment timed out; the swap can be refunded",
        )
    else:
        record = session.error or ErrorRecord.of(
            ErrorCode.SWAP_EXECUTION_FAILED,
            f"Swap ended in state {session.state.value}",
        )
    return error_response(
        request,
        record,
        swap_id=session.swap_id,
        final_state=session.state.value,
    )


def _status_body(request: Request, session: SwapSession) -> dict:
    return SwapStatusResponse(
        swapId=session.swap_id or "",
        state=session.state.value,
        terminal=session.is_terminal,
        refundable=session.state == SwapState.REFUNDABLE,
        inputAmount=_raw_amount(session.input_amount),
        outputAmount=_raw_amount(session.output_amount),
        lightningPaymentHash=session.payment_hash,
        history=[t.to_dict() for t in session.history],
        requestId=get_request_id(request) or "",
        timestamp=utc_timestamp(),
    ).model_dump()


def _declared_length(request: Request) -> int:
    value = request.headers.get("content-length", "").strip()
    if not value.isdigit():
        return 0
    # Far past any limit; keeps int() away from huge header values.
    if len(value) > 18:
        return 10**18
    return int(value)


async def read_body(request: Request, limit: int) -> Optional[bytes]:
    """
    Read the request body, or return None once it reaches ``limit`` bytes.

    A declared Content-Length at or over the limit is rejected without reading
    anything, and streaming stops at the first chunk that crosses it.
    """
    if _declared_length(request) >= limit:
        return None

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size >= limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


async def _resume(request: Request, swap_id: str):
    orchestrator: SwapOrchestrator = _state(request).orchestrator
    try:
        return await orchestrator.resume(swap_id), None
    except SwapError as e:
        return None, error_response(request, e.record, swap_id=swap_id)
    except Exception as e:
        record = classify_error(e, fallback=ErrorCode.SWAP_EXECUTION_FAILED)
        return None, error_response(request, record, swap_id=swap_id)


@router.post(
    "",
    response_model=AtomicSwapResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": AtomicSwapRequest.model_json_schema()}},
        }
    },
)
async def atomic_swap(request: Request):
    """
    Swap a Starknet token for a Lightning payment.

    Blocks until the swap settles, times out, or fails. A timeout answers
    408 PAYMENT_TIMEOUT and leaves the swap refundable.
    """
    state = _state(request)
    ledger: LedgerAccount = state.ledger

    max_bytes = state.settings.max_request_bytes
    raw = await read_body(request, max_bytes)
    if raw is None:
        return error_response(
            request,
            ErrorRecord.of(
                ErrorCode.REQUEST_TOO_LARGE,
                f"Request body too large (max {max_bytes // 1024}KB)",
            ),
        )

    payload = parse_body(raw)
    admitted = validate_swap_request(
        payload,
        content_type=request.headers.get("content-type"),
        body_size=max(_declared_length(request), len(raw)),
        source_party=ledger.get_address(),
        max_bytes=max_bytes,
    )
    if not admitted.ok:
        return error_response(request, admitted.error)
    intent = admitted.unwrap()

    token_address = payload["tokenAddress"]
    resolver: RouteResolver = state.resolver
    route = resolver.resolve(token_address, SwapDirection.LEDGER_TO_PAYMENT)
    if not route.ok:
        return error_response(request, route.error)
    pair = route.unwrap()

    logger.info(
        "atomic_swap_started",
        token=pair.source.ticker,
        amount=intent.amount,
        exact_in=intent.exact_in,
    )

    orchestrator: SwapOrchestrator = state.orchestrator
    timeout_policy: TimeoutPolicy = state.timeout_policy
    session = await orchestrator.execute(intent, pair, ledger, timeout_policy)

    logger.info(
        "atomic_swap_finished",
        swap_id=session.swap_id,
        final_state=session.state.value,
        error_code=session.error.code.value if session.error else None,
    )

    if session.state != SwapState.SETTLED:
        return _session_error(request, session)

    return AtomicSwapResponse(
        swapId=session.swap_id,
        inputAmount=format_amount(session.input_without_fee, pair.source.decimals, pair.source.ticker),
        outputAmount=format_amount(
            session.output_amount, pair.destination.decimals, pair.destination.ticker
        ),
        tokenUsed=pair.source.ticker,
        tokenAddress=token_address,
        finalState=session.state.value,
        lightningPaymentHash=session.payment_hash,
        transactionId=session.transaction_id,
        lightningDestination=intent.destination_party,
        message=f"Swapped {pair.source.ticker} for a Lightning payment",
        requestId=get_request_id(request) or "",
        timestamp=utc_timestamp(),
    )


@router.get("/status/{swap_id}", response_model=SwapStatusResponse)
async def swap_status(swap_id: str, request: Request):
    """Provider-authoritative state of a swap."""
    session, failure = await _resume(request, swap_id)
    if failure is not None:
        return failure
    return _status_body(request, session)


@router.post("/{swap_id}/refund", response_model=SwapStatusResponse)
async def refund_swap(swap_id: str, request: Request):
    """Reclaim the ledger commitment of a swap whose payment never arrived."""
    session, failure = await _resume(request, swap_id)
    if failure is not None:
        return failure

    orchestrator: SwapOrchestrator = _state(request).orchestrator
    try:
        if session.state != SwapState.REFUNDABLE:
            return error_response(
                request,
                ErrorRecord.of(
                    ErrorCode.INVALID_REQUEST_FORMAT,
                    f"Swap is not refundable (state {session.state.value})",
                ),
                swap_id=swap_id,
                final_state=session.state.value,
            )

        await orchestrator.refund(session, _state(request).ledger)
        logger.info("atomic_swap_refund", swap_id=swap_id, final_state=session.state.value)

        if session.state != SwapState.REFUNDED:
            return _session_error(request, session)
        return _status_body(request, session)
    finally:
        await orchestrator.release(swap_id)
