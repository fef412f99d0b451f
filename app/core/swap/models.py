"""Typed models used by the swap subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..recovery import ErrorRecord
from ..routing import PairDescriptor, SwapDirection


class SwapState(str, Enum):
    """States of one swap session."""

    QUOTING = "QUOTING"                           # Quote being computed
    QUOTED = "QUOTED"                             # Quote available, not committed
    COMMITTING = "COMMITTING"                     # Ledger lock submitted
    AWAITING_COUNTERPARTY = "AWAITING_COUNTERPARTY"  # Waiting for the payment leg
    SETTLED = "SETTLED"                           # Both legs done
    TIMED_OUT = "TIMED_OUT"                       # Payment leg did not complete
    REFUNDABLE = "REFUNDABLE"                     # Ledger lock can be reclaimed
    REFUNDED = "REFUNDED"                         # Ledger lock reclaimed
    FAILED = "FAILED"                             # Unrecoverable error
    EXPIRED = "EXPIRED"                           # Quote lapsed before commit


TERMINAL_STATES = frozenset({
    SwapState.SETTLED,
    SwapState.REFUNDED,
    SwapState.FAILED,
    SwapState.EXPIRED,
})


class SwapOutcome(str, Enum):
    SETTLED = "settled"
    REFUNDED = "refunded"
    FAILED = "failed"
    EXPIRED = "expired"


OUTCOME_FOR_STATE: Dict[SwapState, SwapOutcome] = {
    SwapState.SETTLED: SwapOutcome.SETTLED,
    SwapState.REFUNDED: SwapOutcome.REFUNDED,
    SwapState.FAILED: SwapOutcome.FAILED,
    SwapState.EXPIRED: SwapOutcome.EXPIRED,
}


@dataclass(frozen=True)
class SwapIntent:
    """Validated request. Created once per accepted request."""

    amount: int
    direction: SwapDirection
    source_party: Optional[str]
    destination_party: str
    exact_in: bool = False
    comment: Optional[str] = None


@dataclass(frozen=True)
class TimeoutPolicy:
    """Bounds for the counterparty wait."""

    payment_timeout_seconds: float = 1800.0
    # Extra slack before the hard bound fires, so a provider that honours
    # its own deadline gets to report first.
    grace_seconds: float = 5.0

    @property
    def hard_bound_seconds(self) -> float:
        return self.payment_timeout_seconds + self.grace_seconds


@dataclass
class StateTransition:
    """Record of a session state transition."""

    from_state: Optional[SwapState]
    to_state: SwapState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value if self.from_state else None,
            "toState": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "errorCode": self.error_code,
        }


@dataclass
class SwapSession:
    """One in-flight exchange. Owned by the call that created it."""

    pair: Optional[PairDescriptor]
    amount: int
    exact_in: bool = False
    source_party: Optional[str] = None
    destination_party: Optional[str] = None

    swap_id: Optional[str] = None
    state: SwapState = SwapState.QUOTING

    input_amount: Optional[int] = None
    input_without_fee: Optional[int] = None
    output_amount: Optional[int] = None
    fee: Optional[int] = None
    quote_expires_at: Optional[datetime] = None

    payment_hash: Optional[str] = None
    transaction_id: Optional[str] = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    outcome: Optional[SwapOutcome] = None
    error: Optional[ErrorRecord] = None
    history: List[StateTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def source_ticker(self) -> str:
        return self.pair.source.ticker if self.pair else ""

    @property
    def destination_ticker(self) -> str:
        return self.pair.destination.ticker if self.pair else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "swapId": self.swap_id,
            "state": self.state.value,
            "pair": self.pair.label if self.pair else None,
            "amount": str(self.amount),
            "exactIn": self.exact_in,
            "inputAmount": str(self.input_amount) if self.input_amount is not None else None,
            "inputWithoutFee": str(self.input_without_fee) if self.input_without_fee is not None else None,
            "outputAmount": str(self.output_amount) if self.output_amount is not None else None,
            "fee": str(self.fee) if self.fee is not None else None,
            "quoteExpiresAt": self.quote_expires_at.isoformat() if self.quote_expires_at else None,
            "paymentHash": self.payment_hash,
            "transactionId": self.transaction_id,
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "outcome": self.outcome.value if self.outcome else None,
            "error": self.error.to_dict() if self.error else None,
            "history": [t.to_dict() for t in self.history],
        }


class InvalidTransitionError(Exception):
    """Raised when an operation is called from the wrong state."""

    def __init__(
        self,
        from_state: SwapState,
        to_state: SwapState,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or f"Cannot transition from {from_state.value} to {to_state.value}"
        super().__init__(self.message)
