"""
Swap State Machine

Validates and records state transitions of a SwapSession. Terminal states
have no outgoing edges, so a settled, refunded, failed, or expired session
can never move again.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from ..recovery import ErrorRecord
from .models import (
    OUTCOME_FOR_STATE,
    InvalidTransitionError,
    StateTransition,
    SwapSession,
    SwapState,
)


class SwapStateMachine:
    """Applies transitions to a single session."""

    TRANSITIONS: Dict[SwapState, Set[SwapState]] = {
        SwapState.QUOTING: {
            SwapState.QUOTED,
            SwapState.FAILED,
        },
        SwapState.QUOTED: {
            SwapState.COMMITTING,
            SwapState.EXPIRED,
            SwapState.FAILED,
        },
        SwapState.COMMITTING: {
            SwapState.AWAITING_COUNTERPARTY,
            SwapState.FAILED,
        },
        SwapState.AWAITING_COUNTERPARTY: {
            SwapState.SETTLED,
            SwapState.TIMED_OUT,
            SwapState.FAILED,
        },
        SwapState.TIMED_OUT: {
            SwapState.REFUNDABLE,
            SwapState.FAILED,
        },
        SwapState.REFUNDABLE: {
            SwapState.REFUNDED,
            SwapState.FAILED,
        },
        SwapState.SETTLED: set(),
        SwapState.REFUNDED: set(),
        SwapState.FAILED: set(),
        SwapState.EXPIRED: set(),
    }

    def __init__(self, session: SwapSession, logger: Optional[logging.Logger] = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    @property
    def current_state(self) -> SwapState:
        return self.session.state

    def can_transition_to(self, to_state: SwapState) -> bool:
        return to_state in self.TRANSITIONS.get(self.current_state, set())

    def require(self, expected: SwapState, target: SwapState, operation: str) -> None:
        """Guard an operation that is only legal from one source state."""
        if self.current_state != expected:
            raise InvalidTransitionError(
                from_state=self.current_state,
                to_state=target,
                message=f"{operation} is only allowed from {expected.value}, "
                        f"session is {self.current_state.value}",
            )

    def transition_to(
        self,
        to_state: SwapState,
        reason: Optional[str] = None,
        error: Optional[ErrorRecord] = None,
    ) -> StateTransition:
        from_state = self.current_state

        if not self.can_transition_to(to_state):
            allowed = sorted(s.value for s in self.TRANSITIONS.get(from_state, set()))
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {allowed}",
            )

        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            reason=reason,
            error_code=error.code.value if error else None,
        )

        self.session.state = to_state
        self.session.history.append(transition)

        if error is not None and self.session.error is None:
            self.session.error = error

        outcome = OUTCOME_FOR_STATE.get(to_state)
        if outcome is not None and self.session.outcome is None:
            self.session.outcome = outcome
            self.session.completed_at = datetime.now(timezone.utc)

        log = self.logger.warning if error else self.logger.info
        log(
            f"swap_transition {self.session.swap_id or '<unquoted>'}: {from_state.value} -> {to_state.value}"
            f"{f' ({reason})' if reason else ''}"
        )
        return transition

    def fail(self, error: ErrorRecord, reason: Optional[str] = None) -> StateTransition:
        return self.transition_to(SwapState.FAILED, reason=reason or error.message, error=error)
