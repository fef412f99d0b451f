"""
Swap Orchestration Module

State machine and orchestrator for one-shot ledger <-> Lightning swaps.
"""

from .models import (
    TERMINAL_STATES,
    InvalidTransitionError,
    StateTransition,
    SwapIntent,
    SwapOutcome,
    SwapSession,
    SwapState,
    TimeoutPolicy,
)
from .orchestrator import SwapOrchestrator
from .state_machine import SwapStateMachine

__all__ = [
    # Orchestration
    "SwapOrchestrator",
    "SwapStateMachine",
    # Models
    "SwapIntent",
    "SwapSession",
    "SwapState",
    "SwapOutcome",
    "StateTransition",
    "TimeoutPolicy",
    "TERMINAL_STATES",
    # Errors
    "InvalidTransitionError",
]
