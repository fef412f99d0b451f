"""SwapOrchestrator drives one swap session from quote to a terminal outcome."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ...providers.base import (
    LedgerAccount,
    ProviderSwapStatus,
    SwapExecutionProvider,
)
from ..recovery import ErrorCode, ErrorRecord, SwapError, classify_error
from ..routing import PairDescriptor
from .models import (
    SwapIntent,
    SwapSession,
    SwapState,
    TimeoutPolicy,
)
from .state_machine import SwapStateMachine

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Provider states that mean the ledger lock reached the counterparty.
_SETTLED_STATUSES = (ProviderSwapStatus.SETTLED,)

# Provider states where the commitment is still locked and can be reclaimed.
_PENDING_STATUSES = (ProviderSwapStatus.COMMITTED, ProviderSwapStatus.REFUNDABLE)


class SwapOrchestrator:
    """
    Executes quote -> commit -> await counterparty -> settle/refund.

    Commit and refund broadcast value-moving transactions and are attempted
    exactly once. Failures are classified and stored on the session, never
    raised; calling an operation from the wrong state raises
    InvalidTransitionError.
    """

    def __init__(
        self,
        provider: SwapExecutionProvider,
        *,
        check_balance_before_commit: bool = True,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider
        self._check_balance = check_balance_before_commit
        self._clock = clock or _utcnow
        self._logger = logger or logging.getLogger(__name__)

    def _machine(self, session: SwapSession) -> SwapStateMachine:
        return SwapStateMachine(session, logger=self._logger)

    async def quote(
        self,
        pair: PairDescriptor,
        amount: int,
        exact_in: bool,
        source_party: Optional[str],
        destination_party: Optional[str],
        comment: Optional[str] = None,
    ) -> SwapSession:
        session = SwapSession(
            pair=pair,
            amount=amount,
            exact_in=exact_in,
            source_party=source_party,
            destination_party=destination_party,
            created_at=self._clock(),
        )
        machine = self._machine(session)

        try:
            quote = await self._provider.quote(
                pair.source,
                pair.destination,
                amount,
                exact_in,
                source_party,
                destination_party,
                comment=comment,
            )
        except Exception as e:
            error = classify_error(e, fallback=ErrorCode.SWAP_EXECUTION_FAILED)
            machine.fail(error, reason="Quote failed")
            return session

        session.swap_id = quote.swap_id
        session.input_amount = quote.input_amount
        session.input_without_fee = quote.input_without_fee
        session.output_amount = quote.output_amount
        session.fee = quote.fee
        session.quote_expires_at = quote.expires_at

        machine.transition_to(
            SwapState.QUOTED,
            reason=f"{pair.label} in={quote.input_without_fee} out={quote.output_amount}",
        )
        return session

    def _quote_expired(self, session: SwapSession) -> bool:
        return session.quote_expires_at is not None and self._clock() >= session.quote_expires_at

    async def _has_balance(self, session: SwapSession, signer: LedgerAccount) -> Optional[ErrorRecord]:
        required = session.input_amount if session.input_amount is not None else session.amount
        token = session.pair.source if session.pair else None
        if token is None or token.lightning:
            return None

        try:
            balance = await signer.get_balance(token.address)
        except Exception as e:
            return classify_error(e, fallback=ErrorCode.BALANCE_QUERY_FAILED)

        if balance < required:
            return ErrorRecord.of(
                ErrorCode.INSUFFICIENT_BALANCE,
                required=str(required),
                available=str(balance),
                token=token.ticker,
            )
        return None

    async def commit(self, session: SwapSession, signer: LedgerAccount) -> SwapSession:
        machine = self._machine(session)
        machine.require(SwapState.QUOTED, SwapState.COMMITTING, "commit")

        if self._quote_expired(session):
            machine.transition_to(
                SwapState.EXPIRED,
                reason="Quote validity window elapsed before commit",
                error=ErrorRecord.of(ErrorCode.SWAP_EXECUTION_FAILED, "Swap quote expired before commit"),
            )
            return session

        if self._check_balance:
            balance_error = await self._has_balance(session, signer)
            if balance_error is not None:
                machine.fail(balance_error, reason="Balance check failed before commit")
                return session

        machine.transition_to(SwapState.COMMITTING, reason="Submitting ledger commitment")
        try:
            status = await self._provider.commit(session.swap_id, signer)
        except Exception as e:
            # Not retried: the commitment may already be on the ledger.
            machine.fail(classify_error(e, fallback=ErrorCode.SWAP_EXECUTION_FAILED), reason="Commit failed")
            return session

        if status not in (ProviderSwapStatus.COMMITTED, *_SETTLED_STATUSES):
            machine.fail(
                ErrorRecord.of(
                    ErrorCode.SWAP_EXECUTION_FAILED,
                    f"Commit left swap in unexpected provider state: {status.value}",
                ),
                reason="Commit not confirmed",
            )
            return session

        machine.transition_to(SwapState.AWAITING_COUNTERPARTY, reason="Ledger commitment confirmed")
        return session

    async def await_counterparty(
        self,
        session: SwapSession,
        timeout_policy: Optional[TimeoutPolicy] = None,
    ) -> SwapSession:
        """Wait for the payment leg. A plain timeout is a transition, not an error."""
        policy = timeout_policy or TimeoutPolicy()
        machine = self._machine(session)
        machine.require(SwapState.AWAITING_COUNTERPARTY, SwapState.SETTLED, "await_counterparty")

        try:
            result = await asyncio.wait_for(
                self._provider.await_settlement(session.swap_id, policy.payment_timeout_seconds),
                timeout=policy.hard_bound_seconds,
            )
        except asyncio.TimeoutError:
            machine.transition_to(
                SwapState.TIMED_OUT,
                reason=f"No settlement within {policy.payment_timeout_seconds:g}s",
            )
            return session
        except Exception as e:
            machine.fail(classify_error(e), reason="Awaiting counterparty failed")
            return session

        if result.settled:
            session.payment_hash = result.payment_hash
            session.transaction_id = result.transaction_id
            machine.transition_to(SwapState.SETTLED, reason="Counterparty leg settled")
        elif result.status in _PENDING_STATUSES:
            machine.transition_to(
                SwapState.TIMED_OUT,
                reason=f"Counterparty not settled (provider state {result.status.value})",
            )
        elif result.status == ProviderSwapStatus.REFUNDED:
            machine.transition_to(SwapState.TIMED_OUT, reason="Counterparty not settled")
            machine.transition_to(SwapState.REFUNDABLE, reason="Provider reports refundable")
            machine.transition_to(SwapState.REFUNDED, reason="Provider reports refunded")
        else:
            machine.fail(
                ErrorRecord.of(
                    ErrorCode.SWAP_EXECUTION_FAILED,
                    f"Swap left in unexpected provider state while awaiting payment: {result.status.value}",
                ),
                reason="Counterparty wait ended without settlement",
            )
        return session

    def mark_refundable(self, session: SwapSession) -> SwapSession:
        self._machine(session).transition_to(
            SwapState.REFUNDABLE,
            reason="Ledger commitment can be reclaimed",
        )
        return session

    async def refund(self, session: SwapSession, signer: LedgerAccount) -> SwapSession:
        machine = self._machine(session)
        machine.require(SwapState.REFUNDABLE, SwapState.REFUNDED, "refund")

        try:
            status = await self._provider.refund(session.swap_id, signer)
        except Exception as e:
            machine.fail(classify_error(e, fallback=ErrorCode.SWAP_EXECUTION_FAILED), reason="Refund failed")
            return session

        if status != ProviderSwapStatus.REFUNDED:
            machine.fail(
                ErrorRecord.of(
                    ErrorCode.SWAP_EXECUTION_FAILED,
                    f"Refund left swap in unexpected provider state: {status.value}",
                ),
                reason="Refund not confirmed",
            )
            return session

        machine.transition_to(SwapState.REFUNDED, reason="Ledger commitment reclaimed")
        return session

    async def execute(
        self,
        intent: SwapIntent,
        pair: PairDescriptor,
        signer: LedgerAccount,
        timeout_policy: Optional[TimeoutPolicy] = None,
    ) -> SwapSession:
        """
        Run the full flow for one intent.

        Ends in SETTLED, REFUNDABLE, FAILED, or EXPIRED, or REFUNDED when the
        provider already reclaimed the commitment. Refunds are left to the
        caller. The provider session is released on every exit path.
        """
        session = await self.quote(
            pair,
            intent.amount,
            intent.exact_in,
            intent.source_party,
            intent.destination_party,
            comment=intent.comment,
        )
        try:
            if session.state != SwapState.QUOTED:
                return session

            await self.commit(session, signer)
            if session.state != SwapState.AWAITING_COUNTERPARTY:
                return session

            await self.await_counterparty(session, timeout_policy)
            if session.state == SwapState.TIMED_OUT:
                self.mark_refundable(session)
            return session
        finally:
            if session.swap_id:
                await self.release(session.swap_id)

    async def release(self, swap_id: str) -> None:
        """Tear down the provider session; failures are logged, not raised."""
        try:
            await self._provider.release(swap_id)
        except Exception as e:
            self._logger.warning(f"Releasing provider session {swap_id} failed: {e}")

    async def resume(self, swap_id: str) -> SwapSession:
        """
        Rebuild an ephemeral session from the provider's authoritative state.

        Raises SwapError when the provider cannot be reached or does not know
        the swap.
        """
        state = await self._provider.get_state(swap_id)
        session = SwapSession(
            pair=None,
            amount=state.input_amount or 0,
            swap_id=state.swap_id,
            input_amount=state.input_amount,
            output_amount=state.output_amount,
            created_at=self._clock(),
        )
        machine = self._machine(session)

        if state.status == ProviderSwapStatus.FAILED:
            raise SwapError(
                ErrorCode.SWAP_EXECUTION_FAILED,
                f"Swap {swap_id} is in an unknown provider state",
                raw_state=state.raw_state,
            )

        # Replay the shortest legal path to the provider's state.
        machine.transition_to(SwapState.QUOTED, reason="Resumed from provider")
        if state.status == ProviderSwapStatus.CREATED:
            return session
        if state.status == ProviderSwapStatus.EXPIRED:
            machine.transition_to(SwapState.EXPIRED, reason="Provider reports quote expired")
            return session

        machine.transition_to(SwapState.COMMITTING, reason="Resumed from provider")
        machine.transition_to(SwapState.AWAITING_COUNTERPARTY, reason="Resumed from provider")
        if state.status == ProviderSwapStatus.COMMITTED:
            return session
        if state.status == ProviderSwapStatus.SETTLED:
            session.payment_hash = state.details.get("secret") or state.details.get("paymentHash")
            session.transaction_id = state.details.get("txId")
            machine.transition_to(SwapState.SETTLED, reason="Provider reports settled")
            return session

        machine.transition_to(SwapState.TIMED_OUT, reason="Provider reports counterparty did not settle")
        machine.transition_to(SwapState.REFUNDABLE, reason="Provider reports refundable")
        if state.status == ProviderSwapStatus.REFUNDED:
            machine.transition_to(SwapState.REFUNDED, reason="Provider reports refunded")
        return session
