"""
Tests for the SwapOrchestrator

State guard, timeout law, quote expiry, balance checks, release on every
exit path, and resuming from provider state.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.core.recovery import ErrorCode, SwapError
from app.core.routing import SwapDirection
from app.core.swap import (
    InvalidTransitionError,
    SwapIntent,
    SwapOrchestrator,
    SwapOutcome,
    SwapState,
)
from app.providers.base import ProviderSwapState, ProviderSwapStatus

INVOICE = "lnbc4u1pjexampleinvoice"


@pytest.fixture
def intent() -> SwapIntent:
    return SwapIntent(
        amount=400,
        direction=SwapDirection.LEDGER_TO_PAYMENT,
        source_party="0xabc",
        destination_party=INVOICE,
    )


async def quoted(orchestrator, pair):
    return await orchestrator.quote(pair, 400, False, "0xabc", INVOICE)


async def awaiting(orchestrator, pair, ledger):
    session = await quoted(orchestrator, pair)
    await orchestrator.commit(session, ledger)
    assert session.state == SwapState.AWAITING_COUNTERPARTY
    return session


# =============================================================================
# Quote
# =============================================================================

class TestQuote:
    @pytest.mark.asyncio
    async def test_quote_populates_session(self, orchestrator, pair, provider):
        session = await quoted(orchestrator, pair)

        assert session.state == SwapState.QUOTED
        assert session.swap_id == "swap-1"
        assert session.output_amount == 400
        assert session.input_without_fee == 400 * 10**12
        assert provider.calls == ["quote"]

    @pytest.mark.asyncio
    async def test_quote_failure_is_classified(self, orchestrator, pair, provider):
        provider.quote_error = httpx.ConnectError("connection refused")

        session = await quoted(orchestrator, pair)

        assert session.state == SwapState.FAILED
        assert session.swap_id is None
        assert session.error.code == ErrorCode.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_unrecognized_quote_failure_falls_back(self, orchestrator, pair, provider):
        provider.quote_error = ValueError("amount below intermediary minimum")

        session = await quoted(orchestrator, pair)

        assert session.error.code == ErrorCode.SWAP_EXECUTION_FAILED


# =============================================================================
# Commit
# =============================================================================

class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_moves_to_awaiting(self, orchestrator, pair, ledger, provider):
        session = await awaiting(orchestrator, pair, ledger)

        assert provider.calls == ["quote", "commit"]
        assert ledger.balance_queries == [pair.source.address]
        assert [t.to_state for t in session.history][-2:] == [
            SwapState.COMMITTING,
            SwapState.AWAITING_COUNTERPARTY,
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [s for s in SwapState if s != SwapState.QUOTED])
    async def test_commit_rejected_outside_quoted(self, orchestrator, pair, ledger, provider, state):
        session = await quoted(orchestrator, pair)
        session.state = state

        with pytest.raises(InvalidTransitionError):
            await orchestrator.commit(session, ledger)
        assert "commit" not in provider.calls

    @pytest.mark.asyncio
    async def test_commit_twice_is_rejected(self, orchestrator, pair, ledger, provider):
        session = await awaiting(orchestrator, pair, ledger)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.commit(session, ledger)
        assert provider.calls.count("commit") == 1

    @pytest.mark.asyncio
    async def test_expired_quote_never_commits(self, pair, ledger, provider):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        provider.quote_expires_at = now + timedelta(seconds=30)
        clock = iter([now, now + timedelta(seconds=31)])
        orchestrator = SwapOrchestrator(provider, clock=lambda: next(clock))

        session = await quoted(orchestrator, pair)
        await orchestrator.commit(session, ledger)

        assert session.state == SwapState.EXPIRED
        assert session.outcome == SwapOutcome.EXPIRED
        assert session.error.code == ErrorCode.SWAP_EXECUTION_FAILED
        assert "commit" not in provider.calls

    @pytest.mark.asyncio
    async def test_insufficient_balance_fails_before_commit(self, orchestrator, pair, ledger, provider):
        ledger.balance = 10

        session = await quoted(orchestrator, pair)
        await orchestrator.commit(session, ledger)

        assert session.state == SwapState.FAILED
        assert session.error.code == ErrorCode.INSUFFICIENT_BALANCE
        assert session.error.details["token"] == "STRK"
        assert "commit" not in provider.calls

    @pytest.mark.asyncio
    async def test_balance_query_failure(self, orchestrator, pair, ledger, provider):
        ledger.balance_error = RuntimeError("unexpected felt")

        session = await quoted(orchestrator, pair)
        await orchestrator.commit(session, ledger)

        assert session.error.code == ErrorCode.BALANCE_QUERY_FAILED
        assert "commit" not in provider.calls

    @pytest.mark.asyncio
    async def test_balance_check_can_be_disabled(self, pair, ledger, provider):
        ledger.balance = 0
        orchestrator = SwapOrchestrator(provider, check_balance_before_commit=False)

        session = await quoted(orchestrator, pair)
        await orchestrator.commit(session, ledger)

        assert session.state == SwapState.AWAITING_COUNTERPARTY
        assert ledger.balance_queries == []

    @pytest.mark.asyncio
    async def test_commit_error_is_not_retried(self, orchestrator, pair, ledger, provider):
        provider.commit_error = SwapError(ErrorCode.RPC_CONNECTION_FAILED)

        session = await quoted(orchestrator, pair)
        await orchestrator.commit(session, ledger)

        assert session.state == SwapState.FAILED
        assert session.error.code == ErrorCode.RPC_CONNECTION_FAILED
        assert session.error.retryable is True
        assert provider.calls.count("commit") == 1

    @pytest.mark.asyncio
    async def test_unexpected_commit_status_fails(self, orchestrator, pair, ledger, provider):
        provider.commit_status = ProviderSwapStatus.EXPIRED

        session = await quoted(orchestrator, pair)
        await orchestrator.commit(session, ledger)

        assert session.state == SwapState.FAILED
        assert "expired" in session.error.message


# =============================================================================
# Await Counterparty / Timeout Law
# =============================================================================

class TestAwaitCounterparty:
    @pytest.mark.asyncio
    async def test_settles(self, orchestrator, pair, ledger, fast_timeout):
        session = await awaiting(orchestrator, pair, ledger)

        await orchestrator.await_counterparty(session, fast_timeout)

        assert session.state == SwapState.SETTLED
        assert session.payment_hash == "ab" * 32
        assert session.transaction_id == "0x5f1e"

    @pytest.mark.asyncio
    async def test_never_settling_times_out_within_bound(self, orchestrator, pair, ledger, provider, fast_timeout):
        provider.settlement = "never"
        session = await awaiting(orchestrator, pair, ledger)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.await_counterparty(session, fast_timeout)
        elapsed = loop.time() - started

        assert session.state == SwapState.TIMED_OUT
        assert session.error is None
        assert elapsed < fast_timeout.hard_bound_seconds + 1

    @pytest.mark.asyncio
    async def test_provider_reported_timeout(self, orchestrator, pair, ledger, provider, fast_timeout):
        provider.settlement = "unsettled"
        session = await awaiting(orchestrator, pair, ledger)

        await orchestrator.await_counterparty(session, fast_timeout)

        assert session.state == SwapState.TIMED_OUT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [ProviderSwapStatus.COMMITTED, ProviderSwapStatus.REFUNDABLE])
    async def test_unsettled_pending_status_times_out(self, orchestrator, pair, ledger, provider, fast_timeout, status):
        provider.settlement = "unsettled"
        provider.unsettled_status = status
        session = await awaiting(orchestrator, pair, ledger)

        await orchestrator.await_counterparty(session, fast_timeout)

        assert session.state == SwapState.TIMED_OUT
        assert session.error is None

    @pytest.mark.asyncio
    async def test_unsettled_already_refunded(self, orchestrator, pair, ledger, provider, fast_timeout):
        provider.settlement = "unsettled"
        provider.unsettled_status = ProviderSwapStatus.REFUNDED
        session = await awaiting(orchestrator, pair, ledger)

        await orchestrator.await_counterparty(session, fast_timeout)

        assert session.state == SwapState.REFUNDED
        assert [t.to_state for t in session.history[-3:]] == [
            SwapState.TIMED_OUT,
            SwapState.REFUNDABLE,
            SwapState.REFUNDED,
        ]
        assert "refund" not in provider.calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [ProviderSwapStatus.FAILED, ProviderSwapStatus.EXPIRED, ProviderSwapStatus.CREATED],
    )
    async def test_unsettled_unexpected_status_fails(self, orchestrator, pair, ledger, provider, fast_timeout, status):
        provider.settlement = "unsettled"
        provider.unsettled_status = status
        session = await awaiting(orchestrator, pair, ledger)

        await orchestrator.await_counterparty(session, fast_timeout)

        assert session.state == SwapState.FAILED
        assert session.error.code == ErrorCode.SWAP_EXECUTION_FAILED
        assert status.value in session.error.message

    @pytest.mark.asyncio
    async def test_settlement_error_fails(self, orchestrator, pair, ledger, provider, fast_timeout):
        provider.settlement_error = httpx.ReadTimeout("read timed out")
        session = await awaiting(orchestrator, pair, ledger)

        await orchestrator.await_counterparty(session, fast_timeout)

        assert session.state == SwapState.FAILED
        assert session.error.code == ErrorCode.TIMEOUT_ERROR

    @pytest.mark.asyncio
    async def test_requires_awaiting_state(self, orchestrator, pair, fast_timeout):
        session = await quoted(orchestrator, pair)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.await_counterparty(session, fast_timeout)


# =============================================================================
# Execute
# =============================================================================

class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_settles_and_releases(self, orchestrator, intent, pair, ledger, provider, fast_timeout):
        session = await orchestrator.execute(intent, pair, ledger, fast_timeout)

        assert session.state == SwapState.SETTLED
        assert provider.released == ["swap-1"]

    @pytest.mark.asyncio
    async def test_execute_timeout_ends_refundable(self, orchestrator, intent, pair, ledger, provider, fast_timeout):
        provider.settlement = "never"

        session = await orchestrator.execute(intent, pair, ledger, fast_timeout)

        assert session.state == SwapState.REFUNDABLE
        assert session.is_terminal is False
        assert "refund" not in provider.calls
        assert provider.released == ["swap-1"]

    @pytest.mark.asyncio
    async def test_execute_releases_after_commit_failure(self, orchestrator, intent, pair, ledger, provider):
        provider.commit_error = RuntimeError("boom")

        session = await orchestrator.execute(intent, pair, ledger)

        assert session.state == SwapState.FAILED
        assert provider.released == ["swap-1"]

    @pytest.mark.asyncio
    async def test_execute_without_quote_releases_nothing(self, orchestrator, intent, pair, ledger, provider):
        provider.quote_error = RuntimeError("no intermediary")

        session = await orchestrator.execute(intent, pair, ledger)

        assert session.state == SwapState.FAILED
        assert provider.released == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,expected",
        [
            (ProviderSwapStatus.REFUNDABLE, SwapState.REFUNDABLE),
            (ProviderSwapStatus.REFUNDED, SwapState.REFUNDED),
            (ProviderSwapStatus.FAILED, SwapState.FAILED),
            (ProviderSwapStatus.EXPIRED, SwapState.FAILED),
        ],
    )
    async def test_execute_follows_provider_status(
        self, orchestrator, intent, pair, ledger, provider, fast_timeout, status, expected
    ):
        provider.settlement = "unsettled"
        provider.unsettled_status = status

        session = await orchestrator.execute(intent, pair, ledger, fast_timeout)

        assert session.state == expected
        assert provider.released == ["swap-1"]

    @pytest.mark.asyncio
    async def test_release_failure_does_not_mask_outcome(self, orchestrator, intent, pair, ledger, provider, fast_timeout):
        provider.release_error = RuntimeError("gone")

        session = await orchestrator.execute(intent, pair, ledger, fast_timeout)

        assert session.state == SwapState.SETTLED


# =============================================================================
# Refund / Resume
# =============================================================================

class TestRefundAndResume:
    @pytest.mark.asyncio
    async def test_refund_from_refundable(self, orchestrator, intent, pair, ledger, provider, fast_timeout):
        provider.settlement = "never"
        session = await orchestrator.execute(intent, pair, ledger, fast_timeout)

        await orchestrator.refund(session, ledger)

        assert session.state == SwapState.REFUNDED
        assert session.outcome == SwapOutcome.REFUNDED

    @pytest.mark.asyncio
    async def test_refund_requires_refundable(self, orchestrator, pair, ledger):
        session = await awaiting(orchestrator, pair, ledger)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.refund(session, ledger)

    @pytest.mark.asyncio
    async def test_unconfirmed_refund_fails(self, orchestrator, intent, pair, ledger, provider, fast_timeout):
        provider.settlement = "never"
        provider.refund_status = ProviderSwapStatus.REFUNDABLE
        session = await orchestrator.execute(intent, pair, ledger, fast_timeout)

        await orchestrator.refund(session, ledger)

        assert session.state == SwapState.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,expected",
        [
            (ProviderSwapStatus.CREATED, SwapState.QUOTED),
            (ProviderSwapStatus.EXPIRED, SwapState.EXPIRED),
            (ProviderSwapStatus.COMMITTED, SwapState.AWAITING_COUNTERPARTY),
            (ProviderSwapStatus.SETTLED, SwapState.SETTLED),
            (ProviderSwapStatus.REFUNDABLE, SwapState.REFUNDABLE),
            (ProviderSwapStatus.REFUNDED, SwapState.REFUNDED),
        ],
    )
    async def test_resume_maps_provider_state(self, orchestrator, provider, status, expected):
        provider.states["swap-9"] = ProviderSwapState(
            swap_id="swap-9",
            status=status,
            input_amount=1000,
            output_amount=400,
            details={"secret": "cd" * 32},
        )

        session = await orchestrator.resume("swap-9")

        assert session.state == expected
        assert session.swap_id == "swap-9"
        if expected == SwapState.SETTLED:
            assert session.payment_hash == "cd" * 32

    @pytest.mark.asyncio
    async def test_resume_unknown_provider_state(self, orchestrator, provider):
        provider.states["swap-9"] = ProviderSwapState(
            swap_id="swap-9",
            status=ProviderSwapStatus.FAILED,
            raw_state=17,
        )

        with pytest.raises(SwapError) as exc_info:
            await orchestrator.resume("swap-9")
        assert exc_info.value.code == ErrorCode.SWAP_EXECUTION_FAILED
