"""
Shared fixtures: in-memory swap execution provider and ledger account.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.core.recovery import ErrorCode, SwapError
from app.core.routing import PairDescriptor
from app.core.swap import SwapOrchestrator, TimeoutPolicy
from app.main import create_app
from app.providers.base import (
    LedgerAccount,
    ProviderAsset,
    ProviderQuote,
    ProviderSwapState,
    ProviderSwapStatus,
    SettlementResult,
    SwapExecutionProvider,
)

ACCOUNT_ADDRESS = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
STRK_ADDRESS = "0x04718f5a0fc34cc1af16a1cdee98ffb20c31f5cd61d6ab07201858f4287c938d"
ETH_ADDRESS = "0x049d36570d4e46f48e99674bd3fcc84644ddd6b96f7c741b1562b82f9e004dc7"
UNKNOWN_ADDRESS = "0x" + "ab" * 32
INVOICE = "lnbc4u1pjexampleinvoice"

STRK = ProviderAsset(chain="STARKNET", address=STRK_ADDRESS, ticker="STRK", decimals=18)
ETH = ProviderAsset(chain="STARKNET", address=ETH_ADDRESS, ticker="ETH", decimals=18)
BTC_LN = ProviderAsset(chain="BITCOIN", address="", ticker="BTC", decimals=8, lightning=True)


class FakeLedgerAccount(LedgerAccount):
    def __init__(self, balance: int = 10**24, balance_error: Optional[Exception] = None):
        self.balance = balance
        self.balance_error = balance_error
        self.balance_queries: List[str] = []

    def get_address(self) -> str:
        return ACCOUNT_ADDRESS

    async def get_nonce(self) -> int:
        return 7

    async def get_balance(self, token_address: str) -> int:
        self.balance_queries.append(token_address)
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance


class FakeSwapProvider(SwapExecutionProvider):
    """
    Scriptable provider.

    settlement: "settle" pays out, "never" blocks past any deadline,
    "unsettled" reports back without a payment.
    """

    name = "fake"

    def __init__(self, assets: Optional[List[ProviderAsset]] = None):
        self.assets = list(assets) if assets is not None else [STRK, ETH, BTC_LN]
        self.settlement = "settle"
        self.commit_status = ProviderSwapStatus.COMMITTED
        self.refund_status = ProviderSwapStatus.REFUNDED
        self.unsettled_status = ProviderSwapStatus.REFUNDABLE
        self.quote_expires_at: Optional[datetime] = None
        self.quote_error: Optional[Exception] = None
        self.commit_error: Optional[Exception] = None
        self.settlement_error: Optional[Exception] = None
        self.release_error: Optional[Exception] = None
        self.states: Dict[str, ProviderSwapState] = {}
        self.calls: List[str] = []
        self.released: List[str] = []
        self._next_id = 1

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}

    async def list_assets(self) -> List[ProviderAsset]:
        self.calls.append("list_assets")
        return list(self.assets)

    async def quote(self, source, destination, amount, exact_in, source_address, destination_address, comment=None):
        self.calls.append("quote")
        if self.quote_error is not None:
            raise self.quote_error
        swap_id = f"swap-{self._next_id}"
        self._next_id += 1
        return ProviderQuote(
            swap_id=swap_id,
            input_amount=amount * 10**12 + 1000,
            input_without_fee=amount * 10**12,
            output_amount=amount,
            fee=1000,
            expires_at=self.quote_expires_at or datetime.now(timezone.utc) + timedelta(minutes=5),
        )

    async def commit(self, swap_id, signer):
        self.calls.append("commit")
        if self.commit_error is not None:
            raise self.commit_error
        return self.commit_status

    async def await_settlement(self, swap_id, timeout_seconds):
        self.calls.append("await_settlement")
        if self.settlement_error is not None:
            raise self.settlement_error
        if self.settlement == "never":
            await asyncio.sleep(3600)
        if self.settlement == "unsettled":
            return SettlementResult(settled=False, status=self.unsettled_status)
        return SettlementResult(
            settled=True,
            status=ProviderSwapStatus.SETTLED,
            payment_hash="ab" * 32,
            transaction_id="0x5f1e",
        )

    async def refund(self, swap_id, signer):
        self.calls.append("refund")
        return self.refund_status

    async def get_state(self, swap_id):
        self.calls.append("get_state")
        if swap_id not in self.states:
            raise SwapError(ErrorCode.SWAP_EXECUTION_FAILED, f"Unknown swap {swap_id}")
        return self.states[swap_id]

    async def release(self, swap_id):
        self.released.append(swap_id)
        if self.release_error is not None:
            raise self.release_error


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def provider() -> FakeSwapProvider:
    return FakeSwapProvider()


@pytest.fixture
def ledger() -> FakeLedgerAccount:
    return FakeLedgerAccount()


@pytest.fixture
def pair() -> PairDescriptor:
    return PairDescriptor(source=STRK, destination=BTC_LN)


@pytest.fixture
def orchestrator(provider: FakeSwapProvider) -> SwapOrchestrator:
    return SwapOrchestrator(provider)


@pytest.fixture
def fast_timeout() -> TimeoutPolicy:
    return TimeoutPolicy(payment_timeout_seconds=0.05, grace_seconds=0.05)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        starknet_rpc_url="http://rpc.test",
        starknet_account_address=ACCOUNT_ADDRESS,
        signing_credential="test-credential",
        swap_service_url="http://swaps.test",
        environment="development",
    )


@pytest.fixture
def app(test_settings, provider, ledger, fast_timeout):
    application = create_app(test_settings, provider=provider, ledger=ledger)
    application.state.timeout_policy = fast_timeout
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
