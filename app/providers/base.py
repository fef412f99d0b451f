from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


@dataclass(frozen=True)
class ProviderAsset:
    """Asset as advertised by the swap execution service."""

    chain: str
    address: str
    ticker: str
    decimals: int
    lightning: bool = False


class ProviderSwapStatus(str, Enum):
    """Provider-side swap state, already translated from wire codes."""

    CREATED = "created"
    COMMITTED = "committed"
    SETTLED = "settled"
    REFUNDABLE = "refundable"
    REFUNDED = "refunded"
    EXPIRED = "expired"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderQuote:
    swap_id: str
    input_amount: int
    input_without_fee: int
    output_amount: int
    fee: int = 0
    expires_at: Optional[datetime] = None
    status: ProviderSwapStatus = ProviderSwapStatus.CREATED


@dataclass(frozen=True)
class SettlementResult:
    settled: bool
    status: ProviderSwapStatus
    payment_hash: Optional[str] = None
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class ProviderSwapState:
    swap_id: str
    status: ProviderSwapStatus
    raw_state: Optional[int] = None
    input_amount: Optional[int] = None
    output_amount: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


class LedgerAccount(ABC):
    """Signing authority on the ledger leg. Opaque to the orchestrator."""

    @abstractmethod
    def get_address(self) -> str:
        pass

    @abstractmethod
    async def get_nonce(self) -> int:
        pass

    @abstractmethod
    async def get_balance(self, token_address: str) -> int:
        """Spendable balance of a ledger token, in its smallest unit."""
        pass


class SwapExecutionProvider(Provider):
    """
    Swap execution collaborator.

    Exactly the operations the orchestrator calls. Implementations raise
    SwapError for failures they can classify and let anything else
    propagate to the classifier.
    """

    @abstractmethod
    async def list_assets(self) -> List[ProviderAsset]:
        pass

    @abstractmethod
    async def quote(
        self,
        source: ProviderAsset,
        destination: ProviderAsset,
        amount: int,
        exact_in: bool,
        source_address: Optional[str],
        destination_address: Optional[str],
        comment: Optional[str] = None,
    ) -> ProviderQuote:
        pass

    @abstractmethod
    async def commit(self, swap_id: str, signer: LedgerAccount) -> ProviderSwapStatus:
        pass

    @abstractmethod
    async def await_settlement(self, swap_id: str, timeout_seconds: float) -> SettlementResult:
        pass

    @abstractmethod
    async def refund(self, swap_id: str, signer: LedgerAccount) -> ProviderSwapStatus:
        pass

    @abstractmethod
    async def get_state(self, swap_id: str) -> ProviderSwapState:
        pass

    @abstractmethod
    async def release(self, swap_id: str) -> None:
        """Drop any provider-side resources held for this swap session."""
        pass

    async def close(self) -> None:
        return None
