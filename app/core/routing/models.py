"""Pair descriptors and swap direction."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ...providers.base import ProviderAsset

# Handles are opaque beyond equality and ticker.
AssetHandle = ProviderAsset


class SwapDirection(str, Enum):
    LEDGER_TO_PAYMENT = "ledger_to_payment"
    PAYMENT_TO_LEDGER = "payment_to_ledger"


@dataclass(frozen=True)
class PairDescriptor:
    """Resolved tradeable pair; recomputed per request, never cached."""

    source: AssetHandle
    destination: AssetHandle

    def __post_init__(self) -> None:
        if self.source == self.destination:
            raise ValueError("Pair source and destination must differ")

    @property
    def label(self) -> str:
        return f"{self.source.ticker}->{self.destination.ticker}"
