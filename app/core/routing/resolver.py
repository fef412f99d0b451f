"""
Route resolution: token address + direction -> PairDescriptor.

The asset catalog is a read-only snapshot loaded from the swap execution
provider once at startup and shared by every session.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from ...providers.base import SwapExecutionProvider
from ..recovery import ErrorCode, Result
from .models import AssetHandle, PairDescriptor, SwapDirection

logger = logging.getLogger(__name__)

LEDGER_CHAIN = "STARKNET"
PAYMENT_CHAIN = "BITCOIN"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


def normalize_ledger_address(address: str) -> Optional[str]:
    """Canonical 0x + 64 lowercase hex digits, or None if not hex."""
    if not address or not _HEX_RE.match(address.strip()):
        return None
    value = int(address.strip(), 16)
    if value >= 1 << 256:
        return None
    return f"0x{value:064x}"


class AssetCatalog:
    """Immutable lookup over the provider's tradeable assets."""

    def __init__(self, assets: Iterable[AssetHandle] = ()):
        by_address: Dict[str, AssetHandle] = {}
        lightning: Optional[AssetHandle] = None

        for asset in assets:
            if asset.lightning:
                if asset.chain == PAYMENT_CHAIN or lightning is None:
                    lightning = asset
                continue
            if asset.chain != LEDGER_CHAIN:
                continue
            key = normalize_ledger_address(asset.address)
            if key:
                by_address.setdefault(key, asset)

        self._by_address = by_address
        self._lightning = lightning

    @classmethod
    async def load(cls, provider: SwapExecutionProvider) -> "AssetCatalog":
        assets = await provider.list_assets()
        catalog = cls(assets)
        logger.info(
            f"Asset catalog loaded: {len(catalog)} ledger tokens, "
            f"lightning={'yes' if catalog.lightning else 'no'}"
        )
        return catalog

    def __len__(self) -> int:
        return len(self._by_address)

    @property
    def lightning(self) -> Optional[AssetHandle]:
        return self._lightning

    def find(self, address: str) -> Optional[AssetHandle]:
        key = normalize_ledger_address(address)
        if key is None:
            return None
        return self._by_address.get(key)

    def tickers(self) -> List[str]:
        return sorted(a.ticker for a in self._by_address.values())


class RouteResolver:
    """Maps a caller's token identifier and direction to a PairDescriptor."""

    def __init__(
        self,
        catalog: Optional[AssetCatalog],
        *,
        lightning_enabled: bool = True,
    ):
        self._catalog = catalog
        self._lightning_enabled = lightning_enabled

    @property
    def catalog(self) -> Optional[AssetCatalog]:
        return self._catalog

    def resolve(self, token_address: str, direction: SwapDirection) -> Result[PairDescriptor]:
        if self._catalog is None or not self._lightning_enabled:
            return Result.fail(ErrorCode.LIGHTNING_NOT_AVAILABLE)

        lightning = self._catalog.lightning
        if lightning is None:
            return Result.fail(ErrorCode.LIGHTNING_NOT_AVAILABLE, "Lightning BTC token not available")

        token = self._catalog.find(token_address)
        if token is None:
            return Result.fail(
                ErrorCode.TOKEN_NOT_FOUND,
                f"Token not found for address: {token_address}",
            )

        if direction == SwapDirection.LEDGER_TO_PAYMENT:
            return Result.success(PairDescriptor(source=token, destination=lightning))
        return Result.success(PairDescriptor(source=lightning, destination=token))
