from .models import AssetHandle, PairDescriptor, SwapDirection
from .resolver import AssetCatalog, RouteResolver, normalize_ledger_address

__all__ = [
    "AssetHandle",
    "AssetCatalog",
    "PairDescriptor",
    "RouteResolver",
    "SwapDirection",
    "normalize_ledger_address",
]
