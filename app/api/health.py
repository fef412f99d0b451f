from fastapi import APIRouter, Request
from typing import Dict, Any

router = APIRouter()


async def _health(request: Request) -> Dict[str, Any]:
    state = request.app.state
    provider_status = {}

    # Check the swap execution service
    provider = getattr(state, "provider", None)
    if provider is not None:
        provider_status["swap_service"] = await provider.health_check()

    # Check the ledger RPC
    ledger = getattr(state, "ledger", None)
    if ledger is not None and hasattr(ledger, "health_check"):
        provider_status["starknet"] = await ledger.health_check()

    resolver = getattr(state, "resolver", None)
    catalog = resolver.catalog if resolver is not None else None

    all_healthy = all(
        status.get("status") == "healthy"
        for status in provider_status.values()
    )

    return {
        "status": "healthy" if all_healthy and catalog is not None else "degraded",
        "providers": provider_status,
        "assets": len(catalog) if catalog is not None else 0,
        "lightning": bool(catalog and catalog.lightning),
    }


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    """Liveness plus swap service readiness and asset count"""
    return await _health(request)


@router.get("/healthz")
async def healthz(request: Request) -> Dict[str, Any]:
    """Alias of /health"""
    return await _health(request)
