"""Async client for the swap execution service REST API."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, settings as default_settings
from ..core.recovery import ErrorCode, SwapError
from .base import (
    LedgerAccount,
    ProviderAsset,
    ProviderQuote,
    ProviderSwapState,
    ProviderSwapStatus,
    SettlementResult,
    SwapExecutionProvider,
)

logger = logging.getLogger(__name__)

# Wire state codes for ledger -> Lightning swaps.
STATE_CODES: Dict[int, ProviderSwapStatus] = {
    -3: ProviderSwapStatus.REFUNDED,
    -2: ProviderSwapStatus.EXPIRED,     # quote expired
    -1: ProviderSwapStatus.EXPIRED,     # quote soft-expired
    0: ProviderSwapStatus.CREATED,
    1: ProviderSwapStatus.COMMITTED,
    2: ProviderSwapStatus.SETTLED,      # soft claimed, payment sent
    3: ProviderSwapStatus.SETTLED,      # claimed on ledger
    4: ProviderSwapStatus.REFUNDABLE,
}

UNAVAILABLE_STATUSES = (502, 503, 504)


def status_from_code(code: Any) -> ProviderSwapStatus:
    try:
        return STATE_CODES[int(code)]
    except (TypeError, ValueError, KeyError):
        return ProviderSwapStatus.FAILED


def _parse_expiry(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        # Milliseconds since epoch
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SwapServiceProvider(SwapExecutionProvider):
    """Thin wrapper around the swap execution daemon.

    The daemon owns hashed commitments, key custody, and intermediary
    discovery. This adapter only speaks its REST contract and translates
    wire state codes.
    """

    name = "swap_service"

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval_s: float = 5.0,
    ) -> None:
        self._settings = config or default_settings
        self.base_url = (base_url or self._settings.swap_service_url).rstrip("/")
        self._transport = transport
        self.poll_interval_s = poll_interval_s
        self.get_timeout_s = self._settings.get_request_timeout_s
        self.post_timeout_s = self._settings.post_request_timeout_s

    def _headers(self) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "AtomicSwapGateway/1.0",
        }
        credential = self._settings.signing_credential.get_secret_value()
        if credential:
            headers["authorization"] = f"Bearer {credential}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        timeout = self.get_timeout_s if method == "GET" else self.post_timeout_s
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, json=json, headers=self._headers())
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise self._to_swap_error(exc) from exc
            if not response.content:
                return {}
            return response.json()

    @staticmethod
    def _to_swap_error(exc: httpx.HTTPStatusError) -> SwapError:
        status = exc.response.status_code
        try:
            body = exc.response.json()
            reason = body.get("message") or body.get("error") or exc.response.text
        except ValueError:
            reason = exc.response.text or exc.response.reason_phrase
        reason = str(reason)

        if status in UNAVAILABLE_STATUSES:
            return SwapError(ErrorCode.RPC_CONNECTION_FAILED, reason=reason, upstream_status=status)
        if "insufficient" in reason.lower():
            return SwapError(ErrorCode.INSUFFICIENT_BALANCE, reason=reason, upstream_status=status)
        return SwapError(ErrorCode.SWAP_EXECUTION_FAILED, reason=reason, upstream_status=status)

    async def ready(self) -> bool:
        try:
            data = await self._request("GET", "/health")
        except (httpx.HTTPError, SwapError):
            return False
        return bool(data.get("ready", True))

    async def health_check(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            data = await self._request("GET", "/health")
        except Exception as e:
            return {"status": "error", "reason": str(e)}
        latency_ms = int((time.perf_counter() - started) * 1000)
        if not data.get("ready", True):
            return {"status": "unavailable", "reason": "Swap service not initialized"}
        return {"status": "healthy", "latency_ms": latency_ms}

    async def list_assets(self) -> List[ProviderAsset]:
        data = await self._request("GET", "/tokens")
        items = data.get("tokens", []) if isinstance(data, dict) else data
        assets: List[ProviderAsset] = []
        for item in items:
            assets.append(
                ProviderAsset(
                    chain=str(item.get("chain", "")).upper(),
                    address=str(item.get("address", "")),
                    ticker=str(item.get("ticker", "")),
                    decimals=int(item.get("decimals", 0)),
                    lightning=bool(item.get("lightning", False)),
                )
            )
        return assets

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
        payload: Dict[str, Any] = {
            "srcToken": {"chain": source.chain, "address": source.address},
            "dstToken": {"chain": destination.chain, "address": destination.address},
            "amount": str(amount),
            "exactIn": exact_in,
            "srcAddress": source_address,
            "dstAddress": destination_address,
            "maxPricingDifferencePPM": self._settings.max_pricing_difference_ppm,
        }
        if comment:
            payload["comment"] = comment

        data = await self._request("POST", "/swaps", json=payload)
        return ProviderQuote(
            swap_id=str(data["id"]),
            input_amount=int(data.get("input", data.get("inputWithoutFee", 0))),
            input_without_fee=int(data.get("inputWithoutFee", 0)),
            output_amount=int(data.get("output", 0)),
            fee=int(data.get("fee", 0)),
            expires_at=_parse_expiry(data.get("expiry")),
            status=status_from_code(data.get("state", 0)),
        )

    async def commit(self, swap_id: str, signer: LedgerAccount) -> ProviderSwapStatus:
        data = await self._request(
            "POST",
            f"/swaps/{swap_id}/commit",
            json={"signer": signer.get_address()},
        )
        return status_from_code(data.get("state"))

    async def await_settlement(self, swap_id: str, timeout_seconds: float) -> SettlementResult:
        """Poll the swap state until it leaves COMMITTED or the deadline passes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds
        state = await self.get_state(swap_id)

        while state.status == ProviderSwapStatus.COMMITTED:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval_s, remaining))
            state = await self.get_state(swap_id)

        return SettlementResult(
            settled=state.status == ProviderSwapStatus.SETTLED,
            status=state.status,
            payment_hash=state.details.get("secret") or state.details.get("paymentHash"),
            transaction_id=state.details.get("txId"),
        )

    async def refund(self, swap_id: str, signer: LedgerAccount) -> ProviderSwapStatus:
        data = await self._request(
            "POST",
            f"/swaps/{swap_id}/refund",
            json={"signer": signer.get_address()},
        )
        return status_from_code(data.get("state"))

    async def get_state(self, swap_id: str) -> ProviderSwapState:
        data = await self._request("GET", f"/swaps/{swap_id}")
        raw = data.get("state")
        return ProviderSwapState(
            swap_id=str(data.get("id", swap_id)),
            status=status_from_code(raw),
            raw_state=int(raw) if raw is not None else None,
            input_amount=int(data["input"]) if data.get("input") is not None else None,
            output_amount=int(data["output"]) if data.get("output") is not None else None,
            details={k: v for k, v in data.items() if k in ("secret", "paymentHash", "txId")},
        )

    async def release(self, swap_id: str) -> None:
        try:
            await self._request("POST", f"/swaps/{swap_id}/release")
        except (httpx.HTTPError, SwapError) as e:
            # The swap itself is durable on the service side
            logger.warning(f"Failed to release swap session {swap_id}: {e}")
