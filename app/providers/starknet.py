import itertools
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, settings as default_settings
from ..core.recovery import ErrorCode, SwapError
from .base import LedgerAccount

# starknet_keccak("balanceOf")
BALANCE_OF_SELECTOR = "0x2e4263afad30923c891518314c3c95dbe830a16874e8abc5777a9a20b54c76e"


class StarknetAccount(LedgerAccount):
    """Starknet account reached over JSON-RPC.

    Read-only: nonce and token balances come from the node, signatures are
    produced by the swap service on behalf of this address.
    """

    name = "starknet"
    timeout_s = 10

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = config or default_settings
        self.rpc_url = self._settings.starknet_rpc_url
        self.address = self._settings.starknet_account_address
        self._transport = transport
        self._ids = itertools.count(1)

    def get_address(self) -> str:
        return self.address

    async def _rpc(self, method: str, params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            response = await client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()

        if "error" in data:
            raise SwapError(
                ErrorCode.RPC_CONNECTION_FAILED,
                reason=str(data["error"]),
                method=method,
            )
        return data["result"]

    async def get_nonce(self) -> int:
        result = await self._rpc("starknet_getNonce", {"block_id": "pending", "contract_address": self.address})
        return int(result, 16)

    async def get_balance(self, token_address: str) -> int:
        """ERC-20 balance as a u256 assembled from its (low, high) felts."""
        try:
            result: List[str] = await self._rpc(
                "starknet_call",
                {
                    "request": {
                        "contract_address": token_address,
                        "entry_point_selector": BALANCE_OF_SELECTOR,
                        "calldata": [self.address],
                    },
                    "block_id": "pending",
                },
            )
        except SwapError as e:
            raise SwapError(ErrorCode.BALANCE_QUERY_FAILED, **e.record.details) from e

        low = int(result[0], 16) if result else 0
        high = int(result[1], 16) if len(result) > 1 else 0
        return (high << 128) + low

    async def health_check(self) -> Dict[str, Any]:
        try:
            chain_id = await self._rpc("starknet_chainId", [])
            return {"status": "healthy", "chain_id": chain_id}
        except Exception as e:
            return {"status": "error", "reason": str(e)}
