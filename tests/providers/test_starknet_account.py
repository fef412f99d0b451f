import json

import httpx
import pytest

from app.config import Settings
from app.core.recovery import ErrorCode, SwapError
from app.providers.starknet import BALANCE_OF_SELECTOR, StarknetAccount

ACCOUNT = "0x" + "1" * 64
TOKEN = "0x04718f5a0fc34cc1af16a1cdee98ffb20c31f5cd61d6ab07201858f4287c938d"


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None, starknet_rpc_url="http://rpc.test", starknet_account_address=ACCOUNT)


def rpc_handler(result=None, error=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if seen is not None:
            seen.append(payload)
        body = {"jsonrpc": "2.0", "id": payload["id"]}
        if error is not None:
            body["error"] = error
        else:
            body["result"] = result
        return httpx.Response(200, json=body)
    return handler


@pytest.mark.asyncio
async def test_get_nonce(config):
    seen = []
    account = StarknetAccount(config, transport=httpx.MockTransport(rpc_handler("0x1a", seen=seen)))

    assert await account.get_nonce() == 26
    assert seen[0]["method"] == "starknet_getNonce"
    assert seen[0]["params"]["contract_address"] == ACCOUNT


@pytest.mark.asyncio
async def test_get_balance_assembles_u256(config):
    seen = []
    account = StarknetAccount(config, transport=httpx.MockTransport(rpc_handler(["0x10", "0x1"], seen=seen)))

    balance = await account.get_balance(TOKEN)

    assert balance == (1 << 128) + 16
    call = seen[0]["params"]["request"]
    assert call["contract_address"] == TOKEN
    assert call["entry_point_selector"] == BALANCE_OF_SELECTOR
    assert call["calldata"] == [ACCOUNT]


@pytest.mark.asyncio
async def test_balance_rpc_error(config):
    handler = rpc_handler(error={"code": 20, "message": "Contract not found"})
    account = StarknetAccount(config, transport=httpx.MockTransport(handler))

    with pytest.raises(SwapError) as exc_info:
        await account.get_balance(TOKEN)

    assert exc_info.value.code == ErrorCode.BALANCE_QUERY_FAILED


@pytest.mark.asyncio
async def test_nonce_rpc_error(config):
    handler = rpc_handler(error={"code": -32603, "message": "Internal error"})
    account = StarknetAccount(config, transport=httpx.MockTransport(handler))

    with pytest.raises(SwapError) as exc_info:
        await account.get_nonce()

    assert exc_info.value.code == ErrorCode.RPC_CONNECTION_FAILED


@pytest.mark.asyncio
async def test_health_check(config):
    account = StarknetAccount(config, transport=httpx.MockTransport(rpc_handler("0x534e5f4d41494e")))

    health = await account.health_check()

    assert health == {"status": "healthy", "chain_id": "0x534e5f4d41494e"}
    assert account.get_address() == ACCOUNT
