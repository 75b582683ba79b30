import asyncio
import json

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from textwallet.errors import GatewayFailure
from textwallet.wallet.userop import (
    DUMMY_SIGNATURE,
    BundlerClient,
    UserOperation,
    sign_user_op,
    user_op_hash,
)

ENTRY_POINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"


def _op(**overrides):
    data = dict(
        sender="0x" + "12" * 20,
        nonce=0,
        init_code="0x",
        call_data="0xdeadbeef",
        call_gas_limit=0x88B8,
        verification_gas_limit=0x33450,
        pre_verification_gas=0xC350,
        max_fee_per_gas=0x435A6E7A,
        max_priority_fee_per_gas=0x435A6E6C,
    )
    data.update(overrides)
    return UserOperation(**data)


def test_dummy_signature_is_65_bytes():
    assert len(bytes.fromhex(DUMMY_SIGNATURE[2:])) == 65


def test_to_rpc_hex_encodes_quantities():
    rpc = _op().to_rpc()

    assert rpc["callGasLimit"] == "0x88b8"
    assert rpc["nonce"] == "0x0"
    assert rpc["paymasterAndData"] == "0x"
    assert rpc["signature"] == DUMMY_SIGNATURE


def test_merge_rpc_takes_paymaster_fields():
    op = _op().merge_rpc({"paymasterAndData": "0xabcd", "callGasLimit": "0x10", "extra": 1})

    assert op.paymaster_and_data == "0xabcd"
    assert op.call_gas_limit == 16


def test_hash_depends_on_chain_and_fields():
    base = user_op_hash(_op(), ENTRY_POINT, 689)

    assert len(base) == 32
    assert base != user_op_hash(_op(), ENTRY_POINT, 50002)
    assert base != user_op_hash(_op(nonce=1), ENTRY_POINT, 689)
    # the signature is not part of the hash
    assert base == user_op_hash(_op(signature="0x01"), ENTRY_POINT, 689)


def test_signature_recovers_to_owner():
    account = Account.create()
    op = _op()

    signed = sign_user_op(op, bytes(account.key), ENTRY_POINT, 689)

    digest = user_op_hash(op, ENTRY_POINT, 689)
    recovered = Account.recover_message(encode_defunct(primitive=digest), signature=signed.signature)
    assert recovered == account.address


def _client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BundlerClient("https://bundler.test", "https://paymaster.test", ENTRY_POINT, client=http)


def _rpc_handler(results):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append((str(request.url), body["method"], body["params"]))
        result = results[body["method"]]
        if callable(result):
            result = result()
        if isinstance(result, dict) and "error" in result:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **result})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler, calls


def test_sponsor_send_and_receipt():
    receipts = iter([None, {"success": True, "receipt": {"transactionHash": "0xtx"}}])
    handler, calls = _rpc_handler(
        {
            "pm_sponsor_userop": {"paymasterAndData": "0xpm"},
            "eth_sendUserOperation": "0xop",
            "eth_getUserOperationReceipt": lambda: next(receipts),
        }
    )
    client = _client(handler)

    async def scenario():
        op = await client.sponsor(_op(), "key-123")
        op_hash = await client.send(op)
        receipt = await client.wait_for_receipt(op_hash, timeout=5, interval=0)
        return op, op_hash, receipt

    op, op_hash, receipt = asyncio.run(scenario())

    assert op.paymaster_and_data == "0xpm"
    assert op_hash == "0xop"
    assert receipt["receipt"]["transactionHash"] == "0xtx"
    url, method, params = calls[0]
    assert url == "https://paymaster.test"
    assert method == "pm_sponsor_userop"
    assert params[1:] == ["key-123", ENTRY_POINT, {"type": "0"}]
    assert calls[1][0] == "https://bundler.test"


def test_rpc_error_becomes_gateway_failure():
    handler, _ = _rpc_handler({"pm_sponsor_userop": {"error": {"code": -32500, "message": "quota exceeded"}}})
    client = _client(handler)

    with pytest.raises(GatewayFailure, match="pm_sponsor_userop failed: quota exceeded") as info:
        asyncio.run(client.sponsor(_op(), "key"))
    assert info.value.retryable is False


def test_http_error_is_retryable():
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(GatewayFailure) as info:
        asyncio.run(client.send(_op()))
    assert info.value.retryable is True


def test_reverted_operation_raises():
    handler, _ = _rpc_handler(
        {"eth_getUserOperationReceipt": {"success": False, "reason": "AA33 reverted"}}
    )
    client = _client(handler)

    with pytest.raises(GatewayFailure, match="AA33 reverted"):
        asyncio.run(client.wait_for_receipt("0xop", timeout=1, interval=0))


def test_receipt_wait_times_out():
    handler, _ = _rpc_handler({"eth_getUserOperationReceipt": None})
    client = _client(handler)

    with pytest.raises(GatewayFailure) as info:
        asyncio.run(client.wait_for_receipt("0xop", timeout=0.05, interval=0.01))
    assert info.value.retryable is True
