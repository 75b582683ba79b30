"""ERC-4337 (EntryPoint v0.6) UserOperations and the bundler / paymaster RPC client."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, fields, replace
from typing import Any

import httpx
from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from textwallet.errors import GatewayFailure

logger = logging.getLogger("textwallet.wallet.userop")

# Placeholder signature accepted by SimpleAccount during paymaster simulation.
DUMMY_SIGNATURE = "0x" + "f" * 31 + "0" * 33 + "7" + "a" * 63 + "1c"

_INT_FIELDS = {
    "nonce": "nonce",
    "call_gas_limit": "callGasLimit",
    "verification_gas_limit": "verificationGasLimit",
    "pre_verification_gas": "preVerificationGas",
    "max_fee_per_gas": "maxFeePerGas",
    "max_priority_fee_per_gas": "maxPriorityFeePerGas",
}
_HEX_FIELDS = {
    "sender": "sender",
    "init_code": "initCode",
    "call_data": "callData",
    "paymaster_and_data": "paymasterAndData",
    "signature": "signature",
}


@dataclass(frozen=True)
class UserOperation:
    """A v0.6 UserOperation. Integers are kept as ints, byte fields as 0x-hex."""

    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str = "0x"
    signature: str = DUMMY_SIGNATURE

    def to_rpc(self) -> dict[str, str]:
        """Return the camelCase JSON-RPC form with hex-encoded quantities."""
        data: dict[str, str] = {}
        for f in fields(self):
            if f.name in _INT_FIELDS:
                data[_INT_FIELDS[f.name]] = hex(getattr(self, f.name))
            else:
                data[_HEX_FIELDS[f.name]] = getattr(self, f.name)
        return data

    def merge_rpc(self, data: dict[str, Any]) -> UserOperation:
        """Return a copy updated with any UserOperation fields present in *data*.

        Paymasters answer with ``paymasterAndData`` and may also rewrite the
        gas fields; unknown keys are ignored.
        """
        changes: dict[str, Any] = {}
        for name, key in _INT_FIELDS.items():
            if data.get(key) is not None:
                changes[name] = _to_int(data[key])
        for name, key in _HEX_FIELDS.items():
            if data.get(key) is not None:
                changes[name] = data[key]
        return replace(self, **changes)


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def user_op_hash(op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Compute the hash the EntryPoint hands to the account for validation."""
    packed = encode(
        [
            "address", "uint256", "bytes32", "bytes32", "uint256",
            "uint256", "uint256", "uint256", "uint256", "bytes32",
        ],
        [
            Web3.to_checksum_address(op.sender),
            op.nonce,
            Web3.keccak(hexstr=op.init_code),
            Web3.keccak(hexstr=op.call_data),
            op.call_gas_limit,
            op.verification_gas_limit,
            op.pre_verification_gas,
            op.max_fee_per_gas,
            op.max_priority_fee_per_gas,
            Web3.keccak(hexstr=op.paymaster_and_data),
        ],
    )
    return bytes(
        Web3.keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [Web3.keccak(packed), Web3.to_checksum_address(entry_point), chain_id],
            )
        )
    )


def sign_user_op(
    op: UserOperation, private_key: bytes, entry_point: str, chain_id: int
) -> UserOperation:
    """Sign *op* the way SimpleAccount expects (EIP-191 over the op hash)."""
    digest = user_op_hash(op, entry_point, chain_id)
    signed = Account.sign_message(encode_defunct(primitive=digest), private_key)
    return replace(op, signature="0x" + bytes(signed.signature).hex())


class BundlerClient:
    """JSON-RPC client for an ERC-4337 bundler and its sponsoring paymaster.

    Parameters
    ----------
    bundler_rpc:
        Bundler endpoint (``eth_sendUserOperation`` and friends).
    paymaster_rpc:
        Paymaster endpoint answering ``pm_sponsor_userop``.
    entry_point:
        EntryPoint contract address the operations target.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
    """

    def __init__(
        self,
        bundler_rpc: str,
        paymaster_rpc: str,
        entry_point: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.bundler_rpc = bundler_rpc
        self.paymaster_rpc = paymaster_rpc
        self.entry_point = entry_point
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def _rpc(self, url: str, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            raise GatewayFailure(f"{method} request failed: {exc}", retryable=True) from exc
        except ValueError as exc:
            raise GatewayFailure(f"{method} returned a non-JSON response") from exc

        error = body.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise GatewayFailure(f"{method} failed: {message}")
        return body.get("result")

    async def sponsor(
        self, op: UserOperation, api_key: str, paymaster_type: str = "0"
    ) -> UserOperation:
        """Ask the paymaster to sponsor *op* and return it with ``paymasterAndData`` set."""
        result = await self._rpc(
            self.paymaster_rpc,
            "pm_sponsor_userop",
            [op.to_rpc(), api_key, self.entry_point, {"type": paymaster_type}],
        )
        if not isinstance(result, dict) or not result.get("paymasterAndData"):
            raise GatewayFailure("Paymaster did not sponsor the operation")
        return op.merge_rpc(result)

    async def send(self, op: UserOperation) -> str:
        """Submit a signed operation and return its UserOperation hash."""
        op_hash = await self._rpc(
            self.bundler_rpc, "eth_sendUserOperation", [op.to_rpc(), self.entry_point]
        )
        if not op_hash:
            raise GatewayFailure("Bundler returned no UserOperation hash")
        logger.info(f"UserOperation sent: {op_hash}")
        return op_hash

    async def get_receipt(self, op_hash: str) -> dict | None:
        return await self._rpc(self.bundler_rpc, "eth_getUserOperationReceipt", [op_hash])

    async def wait_for_receipt(
        self, op_hash: str, timeout: float = 120.0, interval: float = 2.0
    ) -> dict:
        """Poll the bundler until the operation is mined.

        Raises a retryable :class:`GatewayFailure` when *timeout* elapses and a
        plain one when the operation was mined but reverted.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            receipt = await self.get_receipt(op_hash)
            if receipt:
                if receipt.get("success") is False:
                    reason = receipt.get("reason") or "execution reverted"
                    raise GatewayFailure(f"UserOperation {op_hash} failed: {reason}")
                return receipt
            if loop.time() >= deadline:
                raise GatewayFailure(
                    f"Timed out waiting for UserOperation {op_hash}", retryable=True
                )
            await asyncio.sleep(interval)

    async def aclose(self) -> None:
        await self._client.aclose()
