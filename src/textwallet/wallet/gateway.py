"""Chain gateway: the only component that talks to the network.

:class:`Web3ChainGateway` reads chain state through web3.py and submits
sponsored writes as ERC-4337 UserOperations through the bundler.  Callers use
:func:`bounded` around every gateway call so a slow node turns into a
retryable :class:`GatewayFailure` instead of a stalled dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Protocol, TypeVar

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from textwallet.config import AccountAbstractionConfig, GasPolicyConfig
from textwallet.errors import GatewayFailure, WalletBotError
from textwallet.wallet.chains import Chain
from textwallet.wallet.custody import signer_address
from textwallet.wallet.userop import BundlerClient, UserOperation, sign_user_op

logger = logging.getLogger("textwallet.wallet.gateway")

T = TypeVar("T")

ERC20_ABI: list[dict] = [
    {
        "name": "balanceOf", "type": "function", "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals", "type": "function", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "transfer", "type": "function", "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "mint", "type": "function", "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [],
    },
]

_FACTORY_ABI: list[dict] = [
    {
        "name": "getAddress", "type": "function", "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "salt", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "createAccount", "type": "function", "stateMutability": "nonpayable",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "salt", "type": "uint256"}],
        "outputs": [{"name": "ret", "type": "address"}],
    },
]

_ACCOUNT_ABI: list[dict] = [
    {
        "name": "execute", "type": "function", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "dest", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "func", "type": "bytes"},
        ],
        "outputs": [],
    },
]

_ENTRY_POINT_ABI: list[dict] = [
    {
        "name": "getNonce", "type": "function", "stateMutability": "view",
        "inputs": [{"name": "sender", "type": "address"}, {"name": "key", "type": "uint192"}],
        "outputs": [{"name": "nonce", "type": "uint256"}],
    },
]


@dataclass(frozen=True)
class SponsoredReceipt:
    """Identifiers of a mined sponsored operation."""

    operation_id: str
    transaction_id: str


class ChainGateway(Protocol):
    """Opaque chain operations the wallet managers depend on."""

    async def derive_wallet_address(self, signer_address: str) -> str: ...

    async def is_deployed(self, address: str) -> bool: ...

    async def get_balance(self, address: str) -> Decimal: ...

    async def get_asset_balance(self, address: str, asset: str) -> Decimal: ...

    async def submit_sponsored_call(
        self,
        signer_key: bytes,
        wallet_address: str,
        target_contract: str,
        abi: list[dict],
        function_name: str,
        args: list[Any],
    ) -> SponsoredReceipt: ...


async def bounded(call: Awaitable[T], timeout: float, what: str) -> T:
    """Await a gateway call with a deadline, normalising failures.

    Timeouts become a retryable :class:`GatewayFailure`; any other
    non-textwallet exception is wrapped in a :class:`GatewayFailure` that
    keeps the original message.
    """
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as exc:
        raise GatewayFailure(f"{what} timed out after {timeout:g}s", retryable=True) from exc
    except WalletBotError:
        raise
    except Exception as exc:
        raise GatewayFailure(f"{what} failed: {exc}") from exc


def _normalize_args(args: list[Any]) -> list[Any]:
    """Checksum any address-shaped string arguments."""
    normalized = []
    for arg in args:
        if isinstance(arg, str) and Web3.is_address(arg):
            normalized.append(Web3.to_checksum_address(arg))
        else:
            normalized.append(arg)
    return normalized


class Web3ChainGateway:
    """Chain gateway backed by a JSON-RPC node plus an ERC-4337 bundler."""

    def __init__(
        self,
        chain: Chain,
        aa: AccountAbstractionConfig,
        gas: GasPolicyConfig,
        *,
        receipt_timeout: float = 120.0,
        receipt_poll: float = 2.0,
        w3: Web3 | None = None,
        bundler: BundlerClient | None = None,
    ) -> None:
        self.chain = chain
        self.aa = aa
        self.gas = gas
        self.receipt_timeout = receipt_timeout
        self.receipt_poll = receipt_poll
        self.w3 = w3 or self._connect(chain)
        self.entry_point = Web3.to_checksum_address(aa.entry_point)
        self._factory = self.w3.eth.contract(
            address=Web3.to_checksum_address(aa.account_factory), abi=_FACTORY_ABI
        )
        self._entry_point = self.w3.eth.contract(address=self.entry_point, abi=_ENTRY_POINT_ABI)
        self.bundler = bundler or BundlerClient(
            aa.bundler_rpc, aa.paymaster_rpc, self.entry_point
        )

    @staticmethod
    def _connect(chain: Chain) -> Web3:
        w3 = Web3(Web3.HTTPProvider(chain.rpc_url))
        # Non-mainnet chains carry POA-style extraData in block headers
        if chain.chain_id != 1:
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return w3

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def derive_wallet_address(self, signer_address: str) -> str:
        """Return the counterfactual smart-account address for *signer_address*."""
        owner = Web3.to_checksum_address(signer_address)
        call = self._factory.functions.getAddress(owner, self.aa.salt).call
        address = await asyncio.to_thread(call)
        if not address or int(address, 16) == 0:
            raise GatewayFailure(f"Factory returned an invalid wallet address: {address}")
        return Web3.to_checksum_address(address)

    async def is_deployed(self, address: str) -> bool:
        code = await asyncio.to_thread(self.w3.eth.get_code, Web3.to_checksum_address(address))
        return len(code) > 0

    async def get_balance(self, address: str) -> Decimal:
        """Get the native token balance in human-readable units."""
        wei = await asyncio.to_thread(self.w3.eth.get_balance, Web3.to_checksum_address(address))
        return Decimal(str(Web3.from_wei(wei, "ether")))

    async def get_asset_balance(self, address: str, asset: str) -> Decimal:
        """Get an ERC-20 balance scaled by the token's own decimals."""
        token = self.w3.eth.contract(address=Web3.to_checksum_address(asset), abi=ERC20_ABI)
        owner = Web3.to_checksum_address(address)
        raw = await asyncio.to_thread(token.functions.balanceOf(owner).call)
        decimals = await asyncio.to_thread(token.functions.decimals().call)
        return Decimal(raw).scaleb(-int(decimals))

    # ------------------------------------------------------------------
    # Sponsored writes
    # ------------------------------------------------------------------

    async def _get_nonce(self, sender: str) -> int:
        nonce = await asyncio.to_thread(self._entry_point.functions.getNonce(sender, 0).call)
        return int(nonce)

    def _init_code(self, owner: str) -> str:
        create = self._factory.encode_abi("createAccount", args=[owner, self.aa.salt])
        return self._factory.address + create[2:]

    def _execute_call_data(
        self, target_contract: str, abi: list[dict], function_name: str, args: list[Any]
    ) -> str:
        target = self.w3.eth.contract(address=Web3.to_checksum_address(target_contract), abi=abi)
        inner = target.encode_abi(function_name, args=_normalize_args(args))
        account = self.w3.eth.contract(abi=_ACCOUNT_ABI)
        return account.encode_abi("execute", args=[target.address, 0, inner])

    async def submit_sponsored_call(
        self,
        signer_key: bytes,
        wallet_address: str,
        target_contract: str,
        abi: list[dict],
        function_name: str,
        args: list[Any],
    ) -> SponsoredReceipt:
        """Build, sponsor, sign and send a UserOperation, then wait for its receipt."""
        sender = Web3.to_checksum_address(wallet_address)
        call_data = self._execute_call_data(target_contract, abi, function_name, args)
        deployed = await self.is_deployed(sender)
        init_code = "0x" if deployed else self._init_code(signer_address(signer_key))
        nonce = await self._get_nonce(sender)

        op = UserOperation(
            sender=sender,
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            call_gas_limit=self.gas.call_gas_limit,
            verification_gas_limit=self.gas.verification_gas_limit,
            pre_verification_gas=self.gas.pre_verification_gas,
            max_fee_per_gas=self.gas.max_fee_per_gas,
            max_priority_fee_per_gas=self.gas.max_priority_fee_per_gas,
        )
        logger.info(
            f"Submitting sponsored {function_name} from {sender} "
            f"(nonce={op.nonce}, deployed={deployed})"
        )
        op = await self.bundler.sponsor(op, self.aa.paymaster_api_key, self.aa.paymaster_type)
        op = sign_user_op(op, signer_key, self.entry_point, self.chain.chain_id)
        op_hash = await self.bundler.send(op)
        receipt = await self.bundler.wait_for_receipt(
            op_hash, timeout=self.receipt_timeout, interval=self.receipt_poll
        )
        tx_hash = (receipt.get("receipt") or {}).get("transactionHash") or op_hash
        logger.info(f"Sponsored {function_name} mined: op={op_hash} tx={tx_hash}")
        return SponsoredReceipt(operation_id=op_hash, transaction_id=tx_hash)

    async def close(self) -> None:
        await self.bundler.aclose()
