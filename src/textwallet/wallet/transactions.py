"""Transaction executor: sponsored USDC mint and transfer, plus balance reads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from textwallet.config import TokenConfig
from textwallet.errors import InvalidCommand
from textwallet.wallet.chains import Chain
from textwallet.wallet.gateway import ERC20_ABI, ChainGateway, bounded
from textwallet.wallet.registration import RegistrationManager

logger = logging.getLogger("textwallet.wallet.transactions")


@dataclass(frozen=True)
class TxResult:
    operation_id: str
    transaction_id: str
    explorer_url: str
    amount: Decimal
    wallet_address: str
    destination: str


@dataclass(frozen=True)
class UsdcBalance:
    usdc: Decimal
    native: Decimal
    currency: str
    wallet_address: str
    explorer_url: str


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Scale a human amount to integer token units.

    Raises
    ------
    InvalidCommand
        If the amount is not positive or has more fractional digits than
        the token supports.
    """
    if not amount.is_finite() or amount <= 0:
        raise InvalidCommand(f"Amount must be a positive number, got {amount}")
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidCommand(
            f"Amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)


class TransactionExecutor:
    """Runs sponsored token operations on behalf of registered identities."""

    def __init__(
        self,
        registration: RegistrationManager,
        gateway: ChainGateway,
        token: TokenConfig,
        chain: Chain,
        *,
        timeout: float = 60.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        self.registration = registration
        self.gateway = gateway
        self.token = token
        self.chain = chain
        self.timeout = timeout
        # Submission covers building, sponsoring and waiting for the receipt
        self.submit_timeout = timeout + receipt_timeout

    async def mint_usdc(self, identity: str, amount: Decimal | None = None) -> TxResult:
        """Mint test USDC into the identity's own wallet.

        Parameters
        ----------
        identity:
            The sender's handle.
        amount:
            Human amount; the configured default (10) when ``None``.
        """
        amount = self.token.default_mint_amount if amount is None else amount
        units = to_base_units(amount, self.token.decimals)
        record = await self.registration.require_wallet(identity)
        signer_key = await self.registration.get_signer_key(identity)

        logger.info(f"Minting {amount} USDC to {record.wallet_address} for {identity}")
        receipt = await bounded(
            self.gateway.submit_sponsored_call(
                signer_key,
                record.wallet_address,
                self.token.usdc_address,
                ERC20_ABI,
                "mint",
                [record.wallet_address, units],
            ),
            self.submit_timeout,
            "USDC mint",
        )
        return TxResult(
            operation_id=receipt.operation_id,
            transaction_id=receipt.transaction_id,
            explorer_url=self.chain.tx_url(receipt.transaction_id),
            amount=amount,
            wallet_address=record.wallet_address,
            destination=record.wallet_address,
        )

    async def transfer_usdc(self, identity: str, destination: str, amount: Decimal) -> TxResult:
        """Transfer USDC from the identity's wallet to *destination*."""
        units = to_base_units(amount, self.token.decimals)
        record = await self.registration.require_wallet(identity)
        signer_key = await self.registration.get_signer_key(identity)

        logger.info(
            f"Transferring {amount} USDC from {record.wallet_address} to {destination} "
            f"for {identity}"
        )
        receipt = await bounded(
            self.gateway.submit_sponsored_call(
                signer_key,
                record.wallet_address,
                self.token.usdc_address,
                ERC20_ABI,
                "transfer",
                [destination, units],
            ),
            self.submit_timeout,
            "USDC transfer",
        )
        return TxResult(
            operation_id=receipt.operation_id,
            transaction_id=receipt.transaction_id,
            explorer_url=self.chain.tx_url(receipt.transaction_id),
            amount=amount,
            wallet_address=record.wallet_address,
            destination=destination,
        )

    async def usdc_balance(self, identity: str) -> UsdcBalance:
        record = await self.registration.require_wallet(identity)
        usdc = await bounded(
            self.gateway.get_asset_balance(record.wallet_address, self.token.usdc_address),
            self.timeout,
            "USDC balance read",
        )
        native = await bounded(
            self.gateway.get_balance(record.wallet_address), self.timeout, "balance read"
        )
        return UsdcBalance(
            usdc=usdc,
            native=native,
            currency=self.chain.native_symbol,
            wallet_address=record.wallet_address,
            explorer_url=self.chain.address_url(record.wallet_address),
        )
