"""Registration manager: creates and looks up per-identity wallets."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union

from textwallet.errors import NotRegistered
from textwallet.storage.models import WalletRecord
from textwallet.storage.wallet_store import WalletStore
from textwallet.wallet.chains import Chain
from textwallet.wallet.custody import Custody, generate_signer
from textwallet.wallet.gateway import ChainGateway, bounded

logger = logging.getLogger("textwallet.wallet.registration")


@dataclass(frozen=True)
class RegistrationInfo:
    wallet_address: str
    signer_address: str
    is_counterfactual: bool
    chain_id: int
    network: str
    explorer_url: str


@dataclass(frozen=True)
class AlreadyRegistered:
    identity: str


@dataclass(frozen=True)
class Registered:
    info: RegistrationInfo


RegistrationResult = Union[AlreadyRegistered, Registered]


@dataclass(frozen=True)
class WalletStatus:
    wallet_address: str
    signer_address: str
    is_deployed: bool
    balance: Decimal
    currency: str
    network: str
    registered_at: datetime
    explorer_url: str


class RegistrationManager:
    """Orchestrates custody, the chain gateway and the wallet store for registrations."""

    def __init__(
        self,
        store: WalletStore,
        gateway: ChainGateway,
        custody: Custody,
        chain: Chain,
        *,
        timeout: float = 60.0,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.custody = custody
        self.chain = chain
        self.timeout = timeout
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def register_if_needed(self, identity: str) -> RegistrationResult:
        """Register *identity* unless it already has a wallet.

        The record is inserted only after every derived field is known, so
        a failure at any earlier step leaves the identity unregistered and
        safe to retry.
        """
        async with self._locks[identity]:
            if await self.store.get(identity) is not None:
                logger.info(f"{identity} already registered")
                return AlreadyRegistered(identity)

            logger.info(f"Registering {identity} on {self.chain.display_name}")
            private_key, signer_address = generate_signer()
            wallet_address = await bounded(
                self.gateway.derive_wallet_address(signer_address),
                self.timeout,
                "wallet address derivation",
            )
            is_deployed = await bounded(
                self.gateway.is_deployed(wallet_address), self.timeout, "deployment check"
            )
            sealed = await asyncio.to_thread(self.custody.seal, private_key)
            record = WalletRecord(
                identity=identity,
                signer_secret=sealed,
                signer_address=signer_address,
                wallet_address=wallet_address,
                is_deployed=is_deployed,
                chain_id=self.chain.chain_id,
                network=self.chain.display_name,
            )
            await self.store.add(record)

        logger.info(
            f"{identity} registered: wallet={wallet_address} "
            f"deployed={'yes' if is_deployed else 'no (counterfactual)'}"
        )
        return Registered(
            RegistrationInfo(
                wallet_address=wallet_address,
                signer_address=signer_address,
                is_counterfactual=not is_deployed,
                chain_id=record.chain_id,
                network=record.network,
                explorer_url=self.chain.address_url(wallet_address),
            )
        )

    async def unregister_user(self, identity: str) -> bool:
        """Remove the wallet record for *identity*. Returns whether one existed."""
        async with self._locks[identity]:
            removed = await self.store.delete(identity)
        if removed:
            logger.info(f"{identity} unregistered")
        return removed

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_user_wallet(self, identity: str) -> WalletRecord | None:
        return await self.store.get(identity)

    async def require_wallet(self, identity: str) -> WalletRecord:
        record = await self.store.get(identity)
        if record is None:
            raise NotRegistered(identity)
        return record

    async def get_signer_key(self, identity: str) -> bytes:
        """Unseal the signer key for *identity* off the event loop."""
        record = await self.require_wallet(identity)
        return await asyncio.to_thread(
            self.custody.unseal, record.signer_secret.get_secret_value()
        )

    async def list_registered(self) -> list[str]:
        return await self.store.list_identities()

    async def get_wallet_status(self, identity: str) -> WalletStatus:
        """Refresh deployment state and balance from the chain.

        A changed deployment flag is written back to the store.
        """
        record = await self.require_wallet(identity)
        is_deployed = await bounded(
            self.gateway.is_deployed(record.wallet_address), self.timeout, "deployment check"
        )
        balance = await bounded(
            self.gateway.get_balance(record.wallet_address), self.timeout, "balance read"
        )

        if is_deployed != record.is_deployed:
            async with self._locks[identity]:
                updated = await self.store.set_deployed(identity, is_deployed)
            if updated is None:
                raise NotRegistered(identity)
            logger.info(f"{identity} deployment status changed to {is_deployed}")

        return WalletStatus(
            wallet_address=record.wallet_address,
            signer_address=record.signer_address,
            is_deployed=is_deployed,
            balance=balance,
            currency=self.chain.native_symbol,
            network=record.network,
            registered_at=record.registered_at,
            explorer_url=self.chain.address_url(record.wallet_address),
        )
