"""WalletBot: wires configuration, storage, chain access and messaging together."""

from __future__ import annotations

import logging
from pathlib import Path

from textwallet.config import BotConfig, load_config
from textwallet.core.dispatcher import CommandDispatcher
from textwallet.core.poller import Poller
from textwallet.messaging.channels import NotificationChannel, build_channel
from textwallet.messaging.store import ChatDbMessageStore, MessageStore
from textwallet.storage.database import Database, get_database
from textwallet.storage.wallet_store import WalletStore
from textwallet.wallet.chains import Chain
from textwallet.wallet.custody import build_custody
from textwallet.wallet.gateway import ChainGateway, Web3ChainGateway
from textwallet.wallet.registration import RegistrationManager
from textwallet.wallet.transactions import TransactionExecutor

logger = logging.getLogger("textwallet.bot")


class WalletBot:
    """Top-level orchestrator that owns every long-lived component."""

    def __init__(
        self,
        config: BotConfig,
        chain: Chain,
        db: Database,
        gateway: ChainGateway,
        channel: NotificationChannel,
        message_store: MessageStore,
    ) -> None:
        self.config = config
        self.chain = chain
        self.db = db
        self.gateway = gateway
        self.channel = channel
        self.message_store = message_store

        self.wallets = WalletStore(db)
        self.custody = build_custody(config.custody)
        self.registration = RegistrationManager(
            self.wallets,
            gateway,
            self.custody,
            chain,
            timeout=config.gateway.timeout_seconds,
        )
        self.transactions = TransactionExecutor(
            self.registration,
            gateway,
            config.token,
            chain,
            timeout=config.gateway.timeout_seconds,
            receipt_timeout=config.gateway.receipt_timeout_seconds,
        )
        self.dispatcher = CommandDispatcher(
            self.registration,
            self.transactions,
            channel,
            chain,
            send_progress=config.notifications.send_progress,
        )
        self.poller = Poller(
            message_store, self.dispatcher, batch_size=config.messages.batch_size
        )

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    async def create(
        cls,
        config: BotConfig,
        *,
        gateway: ChainGateway | None = None,
        channel: NotificationChannel | None = None,
        message_store: MessageStore | None = None,
    ) -> WalletBot:
        """Build a bot from a validated config, connecting the wallet database."""
        config.validate_runtime()
        chain = config.resolve_chain()
        if gateway is None:
            gateway = Web3ChainGateway(
                chain,
                config.account_abstraction,
                config.gas,
                receipt_timeout=config.gateway.receipt_timeout_seconds,
                receipt_poll=config.gateway.receipt_poll_seconds,
            )
        if channel is None:
            channel = build_channel(config.notifications)
        if message_store is None:
            message_store = ChatDbMessageStore(config.messages.path)

        db = get_database(config.storage.path)
        await db.connect()
        logger.info(
            f"WalletBot ready on {chain.display_name} (chain {chain.chain_id}), "
            f"channel={config.notifications.channel}"
        )
        return cls(config, chain, db, gateway, channel, message_store)

    @classmethod
    async def load(cls, config_path: Path | None = None) -> WalletBot:
        """Load the config file at *config_path* (or the default) and build a bot."""
        return await cls.create(load_config(config_path))

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def start_polling(self, interval_ms: int | None = None) -> None:
        """Poll the message store until :meth:`stop` is called."""
        interval = interval_ms or self.config.messages.poll_interval_ms
        logger.info(f"Network: {self.chain.display_name} (Chain ID: {self.chain.chain_id})")
        logger.info(f"RPC: {self.chain.rpc_url}")
        logger.info(f"Explorer: {self.chain.explorer_url}")
        logger.info(f"Message store: {getattr(self.message_store, 'db_path', 'in-memory')}")
        await self.poller.start_polling(interval)

    def stop(self) -> None:
        self.poller.stop()

    async def shutdown(self) -> None:
        """Stop polling and release network and database resources."""
        self.stop()
        for resource in (self.gateway, self.channel):
            close = getattr(resource, "close", None) or getattr(resource, "aclose", None)
            if close is not None:
                try:
                    await close()
                except Exception as e:
                    logger.warning(f"Error closing {type(resource).__name__}: {e}")
        await self.db.close()

    async def status(self) -> dict:
        return {
            "name": self.config.name,
            "network": self.chain.display_name,
            "chain_id": self.chain.chain_id,
            "channel": self.config.notifications.channel,
            "registered_users": await self.wallets.count(),
            "polling": self.poller.running,
            "last_seen_timestamp": self.poller.last_seen_timestamp,
            "cycles": self.poller.cycles,
            "dispatched": self.poller.dispatched,
            "message_store_available": self.message_store.is_available(),
        }
