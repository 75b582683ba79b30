"""Command dispatcher: routes parsed commands to the wallet managers."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from textwallet import commands
from textwallet.commands import Command
from textwallet.core import replies
from textwallet.errors import NotRegistered, TransportFailure, WalletBotError
from textwallet.messaging.channels import NotificationChannel
from textwallet.messaging.store import Message
from textwallet.wallet.chains import Chain
from textwallet.wallet.registration import AlreadyRegistered, RegistrationManager
from textwallet.wallet.transactions import TransactionExecutor

logger = logging.getLogger("textwallet.core.dispatcher")

Handler = Callable[[str, Command], Awaitable[None]]


class CommandDispatcher:
    """Parse one incoming message, run the matching operation, send the replies.

    Every reply goes through :meth:`_reply`, so a failed delivery is logged
    and never undoes or aborts the operation that produced it.
    """

    def __init__(
        self,
        registration: RegistrationManager,
        transactions: TransactionExecutor,
        channel: NotificationChannel,
        chain: Chain,
        *,
        send_progress: bool = False,
    ) -> None:
        self.registration = registration
        self.transactions = transactions
        self.channel = channel
        self.chain = chain
        self.send_progress = send_progress
        self._handlers: dict[type, Handler] = {
            commands.Register: self._handle_register,
            commands.WalletInfo: self._handle_wallet_info,
            commands.Help: self._handle_help,
            commands.Balance: self._handle_balance,
            commands.UsdcBalance: self._handle_usdc_balance,
            commands.MintUsdc: self._handle_mint,
            commands.TransferUsdc: self._handle_transfer,
            commands.Unrecognized: self._handle_unrecognized,
        }

    async def dispatch(self, message: Message) -> Command:
        """Handle one message and return the command it parsed to."""
        command = commands.parse(message.text)
        handler = self._handlers[type(command)]
        if not isinstance(command, commands.Unrecognized) or command.reason:
            logger.info(f"{message.identity}: {type(command).__name__}")
        await handler(message.identity, command)
        return command

    async def _reply(self, identity: str, text: str) -> bool:
        try:
            await self.channel.deliver(identity, text)
        except TransportFailure as e:
            logger.error(f"Reply to {identity} not delivered: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected error delivering reply to {identity}")
            return False
        return True

    async def _is_registered(self, identity: str) -> bool:
        try:
            record = await self.registration.get_user_wallet(identity)
        except WalletBotError as e:
            logger.error(f"Wallet lookup failed for {identity}: {e}")
            await self._reply(identity, replies.LOOKUP_FAILED)
            return False
        if record is None:
            await self._reply(identity, replies.NOT_REGISTERED)
            return False
        return True

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_register(self, identity: str, command: commands.Register) -> None:
        try:
            result = await self.registration.register_if_needed(identity)
        except Exception:
            logger.exception(f"Registration failed for {identity}")
            await self._reply(identity, replies.REGISTRATION_FAILED)
            return

        if isinstance(result, AlreadyRegistered):
            await self._reply(identity, replies.ALREADY_REGISTERED)
            return
        await self._reply(identity, replies.registration_success(self.chain))
        await self._reply(identity, replies.wallet_details(result.info))

    async def _handle_wallet_info(self, identity: str, command: commands.WalletInfo) -> None:
        try:
            status = await self.registration.get_wallet_status(identity)
        except NotRegistered:
            await self._reply(identity, replies.NOT_REGISTERED)
            return
        except Exception:
            logger.exception(f"Wallet info failed for {identity}")
            await self._reply(identity, replies.WALLET_INFO_FAILED)
            return
        await self._reply(identity, replies.wallet_status(status))

    async def _handle_help(self, identity: str, command: commands.Help) -> None:
        await self._reply(identity, replies.help_text(self.chain))

    async def _handle_balance(self, identity: str, command: commands.Balance) -> None:
        if not await self._is_registered(identity):
            return
        try:
            status = await self.registration.get_wallet_status(identity)
        except Exception:
            logger.exception(f"Balance check failed for {identity}")
            await self._reply(identity, replies.BALANCE_FAILED)
            return
        await self._reply(identity, replies.native_balance(status))

    async def _handle_usdc_balance(self, identity: str, command: commands.UsdcBalance) -> None:
        if not await self._is_registered(identity):
            return
        try:
            balance = await self.transactions.usdc_balance(identity)
        except Exception:
            logger.exception(f"USDC balance check failed for {identity}")
            await self._reply(identity, replies.BALANCE_FAILED)
            return
        await self._reply(identity, replies.usdc_balance(balance))

    async def _handle_mint(self, identity: str, command: commands.MintUsdc) -> None:
        if not await self._is_registered(identity):
            return
        if self.send_progress:
            await self._reply(identity, replies.progress_notice("mint"))
        try:
            result = await self.transactions.mint_usdc(identity, command.amount)
        except Exception as e:
            logger.exception(f"USDC mint failed for {identity}")
            await self._reply(identity, replies.mint_failed(str(e)))
            return
        await self._reply(identity, replies.mint_success(result))

    async def _handle_transfer(self, identity: str, command: commands.TransferUsdc) -> None:
        if not await self._is_registered(identity):
            return
        if self.send_progress:
            await self._reply(identity, replies.progress_notice("transfer"))
        try:
            result = await self.transactions.transfer_usdc(
                identity, command.destination, command.amount
            )
        except Exception as e:
            logger.exception(f"USDC transfer failed for {identity}")
            await self._reply(identity, replies.transfer_failed(str(e)))
            return
        await self._reply(identity, replies.transfer_success(result))

    async def _handle_unrecognized(self, identity: str, command: commands.Unrecognized) -> None:
        if command.reason == commands.INVALID_MINT:
            if await self._is_registered(identity):
                await self._reply(identity, replies.INVALID_MINT)
        elif command.reason == commands.INVALID_TRANSFER:
            if await self._is_registered(identity):
                await self._reply(identity, replies.INVALID_TRANSFER)
