from __future__ import annotations

import asyncio
from decimal import Decimal
from pathlib import Path

import pytest

from textwallet.config import BotConfig
from textwallet.errors import TransportFailure
from textwallet.messaging.store import Message
from textwallet.storage.database import Database
from textwallet.wallet.gateway import SponsoredReceipt


class MemoryMessageStore:
    """Message store backed by a list; ``read_recent`` returns newest first."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.messages: list[Message] = []
        self.reads = 0
        self.fail_reads = False

    def is_available(self) -> bool:
        return self.available

    def add(self, identity: str | None, text: str | None, timestamp: int) -> Message:
        message = Message(identity, text, timestamp, message_id=len(self.messages) + 1)
        self.messages.append(message)
        return message

    async def read_recent(self, limit: int, offset: int = 0) -> list[Message]:
        self.reads += 1
        if self.fail_reads:
            raise OSError("database is locked")
        ordered = sorted(self.messages, key=lambda m: (m.timestamp, m.message_id), reverse=True)
        return ordered[offset:offset + limit]

    async def latest_timestamp(self) -> int:
        rows = await self.read_recent(1)
        return rows[0].timestamp if rows else 0


class RecordingChannel:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def deliver(self, identity: str, text: str) -> None:
        if self.fail:
            raise TransportFailure("relay unreachable")
        self.sent.append((identity, text))

    def texts_for(self, identity: str) -> list[str]:
        return [text for who, text in self.sent if who == identity]


class FakeGateway:
    """Chain gateway double that records every call by name."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.deployed: set[str] = set()
        self.balance = Decimal("0.5")
        self.usdc = Decimal("12.5")
        self.fail_submit: Exception | None = None
        self.fail_derive: Exception | None = None
        self.submit_delay = 0.0

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def derive_wallet_address(self, signer_address: str) -> str:
        self.calls.append(("derive_wallet_address", signer_address))
        if self.fail_derive is not None:
            raise self.fail_derive
        return "0x" + signer_address[-40:][::-1].lower().rjust(40, "0")

    async def is_deployed(self, address: str) -> bool:
        self.calls.append(("is_deployed", address))
        return address in self.deployed

    async def get_balance(self, address: str) -> Decimal:
        self.calls.append(("get_balance", address))
        return self.balance

    async def get_asset_balance(self, address: str, asset: str) -> Decimal:
        self.calls.append(("get_asset_balance", address, asset))
        return self.usdc

    async def submit_sponsored_call(
        self, signer_key, wallet_address, target_contract, abi, function_name, args
    ) -> SponsoredReceipt:
        self.calls.append(
            ("submit_sponsored_call", wallet_address, target_contract, function_name, list(args))
        )
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if self.fail_submit is not None:
            raise self.fail_submit
        n = self.count("submit_sponsored_call")
        return SponsoredReceipt(operation_id=f"0xop{n}", transaction_id=f"0xtx{n}")


@pytest.fixture
def message_store() -> MemoryMessageStore:
    return MemoryMessageStore()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def config(tmp_path: Path) -> BotConfig:
    return BotConfig.model_validate(
        {
            "storage": {"db_path": str(tmp_path / "wallets.db")},
            "messages": {"db_path": str(tmp_path / "chat.db")},
        }
    )


async def open_database(path: Path) -> Database:
    db = Database(path)
    await db.connect()
    return db
