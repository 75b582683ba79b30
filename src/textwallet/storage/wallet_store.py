"""Wallet store: the single source of truth for identity -> wallet records.

Records live in SQLite. A read-through cache sits in front of the table and is
only updated after the corresponding write has committed, so a failed write
never leaves memory and disk disagreeing.
"""

from __future__ import annotations

import logging
import sqlite3

from textwallet.errors import PersistenceFailure
from textwallet.storage.database import Database
from textwallet.storage.models import WalletRecord

logger = logging.getLogger("textwallet.storage.wallet_store")


class WalletStore:
    """Repository over the ``wallets`` table with a read-through cache."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self._cache: dict[str, WalletRecord] = {}

    async def get(self, identity: str) -> WalletRecord | None:
        """Return the record for *identity*, or ``None``."""
        cached = self._cache.get(identity)
        if cached is not None:
            return cached
        try:
            row = await self.db.fetch_one(
                "SELECT * FROM wallets WHERE identity = ?", (identity,)
            )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to read wallet for {identity}: {exc}") from exc
        if row is None:
            return None
        record = WalletRecord.from_row(row)
        self._cache[identity] = record
        return record

    async def add(self, record: WalletRecord) -> None:
        """Insert a new record. Fails if the identity already has one."""
        try:
            await self.db.execute(
                "INSERT INTO wallets "
                "(identity, signer_secret, signer_address, wallet_address, "
                "is_deployed, chain_id, network, registered_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                record.to_row(),
            )
        except sqlite3.IntegrityError as exc:
            raise PersistenceFailure(f"{record.identity} already has a wallet record") from exc
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to save wallet for {record.identity}: {exc}") from exc
        self._cache[record.identity] = record
        logger.info(f"Wallet record stored for {record.identity}")

    async def set_deployed(self, identity: str, is_deployed: bool) -> WalletRecord | None:
        """Persist a new deployment flag. Returns the updated record, or ``None`` if absent."""
        try:
            cursor = await self.db.execute(
                "UPDATE wallets SET is_deployed = ? WHERE identity = ?",
                (int(is_deployed), identity),
            )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to update wallet for {identity}: {exc}") from exc
        self._cache.pop(identity, None)
        if cursor.rowcount == 0:
            return None
        return await self.get(identity)

    async def delete(self, identity: str) -> bool:
        """Remove the record for *identity*. Returns whether one was removed."""
        try:
            cursor = await self.db.execute(
                "DELETE FROM wallets WHERE identity = ?", (identity,)
            )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to delete wallet for {identity}: {exc}") from exc
        self._cache.pop(identity, None)
        return cursor.rowcount > 0

    async def list_identities(self) -> list[str]:
        try:
            rows = await self.db.fetch_all(
                "SELECT identity FROM wallets ORDER BY registered_at, rowid"
            )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to list wallets: {exc}") from exc
        return [r["identity"] for r in rows]

    async def count(self) -> int:
        try:
            row = await self.db.fetch_one("SELECT COUNT(*) AS n FROM wallets")
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to count wallets: {exc}") from exc
        return int(row["n"]) if row else 0

    def invalidate(self, identity: str | None = None) -> None:
        """Drop one cached record, or the whole cache when *identity* is ``None``."""
        if identity is None:
            self._cache.clear()
        else:
            self._cache.pop(identity, None)
