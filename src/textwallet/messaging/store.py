"""Read access to the Messages ``chat.db`` log.

The poller only needs the newest incoming rows; outgoing rows
(``is_from_me = 1``) are excluded so the bot never reads its own replies
back as commands.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import aiosqlite

logger = logging.getLogger("textwallet.messaging.store")

# Messages stores dates as nanoseconds since 2001-01-01 UTC.
_APPLE_EPOCH_OFFSET = 978307200

_RECENT_SQL = """\
SELECT message.ROWID AS message_id,
       message.text AS text,
       message.date AS timestamp,
       handle.id AS identity
FROM message
LEFT JOIN handle ON message.handle_id = handle.ROWID
WHERE message.is_from_me = 0
ORDER BY message.date DESC, message.ROWID DESC
LIMIT ? OFFSET ?
"""

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS handle (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    service TEXT DEFAULT 'iMessage'
);

CREATE TABLE IF NOT EXISTS message (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    text TEXT,
    handle_id INTEGER DEFAULT 0,
    date INTEGER DEFAULT 0,
    is_from_me INTEGER DEFAULT 0
);
"""


@dataclass(frozen=True)
class Message:
    identity: str | None
    text: str | None
    timestamp: int
    message_id: int = 0


class MessageStore(Protocol):
    """What the poller needs from a message log."""

    def is_available(self) -> bool: ...

    async def read_recent(self, limit: int, offset: int = 0) -> list[Message]: ...

    async def latest_timestamp(self) -> int: ...


def apple_timestamp_now() -> int:
    return int((time.time() - _APPLE_EPOCH_OFFSET) * 1_000_000_000)


class ChatDbMessageStore:
    """Message store over a Messages-style SQLite database.

    Reads open the file read-only per call, so the store tolerates the file
    appearing or being replaced while the process runs.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def is_available(self) -> bool:
        return self.db_path.is_file()

    async def read_recent(self, limit: int, offset: int = 0) -> list[Message]:
        """Return up to *limit* incoming messages, newest first."""
        uri = self.db_path.resolve().as_uri() + "?mode=ro"
        async with aiosqlite.connect(uri, uri=True) as conn:
            conn.row_factory = sqlite3.Row
            cursor = await conn.execute(_RECENT_SQL, (limit, offset))
            rows = await cursor.fetchall()
        return [
            Message(
                identity=row["identity"],
                text=row["text"],
                timestamp=int(row["timestamp"] or 0),
                message_id=int(row["message_id"]),
            )
            for row in rows
        ]

    async def latest_timestamp(self) -> int:
        """Timestamp of the newest incoming message, or 0 when there is none."""
        rows = await self.read_recent(1, 0)
        return rows[0].timestamp if rows else 0

    async def append(self, identity: str, text: str, timestamp: int | None = None) -> Message:
        """Append an incoming message (local simulation and tests).

        Creates the minimal schema when the file does not exist yet. Without
        an explicit *timestamp* the message is stamped with the current time,
        bumped past the newest stored date so it always sorts last.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self.db_path)) as conn:
            await conn.executescript(_SCHEMA_SQL)
            cursor = await conn.execute("SELECT ROWID FROM handle WHERE id = ?", (identity,))
            row = await cursor.fetchone()
            if row is None:
                cursor = await conn.execute("INSERT INTO handle (id) VALUES (?)", (identity,))
                handle_id = cursor.lastrowid
            else:
                handle_id = row[0]

            if timestamp is None:
                cursor = await conn.execute("SELECT COALESCE(MAX(date), 0) FROM message")
                (newest,) = await cursor.fetchone()
                timestamp = max(apple_timestamp_now(), int(newest) + 1)

            cursor = await conn.execute(
                "INSERT INTO message (text, handle_id, date, is_from_me) VALUES (?, ?, ?, 0)",
                (text, handle_id, timestamp),
            )
            message_id = cursor.lastrowid
            await conn.commit()
        logger.debug(f"Appended message {message_id} from {identity}")
        return Message(identity=identity, text=text, timestamp=timestamp, message_id=message_id)
