"""Message poller: turns the message log into an exactly-once command stream.

``last_seen_timestamp`` is the watermark. It is snapshotted at the start of
each cycle, only moves forward, and is advanced past each message before
that message is dispatched, so a crash mid-dispatch never replays it.
"""

from __future__ import annotations

import asyncio
import logging

from textwallet.core.dispatcher import CommandDispatcher
from textwallet.messaging.store import MessageStore

logger = logging.getLogger("textwallet.core.poller")


class Poller:
    """Reads new incoming messages and hands them to the dispatcher in order."""

    def __init__(
        self,
        store: MessageStore,
        dispatcher: CommandDispatcher,
        *,
        batch_size: int = 100,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.last_seen_timestamp = 0
        self.cycles = 0
        self.dispatched = 0
        self._cycle_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._running = False
        self._watermark_pending = False

    @property
    def running(self) -> bool:
        return self._running

    def _advance(self, timestamp: int) -> None:
        if timestamp > self.last_seen_timestamp:
            self.last_seen_timestamp = timestamp

    async def initialize_watermark(self) -> bool:
        """Start from the newest stored message so history is not replayed.

        If the store exists but cannot be read, the watermark stays pending and
        every cycle retries this before dispatching anything. Returns whether
        the watermark is settled.
        """
        if not self.store.is_available():
            logger.info("Message store not available yet; watermark stays at 0")
            self._watermark_pending = False
            return True
        try:
            newest = await self.store.latest_timestamp()
        except Exception:
            logger.exception("Could not read the newest message timestamp")
            self._watermark_pending = True
            return False
        self._watermark_pending = False
        self._advance(newest)
        logger.info(f"Initialized last seen timestamp to {self.last_seen_timestamp}")
        return True

    async def poll_once(self) -> int:
        """Run one polling cycle. Returns the number of messages dispatched.

        Returns 0 immediately if another cycle is still running.
        """
        if self._cycle_lock.locked():
            logger.debug("Previous polling cycle still running; skipping")
            return 0
        async with self._cycle_lock:
            return await self._cycle()

    async def _cycle(self) -> int:
        self.cycles += 1
        if self._watermark_pending and not await self.initialize_watermark():
            return 0
        if not self.store.is_available():
            return 0
        try:
            rows = await self.store.read_recent(self.batch_size, 0)
        except Exception:
            logger.exception("Error reading messages")
            return 0

        snapshot = self.last_seen_timestamp
        fresh = sorted(
            (m for m in rows if m.timestamp > snapshot),
            key=lambda m: (m.timestamp, m.message_id),
        )

        count = 0
        for message in fresh:
            self._advance(message.timestamp)
            if not message.identity or not message.text:
                continue
            try:
                await self.dispatcher.dispatch(message)
            except Exception:
                logger.exception(
                    f"Failed to handle message {message.message_id} from {message.identity}"
                )
            count += 1

        if fresh:
            self.dispatched += count
            logger.debug(f"Processed messages up to timestamp {self.last_seen_timestamp}")
        return count

    async def start_polling(self, interval_ms: int = 1000) -> None:
        """Initialise the watermark, then poll every *interval_ms* until :meth:`stop`."""
        self._stopping.clear()
        self._running = True
        await self.initialize_watermark()
        logger.info(f"Polling started with {interval_ms}ms interval")
        try:
            while not self._stopping.is_set():
                await self.poll_once()
                try:
                    await asyncio.wait_for(self._stopping.wait(), interval_ms / 1000)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Polling stopped")

    def stop(self) -> None:
        self._stopping.set()
