"""Outbound notification channels.

Every channel exposes ``deliver(identity, text)`` and raises
:class:`TransportFailure` when delivery fails. Callers catch and log it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from textwallet.config import NotificationsConfig
from textwallet.errors import ConfigurationError, TransportFailure

logger = logging.getLogger("textwallet.messaging.channels")

# Recipient and body arrive through argv, never spliced into the script.
_SEND_SCRIPT = """\
on run argv
    set targetBuddy to item 1 of argv
    set messageText to item 2 of argv
    tell application "Messages"
        set targetService to 1st account whose service type = {service}
        set theBuddy to participant targetBuddy of targetService
        send messageText to theBuddy
    end tell
end run
"""

_SERVICES = ("iMessage", "SMS")


class NotificationChannel(Protocol):
    async def deliver(self, identity: str, text: str) -> None: ...


class AppleScriptChannel:
    """Send replies through Messages.app with ``osascript`` (macOS only)."""

    def __init__(self, service: str = "iMessage", osascript: str = "osascript") -> None:
        if service not in _SERVICES:
            raise ConfigurationError(
                f"Unsupported Messages service '{service}'. Use one of {list(_SERVICES)}."
            )
        self.script = _SEND_SCRIPT.format(service=service)
        self.osascript = osascript

    async def deliver(self, identity: str, text: str) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.osascript, "-e", self.script, identity, text,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransportFailure(f"Could not run {self.osascript}: {exc}") from exc
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise TransportFailure(f"osascript exited with {proc.returncode}: {detail}")


class WebhookChannel:
    """POST each reply as JSON ``{"to": ..., "text": ...}`` to a relay endpoint."""

    def __init__(
        self,
        url: str,
        token: str = "",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.url = url
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def deliver(self, identity: str, text: str) -> None:
        try:
            resp = await self._client.post(self.url, json={"to": identity, "text": text})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Webhook delivery to {identity} failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


class LogChannel:
    """Dry-run channel: writes replies to the log instead of sending them."""

    async def deliver(self, identity: str, text: str) -> None:
        logger.info(f"[dry-run] reply to {identity}:\n{text}")


def build_channel(config: NotificationsConfig) -> NotificationChannel:
    """Return the channel selected by ``notifications.channel``."""
    if config.channel == "applescript":
        return AppleScriptChannel(service=config.service)
    if config.channel == "webhook":
        if not config.webhook_url:
            raise ConfigurationError("notifications.webhook_url is required for the webhook channel.")
        return WebhookChannel(config.webhook_url, config.webhook_token)
    return LogChannel()
