"""Message transport: the incoming message log and outbound reply channels."""

from textwallet.messaging.channels import (
    AppleScriptChannel,
    LogChannel,
    NotificationChannel,
    WebhookChannel,
    build_channel,
)
from textwallet.messaging.store import ChatDbMessageStore, Message, MessageStore

__all__ = [
    "AppleScriptChannel",
    "ChatDbMessageStore",
    "LogChannel",
    "Message",
    "MessageStore",
    "NotificationChannel",
    "WebhookChannel",
    "build_channel",
]
