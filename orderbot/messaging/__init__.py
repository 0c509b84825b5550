"""Messaging-platform capability interface and its Discord implementation."""

from __future__ import annotations

from .base import (
    CHANNEL_PERMISSIONS,
    Channel,
    Member,
    Message,
    MessagingPlatform,
    PlatformError,
    PlatformNotFoundError,
    Thread,
    TransientPlatformError,
)
from .discord_rest import DiscordRestPlatform

__all__ = [
    "CHANNEL_PERMISSIONS",
    "Channel",
    "DiscordRestPlatform",
    "Member",
    "Message",
    "MessagingPlatform",
    "PlatformError",
    "PlatformNotFoundError",
    "Thread",
    "TransientPlatformError",
]
