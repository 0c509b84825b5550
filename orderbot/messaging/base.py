"""Capability interface the orchestrator needs from the messaging platform."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


class PlatformError(RuntimeError):
    """Raised when a platform call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PlatformNotFoundError(PlatformError):
    """Raised when the requested channel, thread, member or message is gone."""


class TransientPlatformError(PlatformError):
    """Rate limiting, timeouts and server-side failures worth retrying."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


@dataclass
class Channel:
    id: str
    name: str
    kind: str = "text"
    parent_id: str | None = None


@dataclass
class Thread:
    id: str
    name: str
    parent_id: str | None = None
    archived: bool = False
    locked: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.archived or self.locked


@dataclass
class Member:
    id: str
    tag: str = ""
    role_ids: frozenset[str] = field(default_factory=frozenset)

    def has_role(self, role_id: str | None) -> bool:
        return bool(role_id) and role_id in self.role_ids


@dataclass
class Message:
    id: str
    channel_id: str
    content: str | None = None
    embeds: list[dict[str, Any]] = field(default_factory=list)


CHANNEL_PERMISSIONS = frozenset(
    {
        "view_channel",
        "send_messages",
        "read_message_history",
        "manage_channels",
        "manage_messages",
        "manage_threads",
        "create_private_threads",
        "send_messages_in_threads",
    }
)


class MessagingPlatform(ABC):
    """Async operations on one guild.

    Implementations raise :class:`PlatformError` subclasses; lookups that can
    legitimately miss return ``None`` instead of raising.
    """

    @abstractmethod
    async def bot_user_id(self) -> str:
        """Identity the orchestrator acts as."""

    @abstractmethod
    def channel_url(self, channel_id: str) -> str:
        """Permanent link to a channel or thread."""

    # ------------------------------------------------------------------
    # Channels

    @abstractmethod
    async def get_channel(self, channel_id: str) -> Channel | None: ...

    @abstractmethod
    async def find_channel(self, name: str, *, kind: str = "text") -> Channel | None: ...

    @abstractmethod
    async def create_channel(
        self,
        name: str,
        *,
        kind: str = "text",
        parent_id: str | None = None,
        topic: str | None = None,
        staff_role_id: str | None = None,
        read_only_staff: bool = False,
    ) -> Channel:
        """Create a channel hidden from everyone except staff and the bot."""

    @abstractmethod
    async def grant_channel_permissions(
        self,
        channel_id: str,
        target_id: str,
        permissions: Sequence[str],
        *,
        member: bool = False,
    ) -> None:
        """Allow ``permissions`` on ``channel_id`` for a role or, with ``member``, a user.

        Permission names come from :data:`CHANNEL_PERMISSIONS`.
        """

    # ------------------------------------------------------------------
    # Threads

    @abstractmethod
    async def list_threads(self, channel_id: str) -> list[Thread]:
        """Active and archived threads under ``channel_id``."""

    @abstractmethod
    async def get_thread(self, thread_id: str) -> Thread | None: ...

    @abstractmethod
    async def create_private_thread(
        self, channel_id: str, name: str, *, reason: str | None = None
    ) -> Thread: ...

    @abstractmethod
    async def delete_thread(self, thread_id: str) -> None: ...

    @abstractmethod
    async def edit_thread(
        self,
        thread_id: str,
        *,
        archived: bool | None = None,
        locked: bool | None = None,
    ) -> Thread: ...

    @abstractmethod
    async def add_thread_member(self, thread_id: str, user_id: str) -> None: ...

    @abstractmethod
    async def list_thread_members(self, thread_id: str) -> list[str]: ...

    # ------------------------------------------------------------------
    # Messages

    @abstractmethod
    async def send_message(
        self,
        channel_id: str,
        *,
        content: str | None = None,
        embeds: Sequence[dict[str, Any]] = (),
        components: Sequence[dict[str, Any]] = (),
    ) -> Message: ...

    @abstractmethod
    async def fetch_messages(self, channel_id: str, *, limit: int = 10) -> list[Message]: ...

    @abstractmethod
    async def delete_message(self, channel_id: str, message_id: str) -> None: ...

    @abstractmethod
    async def send_direct_message(
        self,
        user_id: str,
        *,
        content: str | None = None,
        embeds: Sequence[dict[str, Any]] = (),
    ) -> Message: ...

    # ------------------------------------------------------------------
    # Members

    @abstractmethod
    async def get_member(self, user_id: str) -> Member | None: ...

    @abstractmethod
    async def list_role_members(self, role_id: str) -> list[Member]: ...

    # ------------------------------------------------------------------
    # Application commands

    @abstractmethod
    async def register_commands(self, commands: Sequence[dict[str, Any]]) -> None: ...

    @abstractmethod
    async def edit_interaction_response(
        self,
        interaction_token: str,
        *,
        content: str | None = None,
        embeds: Sequence[dict[str, Any]] = (),
    ) -> None: ...

    async def close(self) -> None:
        """Release network resources. The default implementation does nothing."""
