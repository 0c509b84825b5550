"""Discord API v10 implementation of :class:`MessagingPlatform`."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import requests

from .base import (
    Channel,
    Member,
    Message,
    MessagingPlatform,
    PlatformError,
    PlatformNotFoundError,
    Thread,
    TransientPlatformError,
)

API_BASE = "https://discord.com/api/v10"
WEB_BASE = "https://discord.com/channels"

CHANNEL_TYPES = {0: "text", 4: "category", 11: "public_thread", 12: "private_thread"}
KIND_TO_TYPE = {"text": 0, "category": 4}
PRIVATE_THREAD = 12
ONE_WEEK_MINUTES = 10080

# Permission bits
MANAGE_CHANNELS = 1 << 4
VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11
MANAGE_MESSAGES = 1 << 13
READ_MESSAGE_HISTORY = 1 << 16
MANAGE_THREADS = 1 << 34
CREATE_PRIVATE_THREADS = 1 << 36
SEND_MESSAGES_IN_THREADS = 1 << 38

PERMISSION_BITS = {
    "view_channel": VIEW_CHANNEL,
    "send_messages": SEND_MESSAGES,
    "read_message_history": READ_MESSAGE_HISTORY,
    "manage_channels": MANAGE_CHANNELS,
    "manage_messages": MANAGE_MESSAGES,
    "manage_threads": MANAGE_THREADS,
    "create_private_threads": CREATE_PRIVATE_THREADS,
    "send_messages_in_threads": SEND_MESSAGES_IN_THREADS,
}

ROLE_OVERWRITE = 0
MEMBER_OVERWRITE = 1
MEMBER_PAGE_SIZE = 1000


def _thread_from_payload(payload: dict[str, Any]) -> Thread:
    metadata = payload.get("thread_metadata") or {}
    return Thread(
        id=str(payload["id"]),
        name=payload.get("name") or "",
        parent_id=payload.get("parent_id"),
        archived=bool(metadata.get("archived")),
        locked=bool(metadata.get("locked")),
    )


def _member_from_payload(payload: dict[str, Any]) -> Member:
    user = payload.get("user") or {}
    return Member(
        id=str(user.get("id")),
        tag=user.get("username") or "",
        role_ids=frozenset(str(role) for role in payload.get("roles") or []),
    )


def _message_from_payload(payload: dict[str, Any]) -> Message:
    return Message(
        id=str(payload["id"]),
        channel_id=str(payload.get("channel_id")),
        content=payload.get("content"),
        embeds=list(payload.get("embeds") or []),
    )


class DiscordRestPlatform(MessagingPlatform):
    """Talk to one guild through the Discord REST API.

    ``requests`` is blocking, so each call runs in a worker thread to keep the
    event loop responsive.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        application_id: str,
        guild_id: str,
        session: requests.Session | None = None,
        timeout: float = 15.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.application_id = application_id
        self.guild_id = guild_id
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        self._headers = {
            "Authorization": f"Bot {bot_token}",
            "User-Agent": "OrderThreadBot (https://discord.com, 1.0)",
        }
        self._bot_user_id: str | None = None
        self._dm_channels: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        reason: str | None = None,
        authorized: bool = True,
    ) -> Any:
        headers = dict(self._headers) if authorized else {}
        if reason:
            headers["X-Audit-Log-Reason"] = reason
        try:
            response = self.session.request(
                method,
                f"{API_BASE}{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransientPlatformError(f"{method} {path} failed: {exc}") from exc

        status = response.status_code
        if status == 204:
            return None
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if status < 400:
            return payload

        message = payload.get("message") if isinstance(payload, dict) else None
        detail = f"{method} {path} returned {status}: {message or response.reason}"
        if status == 429:
            retry_after = payload.get("retry_after") if isinstance(payload, dict) else None
            raise TransientPlatformError(
                detail, status_code=status, retry_after=float(retry_after or 1.0)
            )
        if status >= 500:
            raise TransientPlatformError(detail, status_code=status)
        if status == 404:
            raise PlatformNotFoundError(detail, status_code=status)
        raise PlatformError(detail, status_code=status)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        return await asyncio.to_thread(self._send, method, path, **kwargs)

    async def _optional(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            return await self._request(method, path, **kwargs)
        except PlatformNotFoundError:
            return None

    @staticmethod
    def _message_body(
        content: str | None,
        embeds: Sequence[dict[str, Any]],
        components: Sequence[dict[str, Any]] = (),
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if content is not None:
            body["content"] = content
        if embeds:
            body["embeds"] = list(embeds)
        if components:
            body["components"] = list(components)
        return body

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def bot_user_id(self) -> str:
        if self._bot_user_id is None:
            payload = await self._request("GET", "/users/@me")
            self._bot_user_id = str(payload["id"])
        return self._bot_user_id

    def channel_url(self, channel_id: str) -> str:
        return f"{WEB_BASE}/{self.guild_id}/{channel_id}"

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def get_channel(self, channel_id: str) -> Channel | None:
        payload = await self._optional("GET", f"/channels/{channel_id}")
        if payload is None:
            return None
        return Channel(
            id=str(payload["id"]),
            name=payload.get("name") or "",
            kind=CHANNEL_TYPES.get(payload.get("type"), "other"),
            parent_id=payload.get("parent_id"),
        )

    async def find_channel(self, name: str, *, kind: str = "text") -> Channel | None:
        payload = await self._request("GET", f"/guilds/{self.guild_id}/channels")
        wanted = KIND_TO_TYPE.get(kind)
        for entry in payload or []:
            if entry.get("name") == name and entry.get("type") == wanted:
                return Channel(
                    id=str(entry["id"]),
                    name=name,
                    kind=kind,
                    parent_id=entry.get("parent_id"),
                )
        return None

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
        bot_id = await self.bot_user_id()
        overwrites: list[dict[str, Any]] = [
            # @everyone shares the guild id
            {"id": self.guild_id, "type": ROLE_OVERWRITE, "allow": "0", "deny": str(VIEW_CHANNEL)},
            {
                "id": bot_id,
                "type": MEMBER_OVERWRITE,
                "allow": str(VIEW_CHANNEL | SEND_MESSAGES),
                "deny": "0",
            },
        ]
        if staff_role_id:
            overwrites.append(
                {
                    "id": staff_role_id,
                    "type": ROLE_OVERWRITE,
                    "allow": str(VIEW_CHANNEL | READ_MESSAGE_HISTORY),
                    "deny": str(SEND_MESSAGES if read_only_staff else 0),
                }
            )
        body: dict[str, Any] = {
            "name": name,
            "type": KIND_TO_TYPE[kind],
            "permission_overwrites": overwrites,
        }
        if parent_id:
            body["parent_id"] = parent_id
        if topic:
            body["topic"] = topic
        payload = await self._request("POST", f"/guilds/{self.guild_id}/channels", json=body)
        return Channel(id=str(payload["id"]), name=name, kind=kind, parent_id=parent_id)

    async def grant_channel_permissions(
        self,
        channel_id: str,
        target_id: str,
        permissions: Sequence[str],
        *,
        member: bool = False,
    ) -> None:
        allow = 0
        for name in permissions:
            try:
                allow |= PERMISSION_BITS[name]
            except KeyError:
                raise ValueError(f"Unknown channel permission: {name}") from None
        await self._request(
            "PUT",
            f"/channels/{channel_id}/permissions/{target_id}",
            json={
                "type": MEMBER_OVERWRITE if member else ROLE_OVERWRITE,
                "allow": str(allow),
                "deny": "0",
            },
        )

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def _archived_threads(self, channel_id: str, visibility: str) -> list[Thread]:
        threads: list[Thread] = []
        before: str | None = None
        while True:
            params: dict[str, Any] = {"limit": 100}
            if before:
                params["before"] = before
            payload = await self._optional(
                "GET", f"/channels/{channel_id}/threads/archived/{visibility}", params=params
            )
            if not payload:
                break
            batch = payload.get("threads") or []
            threads.extend(_thread_from_payload(entry) for entry in batch)
            if not payload.get("has_more") or not batch:
                break
            before = (batch[-1].get("thread_metadata") or {}).get("archive_timestamp")
            if not before:
                break
        return threads

    async def list_threads(self, channel_id: str) -> list[Thread]:
        payload = await self._request("GET", f"/guilds/{self.guild_id}/threads/active")
        threads = [
            _thread_from_payload(entry)
            for entry in (payload or {}).get("threads") or []
            if str(entry.get("parent_id")) == channel_id
        ]
        seen = {thread.id for thread in threads}
        for visibility in ("private", "public"):
            for thread in await self._archived_threads(channel_id, visibility):
                if thread.id not in seen:
                    seen.add(thread.id)
                    threads.append(thread)
        return threads

    async def get_thread(self, thread_id: str) -> Thread | None:
        payload = await self._optional("GET", f"/channels/{thread_id}")
        return _thread_from_payload(payload) if payload else None

    async def create_private_thread(
        self, channel_id: str, name: str, *, reason: str | None = None
    ) -> Thread:
        payload = await self._request(
            "POST",
            f"/channels/{channel_id}/threads",
            json={
                "name": name,
                "type": PRIVATE_THREAD,
                "auto_archive_duration": ONE_WEEK_MINUTES,
                "invitable": False,
            },
            reason=reason,
        )
        return _thread_from_payload(payload)

    async def delete_thread(self, thread_id: str) -> None:
        await self._request("DELETE", f"/channels/{thread_id}")

    async def edit_thread(
        self,
        thread_id: str,
        *,
        archived: bool | None = None,
        locked: bool | None = None,
    ) -> Thread:
        body: dict[str, Any] = {}
        if archived is not None:
            body["archived"] = archived
        if locked is not None:
            body["locked"] = locked
        payload = await self._request("PATCH", f"/channels/{thread_id}", json=body)
        return _thread_from_payload(payload)

    async def add_thread_member(self, thread_id: str, user_id: str) -> None:
        await self._request("PUT", f"/channels/{thread_id}/thread-members/{user_id}")

    async def list_thread_members(self, thread_id: str) -> list[str]:
        payload = await self._request("GET", f"/channels/{thread_id}/thread-members")
        return [str(entry.get("user_id")) for entry in payload or []]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(
        self,
        channel_id: str,
        *,
        content: str | None = None,
        embeds: Sequence[dict[str, Any]] = (),
        components: Sequence[dict[str, Any]] = (),
    ) -> Message:
        payload = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json=self._message_body(content, embeds, components),
        )
        return _message_from_payload(payload)

    async def fetch_messages(self, channel_id: str, *, limit: int = 10) -> list[Message]:
        payload = await self._request(
            "GET", f"/channels/{channel_id}/messages", params={"limit": limit}
        )
        return [_message_from_payload(entry) for entry in payload or []]

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        await self._request("DELETE", f"/channels/{channel_id}/messages/{message_id}")

    async def send_direct_message(
        self,
        user_id: str,
        *,
        content: str | None = None,
        embeds: Sequence[dict[str, Any]] = (),
    ) -> Message:
        dm_channel = self._dm_channels.get(user_id)
        if dm_channel is None:
            payload = await self._request(
                "POST", "/users/@me/channels", json={"recipient_id": user_id}
            )
            dm_channel = str(payload["id"])
            self._dm_channels[user_id] = dm_channel
        return await self.send_message(dm_channel, content=content, embeds=embeds)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def get_member(self, user_id: str) -> Member | None:
        payload = await self._optional("GET", f"/guilds/{self.guild_id}/members/{user_id}")
        return _member_from_payload(payload) if payload else None

    async def list_role_members(self, role_id: str) -> list[Member]:
        members: list[Member] = []
        after = "0"
        while True:
            payload = await self._request(
                "GET",
                f"/guilds/{self.guild_id}/members",
                params={"limit": MEMBER_PAGE_SIZE, "after": after},
            )
            batch = payload or []
            for entry in batch:
                member = _member_from_payload(entry)
                if member.has_role(role_id):
                    members.append(member)
            if len(batch) < MEMBER_PAGE_SIZE:
                break
            after = str((batch[-1].get("user") or {}).get("id"))
        return members

    # ------------------------------------------------------------------
    # Application commands
    # ------------------------------------------------------------------

    async def register_commands(self, commands: Sequence[dict[str, Any]]) -> None:
        await self._request(
            "PUT",
            f"/applications/{self.application_id}/guilds/{self.guild_id}/commands",
            json=list(commands),
        )

    async def edit_interaction_response(
        self,
        interaction_token: str,
        *,
        content: str | None = None,
        embeds: Sequence[dict[str, Any]] = (),
    ) -> None:
        # Interaction webhooks authenticate through the token in the path.
        await self._request(
            "PATCH",
            f"/webhooks/{self.application_id}/{interaction_token}/messages/@original",
            json=self._message_body(content, embeds),
            authorized=False,
        )

    async def close(self) -> None:
        self.session.close()


__all__ = ["DiscordRestPlatform"]
