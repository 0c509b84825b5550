"""Process-wide state for the order bot, held as one explicit object."""

from __future__ import annotations

import logging

from .backend import BackendClient
from .config import Settings
from .dispatch import COMMAND_DEFINITIONS, CommandDispatcher, OrderEventHandler
from .messaging import DiscordRestPlatform, MessagingPlatform, PlatformError
from .notifications import NotificationFanout
from .orders.cache import OrderStateCache
from .threads import CreationLockManager, KeepAliveScheduler, ThreadLifecycleController

logger = logging.getLogger(__name__)

BOT_CLAIM_PERMISSIONS = (
    "view_channel",
    "send_messages",
    "manage_channels",
    "manage_threads",
    "create_private_threads",
    "read_message_history",
    "manage_messages",
)
STAFF_CLAIM_PERMISSIONS = (
    "view_channel",
    "read_message_history",
    "send_messages",
    "send_messages_in_threads",
    "manage_threads",
)


class Orchestrator:
    """Owns the cache, locks, keep-alive registry and the services using them.

    Nothing here is persisted; a restart starts from empty state.
    """

    def __init__(
        self,
        platform: MessagingPlatform,
        backend: BackendClient,
        settings: Settings,
    ) -> None:
        self.platform = platform
        self.backend = backend
        self.settings = settings
        self.cache = OrderStateCache()
        self.locks = CreationLockManager()
        self.keepalive = KeepAliveScheduler(platform, settings.keepalive_interval_seconds)
        self.controller = ThreadLifecycleController(
            platform, backend, self.keepalive, self.locks, self.cache, settings
        )
        self.fanout = NotificationFanout(platform, settings, self.cache)
        self.events = OrderEventHandler(
            platform, backend, self.controller, self.fanout, self.cache
        )
        self.commands = CommandDispatcher(self.controller, backend, settings)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Orchestrator":
        platform = DiscordRestPlatform(
            bot_token=settings.bot_token,
            application_id=settings.client_id,
            guild_id=settings.guild_id,
            timeout=settings.http_timeout_seconds,
        )
        backend = BackendClient(
            settings.backend_url,
            settings.webhook_secret,
            timeout=settings.http_timeout_seconds,
        )
        return cls(platform, backend, settings)

    async def startup(self) -> None:
        """Register commands and prepare channels, then sweep empty threads.

        Every step is best-effort so a partially configured guild still
        serves webhooks.
        """

        try:
            await self.platform.register_commands(COMMAND_DEFINITIONS)
            logger.info("Registered %d slash commands", len(COMMAND_DEFINITIONS))
        except PlatformError as exc:
            logger.error("Failed to register slash commands: %s", exc)

        await self.ensure_claim_channel_permissions()

        try:
            await self._ensure_staff_channel()
            await self.controller.ensure_log_channel()
        except PlatformError as exc:
            logger.error("Failed to set up staff channels: %s", exc)

        try:
            deleted = await self.controller.sweep_empty_threads()
            if deleted:
                logger.info("Removed %d empty thread(s)", deleted)
        except PlatformError as exc:
            logger.error("Empty-thread sweep failed: %s", exc)

    async def ensure_claim_channel_permissions(self) -> bool:
        """Let the bot and staff manage private threads in the claim channel.

        Returns ``False`` when the channel is missing. Each grant is attempted
        on its own and a failure is only logged.
        """

        try:
            channel = await self.controller.resolve_claim_channel()
        except PlatformError as exc:
            logger.error("Could not look up the claim channel: %s", exc)
            return False
        if channel is None:
            logger.error(
                "Claim channel '%s' not found; set DISCORD_CLAIM_HERE_CHANNEL_ID",
                self.settings.claim_channel_name,
            )
            return False

        grants = [("bot", await self._bot_id(), BOT_CLAIM_PERMISSIONS, True)]
        if self.settings.staff_role_id:
            grants.append(("staff", self.settings.staff_role_id, STAFF_CLAIM_PERMISSIONS, False))
        for label, target_id, permissions, member in grants:
            if target_id is None:
                continue
            try:
                await self.platform.grant_channel_permissions(
                    channel.id, target_id, permissions, member=member
                )
            except PlatformError as exc:
                logger.warning("Could not update %s permissions on #%s: %s", label, channel.name, exc)
        logger.info("Using claim channel #%s (%s)", channel.name, channel.id)
        return True

    async def _bot_id(self) -> str | None:
        try:
            return await self.platform.bot_user_id()
        except PlatformError as exc:
            logger.warning("Could not resolve bot user id: %s", exc)
            return None

    async def _ensure_staff_channel(self) -> None:
        name = self.settings.staff_notify_channel_name
        if await self.platform.find_channel(name) is not None:
            return
        category = await self.platform.find_channel(
            self.settings.dashboard_category_name, kind="category"
        )
        if category is None:
            category = await self.platform.create_channel(
                self.settings.dashboard_category_name,
                kind="category",
                staff_role_id=self.settings.staff_role_id,
            )
        await self.platform.create_channel(
            name,
            parent_id=category.id,
            topic="🔔 New order notifications",
            staff_role_id=self.settings.staff_role_id,
        )
        logger.info("Created staff channel #%s", name)

    async def shutdown(self) -> None:
        self.keepalive.stop_all()
        await self.platform.close()
        await self.backend.close()
