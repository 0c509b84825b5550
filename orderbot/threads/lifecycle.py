"""Find-or-create, populate and complete an order's private thread."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..backend import BackendClient, BackendError
from ..config import Settings
from ..messaging.base import (
    Channel,
    Member,
    MessagingPlatform,
    PlatformError,
    Thread,
)
from ..orders import embeds
from ..orders.cache import OrderStateCache
from ..orders.models import Order, order_suffix
from ..retry import call_with_backoff
from .keepalive import KeepAliveScheduler
from .locks import CreationLockManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

HISTORY_LIMIT = 10


class ClaimChannelNotFoundError(RuntimeError):
    """Raised when the parent channel for order threads cannot be resolved."""


def thread_name(order_id: str) -> str:
    return f"📦 Order-{order_suffix(order_id)}"


class ThreadLifecycleController:
    """Owns the life of every order thread in one guild.

    The injected platform is bound to the guild, so operations take the
    customer and order only.
    """

    def __init__(
        self,
        platform: MessagingPlatform,
        backend: BackendClient,
        keepalive: KeepAliveScheduler,
        locks: CreationLockManager,
        cache: OrderStateCache,
        settings: Settings,
    ) -> None:
        self._platform = platform
        self._backend = backend
        self._keepalive = keepalive
        self._locks = locks
        self._cache = cache
        self._settings = settings

    async def _retry(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        return await call_with_backoff(
            fn,
            *args,
            max_attempts=self._settings.retry_max_attempts,
            base_delay=self._settings.retry_base_delay_seconds,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Lookup

    async def resolve_claim_channel(self) -> Channel | None:
        if self._settings.claim_channel_id:
            return await self._platform.get_channel(self._settings.claim_channel_id)
        return await self._platform.find_channel(self._settings.claim_channel_name)

    async def find_order_threads(self, order_id: str) -> list[Thread]:
        """Every active or archived claim-channel thread carrying the order suffix."""

        channel = await self.resolve_claim_channel()
        if channel is None:
            raise ClaimChannelNotFoundError(
                f"Claim channel '{self._settings.claim_channel_name}' not found"
            )
        suffix = order_suffix(order_id)
        threads = await self._platform.list_threads(channel.id)
        return [thread for thread in threads if suffix in thread.name]

    # ------------------------------------------------------------------
    # Creation

    async def create(self, customer: Member, order: Order) -> Thread | None:
        """Create the order thread, replacing any stale one for the same order.

        Returns ``None`` when another creation for the same customer and order
        is still in flight.
        """

        with self._locks.hold((customer.id, order.order_id)) as acquired:
            if not acquired:
                logger.info(
                    "Thread creation already in progress for %s, skipping", order.order_id
                )
                return None
            return await self._create_locked(customer, order)

    async def _create_locked(self, customer: Member, order: Order) -> Thread:
        channel = await self.resolve_claim_channel()
        if channel is None:
            raise ClaimChannelNotFoundError(
                f"Claim channel '{self._settings.claim_channel_name}' not found"
            )

        for stale in [t for t in await self._platform.list_threads(channel.id) if order.suffix in t.name]:
            logger.info("Deleting existing thread %s for order %s", stale.name, order.order_id)
            try:
                await self._platform.delete_thread(stale.id)
            except PlatformError as exc:
                logger.warning("Could not delete old thread %s: %s", stale.id, exc)

        thread = await self._retry(
            self._platform.create_private_thread,
            channel.id,
            thread_name(order.order_id),
            reason=f"Order thread for {order.order_id}",
        )
        await self._add_members(thread, customer)

        product = self._cache.resolve_product(order)
        email = self._cache.resolve_email(order)
        await self._retry(
            self._platform.send_message, thread.id, embeds=[embeds.instruction_embed()]
        )
        await self._retry(
            self._platform.send_message,
            thread.id,
            embeds=[
                embeds.order_detail_embed(
                    order, product=product, email=email, brand=self._settings.brand_name
                )
            ],
        )
        staff_mention = (
            f" <@&{self._settings.staff_role_id}> 🔔 New order!"
            if self._settings.staff_role_id
            else ""
        )
        await self._retry(
            self._platform.send_message,
            thread.id,
            content=f"<@{customer.id}> 👋 Your order thread is ready!{staff_mention}",
        )

        thread_url = self._platform.channel_url(thread.id)
        order.thread_id = thread.id
        order.thread_url = thread_url
        try:
            await self._backend.patch_order(
                order.order_id,
                {"discordThreadId": thread.id, "discordThreadUrl": thread_url},
            )
        except BackendError as exc:
            logger.warning(
                "Could not save thread URL for %s to backend: %s", order.order_id, exc
            )

        self._keepalive.start(thread, order.order_id)
        logger.info("Created order thread %s for %s", thread.name, order.order_id)
        return thread

    async def _add_members(self, thread: Thread, customer: Member) -> None:
        try:
            await self._retry(self._platform.add_thread_member, thread.id, customer.id)
        except PlatformError as exc:
            logger.warning("Could not add customer %s to thread: %s", customer.id, exc)

        role_id = self._settings.staff_role_id
        if not role_id:
            return
        staff = await self._platform.list_role_members(role_id)
        logger.info("Adding %d staff member(s) to thread %s", len(staff), thread.id)
        for member in staff:
            await asyncio.sleep(self._settings.staff_add_delay_seconds)
            try:
                await self._retry(self._platform.add_thread_member, thread.id, member.id)
            except PlatformError as exc:
                logger.warning("Could not add staff %s to thread: %s", member.tag or member.id, exc)

    # ------------------------------------------------------------------
    # Completion

    async def ensure_log_channel(self) -> Channel:
        name = self._settings.order_log_channel_name
        channel = await self._platform.find_channel(name)
        if channel is not None:
            return channel
        category = await self._platform.find_channel(
            self._settings.dashboard_category_name, kind="category"
        )
        logger.info("Creating completion log channel #%s", name)
        return await self._platform.create_channel(
            name,
            parent_id=category.id if category else None,
            topic="📋 Completed order logs",
            staff_role_id=self._settings.staff_role_id,
            read_only_staff=True,
        )

    async def complete(self, order_id: str, completed_by: str) -> int:
        """Log, notify, then lock and archive every thread of ``order_id``.

        Each thread is processed independently; a failure in one is logged and
        does not stop the others. Threads are never deleted.
        """

        self._keepalive.stop(order_id)
        log_channel = await self.ensure_log_channel()
        try:
            threads = await self.find_order_threads(order_id)
        except (ClaimChannelNotFoundError, PlatformError) as exc:
            logger.warning("Could not look up threads for %s: %s", order_id, exc)
            return 0

        processed = 0
        for thread in threads:
            try:
                await self._complete_thread(thread, order_id, completed_by, log_channel)
            except Exception:
                logger.exception("Could not process thread %s", thread.name)
                continue
            processed += 1
        return processed

    async def _complete_thread(
        self, thread: Thread, order_id: str, completed_by: str, log_channel: Channel
    ) -> None:
        history = await self._platform.fetch_messages(thread.id, limit=HISTORY_LIMIT)
        details = embeds.find_embed(history, "Order Details") or {}
        thread_url = self._platform.channel_url(thread.id)

        await self._platform.send_message(
            log_channel.id,
            embeds=[
                embeds.completion_log_embed(
                    order_id,
                    completed_by,
                    thread_url=thread_url,
                    prior_fields=details.get("fields") or [],
                    brand=self._settings.brand_name,
                )
            ],
        )
        logger.info("Logged order %s to #%s", order_id, log_channel.name)

        await self._platform.send_message(
            thread.id,
            embeds=[
                embeds.delivery_embed(
                    order_id,
                    completed_by,
                    brand=self._settings.brand_name,
                    store_url=self._settings.store_url,
                    in_thread=True,
                )
            ],
        )

        await self._notify_thread_customer(thread, order_id, completed_by)

        await asyncio.sleep(self._settings.archive_grace_seconds)
        await self._platform.edit_thread(thread.id, locked=True)
        await self._platform.edit_thread(thread.id, archived=True)
        logger.info("Archived and locked thread %s", thread.name)

    async def _notify_thread_customer(
        self, thread: Thread, order_id: str, completed_by: str
    ) -> None:
        try:
            bot_id = await self._platform.bot_user_id()
            for member_id in await self._platform.list_thread_members(thread.id):
                if member_id == bot_id:
                    continue
                member = await self._platform.get_member(member_id)
                if member is None or member.has_role(self._settings.staff_role_id):
                    continue
                await self._platform.send_direct_message(
                    member.id,
                    embeds=[
                        embeds.delivery_embed(
                            order_id,
                            completed_by,
                            brand=self._settings.brand_name,
                            store_url=self._settings.store_url,
                            in_thread=False,
                        )
                    ],
                )
                logger.info("Sent delivery confirmation DM to %s", member.tag or member.id)
                return
        except PlatformError as exc:
            logger.warning("Could not DM customer for %s: %s", order_id, exc)

    # ------------------------------------------------------------------
    # Staff messages and housekeeping

    async def post_to_order_thread(self, order_id: str, embed: dict[str, Any]) -> Thread | None:
        """Post ``embed`` into the order's thread, reopening it if archived."""

        threads = await self.find_order_threads(order_id)
        if not threads:
            return None
        thread = threads[0]
        if thread.archived:
            thread = await self._platform.edit_thread(thread.id, archived=False)
        await self._retry(self._platform.send_message, thread.id, embeds=[embed])
        return thread

    async def sweep_empty_threads(self) -> int:
        """Delete claim-channel threads that never received order content."""

        channel = await self.resolve_claim_channel()
        if channel is None:
            logger.error("Claim channel not found; skipping empty-thread sweep")
            return 0
        deleted = 0
        for thread in await self._platform.list_threads(channel.id):
            try:
                history = await self._platform.fetch_messages(thread.id, limit=HISTORY_LIMIT)
                if embeds.find_embed(history, "Order Details") or embeds.find_embed(
                    history, "How Delivery Works"
                ):
                    continue
                logger.info("Deleting empty thread %s", thread.name)
                await self._platform.delete_thread(thread.id)
                deleted += 1
            except PlatformError as exc:
                logger.debug("Skipping thread %s during sweep: %s", thread.name, exc)
        return deleted
