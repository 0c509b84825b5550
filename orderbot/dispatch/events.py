"""Route inbound order events to thread creation and notifications."""

from __future__ import annotations

import logging

from ..backend import BackendClient, BackendError
from ..messaging.base import MessagingPlatform, PlatformError
from ..notifications import NotificationFanout
from ..orders.cache import OrderStateCache
from ..orders.models import Order
from ..threads.lifecycle import ThreadLifecycleController

logger = logging.getLogger(__name__)


class OrderEventHandler:
    def __init__(
        self,
        platform: MessagingPlatform,
        backend: BackendClient,
        controller: ThreadLifecycleController,
        fanout: NotificationFanout,
        cache: OrderStateCache,
    ) -> None:
        self._platform = platform
        self._backend = backend
        self._controller = controller
        self._fanout = fanout
        self._cache = cache

    async def handle_new_order(self, order: Order) -> str | None:
        """Create the customer's thread and announce the order.

        Returns the id of the created thread, or ``None`` when the customer is
        not in the guild or a creation for the same order is already running.
        Errors from thread creation propagate without notifying staff; the
        webhook turns them into a 500.
        """

        logger.info("New order %s for user %s", order.order_id, order.user_id)
        self._cache.put(order.order_id, order.cache_fields())

        try:
            await self._backend.patch_order(order.order_id, {"discordId": order.user_id})
        except BackendError as exc:
            logger.warning("Could not link Discord id for %s: %s", order.order_id, exc)

        try:
            member = await self._platform.get_member(order.user_id)
        except PlatformError as exc:
            logger.warning("Could not look up member %s: %s", order.user_id, exc)
            member = None

        thread = None
        if member is None:
            logger.info(
                "User %s is not in the server; customer DM deferred", order.user_id
            )
        else:
            thread = await self._controller.create(member, order)
            if thread is None:
                logger.info("Order %s already being handled; no customer DM", order.order_id)
            else:
                await self._fanout.notify_customer(member, order, thread)

        await self._fanout.notify_staff(order, thread)
        return thread.id if thread else None
