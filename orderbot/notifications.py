"""Best-effort order announcements to staff and customers."""

from __future__ import annotations

import asyncio
import logging

from .config import Settings
from .messaging.base import Member, MessagingPlatform, PlatformError, Thread
from .orders import embeds
from .orders.cache import OrderStateCache
from .orders.models import Order

logger = logging.getLogger(__name__)

COMPLETE_BUTTON_PREFIX = "complete_order_"

# Discord component types and button styles.
ACTION_ROW = 1
BUTTON = 2
BUTTON_SUCCESS = 3


def complete_button(order_id: str) -> dict:
    return {
        "type": ACTION_ROW,
        "components": [
            {
                "type": BUTTON,
                "style": BUTTON_SUCCESS,
                "label": "Mark Delivered",
                "emoji": {"name": "✅"},
                "custom_id": f"{COMPLETE_BUTTON_PREFIX}{order_id}",
            }
        ],
    }


class NotificationFanout:
    """Post new-order announcements; nothing here ever raises to the caller."""

    def __init__(
        self,
        platform: MessagingPlatform,
        settings: Settings,
        cache: OrderStateCache | None = None,
    ) -> None:
        self._platform = platform
        self._settings = settings
        self._cache = cache or OrderStateCache()

    async def notify_staff(self, order: Order, thread: Thread | None) -> int:
        """Announce ``order`` in the staff channel and DM each staff member.

        Returns the number of staff DMs that were delivered.
        """

        embed = embeds.staff_new_order_embed(order, thread.id if thread else None)
        role_id = self._settings.staff_role_id
        mention = f"<@&{role_id}> 🔔 **New order needs delivery!**" if role_id else None

        try:
            channel = await self._platform.find_channel(self._settings.staff_notify_channel_name)
            if channel is None:
                logger.warning(
                    "Staff channel #%s not found", self._settings.staff_notify_channel_name
                )
            else:
                await self._platform.send_message(
                    channel.id,
                    content=mention,
                    embeds=[embed],
                    components=[complete_button(order.order_id)],
                )
                logger.info("Posted order %s to #%s", order.order_id, channel.name)
        except PlatformError as exc:
            logger.warning("Could not post order %s to staff channel: %s", order.order_id, exc)

        if not role_id:
            return 0
        try:
            staff = await self._platform.list_role_members(role_id)
        except PlatformError as exc:
            logger.warning("Could not list staff members: %s", exc)
            return 0

        delivered = 0
        for member in staff:
            try:
                await self._platform.send_direct_message(member.id, embeds=[embed])
                delivered += 1
            except PlatformError as exc:
                logger.warning("Could not DM staff %s: %s", member.tag or member.id, exc)
            await asyncio.sleep(self._settings.staff_dm_delay_seconds)
        logger.info("Sent order %s DM to %d/%d staff", order.order_id, delivered, len(staff))
        return delivered

    async def notify_customer(self, member: Member, order: Order, thread: Thread) -> bool:
        thread_url = order.thread_url or self._platform.channel_url(thread.id)
        embed = embeds.customer_confirmation_embed(
            order,
            thread_url=thread_url,
            product=self._cache.resolve_product(order),
            email=self._cache.resolve_email(order),
            brand=self._settings.brand_name,
        )
        try:
            await self._platform.send_direct_message(member.id, embeds=[embed])
        except PlatformError as exc:
            logger.warning("Could not DM customer %s: %s", member.tag or member.id, exc)
            return False
        logger.info("Sent order confirmation DM to %s", member.tag or member.id)
        return True
