"""Staff slash commands and the "Mark Delivered" button."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..backend import BackendClient, BackendError
from ..config import Settings
from ..messaging.base import PlatformError
from ..notifications import COMPLETE_BUTTON_PREFIX
from ..orders import embeds
from ..threads.lifecycle import ClaimChannelNotFoundError, ThreadLifecycleController

logger = logging.getLogger(__name__)

# Discord application command option type for strings.
STRING_OPTION = 3

STAFF_COMMANDS = frozenset({"complete", "order-status", "notify-customer", "send-server-link"})

STAFF_ONLY_COMMAND = "❌ This command is only available to staff members."
STAFF_ONLY_BUTTON = "❌ Only staff members can complete orders."
GENERIC_ERROR = "❌ An error occurred"


def _string_option(name: str, description: str) -> dict[str, Any]:
    return {"type": STRING_OPTION, "name": name, "description": description, "required": True}


COMMAND_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "complete",
        "description": "Mark an order as delivered (Staff only)",
        "options": [_string_option("order_id", "The order ID")],
    },
    {
        "name": "order-status",
        "description": "Check order status",
        "options": [_string_option("order_id", "The order ID")],
    },
    {
        "name": "notify-customer",
        "description": "Send a message to customer's order thread (Staff only)",
        "options": [
            _string_option("order_id", "The order ID"),
            _string_option("message", "Message to send to customer"),
        ],
    },
    {
        "name": "send-server-link",
        "description": "Send private server link to customer (Staff only)",
        "options": [
            _string_option("order_id", "The order ID"),
            _string_option("link", "Private server link (Roblox VIP server URL)"),
        ],
    },
]


@dataclass
class CommandInvocation:
    """A slash command or button press, stripped of transport details."""

    user_id: str
    user_tag: str = ""
    role_ids: frozenset[str] = field(default_factory=frozenset)
    command: str | None = None
    options: Mapping[str, str] = field(default_factory=dict)
    custom_id: str | None = None


@dataclass
class CommandReply:
    content: str | None = None
    embeds: list[dict[str, Any]] = field(default_factory=list)
    ephemeral: bool = True


class CommandDispatcher:
    """Single entry point for staff interactions.

    The staff-role check runs before any handler, so a denied invocation has
    no side effects.
    """

    def __init__(
        self,
        controller: ThreadLifecycleController,
        backend: BackendClient,
        settings: Settings,
    ) -> None:
        self._controller = controller
        self._backend = backend
        self._settings = settings
        self._handlers: dict[str, Callable[[CommandInvocation], Awaitable[CommandReply]]] = {
            "complete": self._complete_command,
            "order-status": self._order_status,
            "notify-customer": self._notify_customer,
            "send-server-link": self._send_server_link,
        }

    def _is_staff(self, invocation: CommandInvocation) -> bool:
        role_id = self._settings.staff_role_id
        return bool(role_id) and role_id in invocation.role_ids

    async def dispatch(self, invocation: CommandInvocation) -> CommandReply:
        if invocation.custom_id is not None:
            return await self._dispatch_button(invocation)

        name = invocation.command or ""
        if name in STAFF_COMMANDS and not self._is_staff(invocation):
            logger.info("Denied /%s for non-staff user %s", name, invocation.user_id)
            return CommandReply(content=STAFF_ONLY_COMMAND)

        handler = self._handlers.get(name)
        if handler is None:
            return CommandReply(content=f"❌ Unknown command: {name}")
        try:
            return await handler(invocation)
        except Exception:
            logger.exception("Command /%s failed", name)
            return CommandReply(content=GENERIC_ERROR)

    async def _dispatch_button(self, invocation: CommandInvocation) -> CommandReply:
        custom_id = invocation.custom_id or ""
        if not custom_id.startswith(COMPLETE_BUTTON_PREFIX):
            return CommandReply(content=f"❌ Unknown action: {custom_id}")
        if not self._is_staff(invocation):
            logger.info("Denied completion button for non-staff user %s", invocation.user_id)
            return CommandReply(content=STAFF_ONLY_BUTTON)
        order_id = custom_id[len(COMPLETE_BUTTON_PREFIX):]
        try:
            return await self.complete_order(order_id, invocation)
        except Exception:
            logger.exception("Completion button for %s failed", order_id)
            return CommandReply(content=GENERIC_ERROR)

    # ------------------------------------------------------------------
    # Handlers

    async def _complete_command(self, invocation: CommandInvocation) -> CommandReply:
        return await self.complete_order(invocation.options["order_id"], invocation)

    async def complete_order(self, order_id: str, invocation: CommandInvocation) -> CommandReply:
        logger.info("Completing order %s", order_id)
        try:
            await self._backend.patch_order(
                order_id,
                {
                    "status": "DELIVERED",
                    "deliveryStep": "COMPLETE",
                    "completedAt": datetime.now(timezone.utc).isoformat(),
                    "completedBy": str(invocation.user_id),
                },
            )
        except BackendError as exc:
            logger.error("Complete order %s failed: %s", order_id, exc)
            return CommandReply(content=f"❌ Failed to complete order: {exc}")
        logger.info("Order %s marked as complete", order_id)

        try:
            await self._backend.post_delivery_state(
                order_id, action="DELIVERY_COMPLETED", step="COMPLETED"
            )
        except BackendError as exc:
            logger.warning("Could not update delivery state for %s: %s", order_id, exc)

        processed = await self._controller.complete(order_id, invocation.user_id)
        return CommandReply(
            embeds=[
                {
                    "title": "✅ Order Completed",
                    "description": (
                        f"Order **{order_id}** has been delivered.\n\n"
                        f"**{processed}** thread(s) will be archived."
                    ),
                    "color": embeds.SUCCESS_GREEN,
                    "footer": {"text": f"Completed by {invocation.user_tag}"},
                }
            ]
        )

    async def _order_status(self, invocation: CommandInvocation) -> CommandReply:
        order_id = invocation.options["order_id"]
        try:
            record = await self._backend.get_order(order_id)
        except BackendError as exc:
            logger.info("Status lookup for %s failed: %s", order_id, exc)
            return CommandReply(content=f"❌ Order not found: {order_id}")
        return CommandReply(embeds=[embeds.order_status_embed(order_id, record)])

    async def _notify_customer(self, invocation: CommandInvocation) -> CommandReply:
        order_id = invocation.options["order_id"]
        embed = embeds.staff_message_embed(invocation.options["message"], invocation.user_tag)
        return await self._post(order_id, embed, "Your message was sent to the customer's order thread.")

    async def _send_server_link(self, invocation: CommandInvocation) -> CommandReply:
        order_id = invocation.options["order_id"]
        embed = embeds.server_link_embed(invocation.options["link"], invocation.user_tag)
        return await self._post(order_id, embed, "Private server link sent to the customer's order thread.")

    async def _post(self, order_id: str, embed: dict[str, Any], confirmation: str) -> CommandReply:
        try:
            thread = await self._controller.post_to_order_thread(order_id, embed)
        except ClaimChannelNotFoundError:
            return CommandReply(content=f"❌ {self._settings.claim_channel_name} channel not found")
        except PlatformError as exc:
            return CommandReply(content=f"❌ Error: {exc}")
        if thread is None:
            return CommandReply(content=f"❌ Could not find order thread for {order_id}")
        return CommandReply(
            embeds=[
                {
                    "title": "✅ Message Sent",
                    "description": confirmation,
                    "color": embeds.SUCCESS_GREEN,
                    "fields": [
                        {"name": "Order", "value": order_id, "inline": True},
                        {"name": "Thread", "value": f"<#{thread.id}>", "inline": True},
                    ],
                }
            ]
        )
