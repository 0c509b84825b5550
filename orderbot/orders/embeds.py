"""Discord embed payloads for order threads, DMs and staff replies.

Embeds are plain dictionaries in Discord's wire shape so they can be sent
through any :class:`~orderbot.messaging.base.MessagingPlatform` and read back
from message history without conversion.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from .models import Order

INSTRUCTION_TITLE = "🎮 How Delivery Works"
ORDER_DETAILS_TITLE = "📦 Order Details"

BLURPLE = 0x5865F2
BRAND_GREEN = 0x3DFF88
SUCCESS_GREEN = 0x00FF00
STAFF_ORANGE = 0xFF9900
PENDING_AMBER = 0xFFAA00

FIELD_VALUE_LIMIT = 1024

Embed = dict[str, Any]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _field(name: str, value: str, inline: bool = True) -> dict[str, Any]:
    if len(value) > FIELD_VALUE_LIMIT:
        value = value[: FIELD_VALUE_LIMIT - 3] + "..."
    return {"name": name, "value": value, "inline": inline}


def _money(amount: float) -> str:
    return f"${amount:.2f}"


def format_timestamp(value: datetime) -> str:
    """Render ``value`` like ``Oct 19, 2026, 3:04 PM``."""

    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value:%b} {value.day}, {value.year}, {hour}:{value:%M} {meridiem}"


def items_list(order: Order, fallback: str) -> str:
    if not order.items:
        return fallback
    return "\n".join(
        f"• **{item.name}** (x{item.quantity}) - {_money(item.price)}"
        for item in order.items
    )


def promo_display(order: Order) -> str | None:
    promo = order.promo
    if not promo:
        return None
    display = f"`{promo.code}`"
    if promo.discount:
        display += f" ({promo.discount}% OFF)"
    elif promo.type == "fixed" and order.has_discount:
        display += f" ({_money(order.discount_amount)} OFF)"
    return display


def affiliate_display(order: Order, *, referrer_prefix: str | None = "") -> str | None:
    affiliate = order.affiliate
    if not affiliate:
        return None
    display = f"`{affiliate.code or affiliate.username}`"
    if affiliate.discount:
        display += f" ({affiliate.discount}% OFF)"
    if affiliate.username and referrer_prefix is not None:
        display += f" - {referrer_prefix}{affiliate.username}"
    return display


def pricing_fields(order: Order) -> list[dict[str, Any]]:
    """Original price (struck through), total paid and savings."""

    fields = []
    if order.has_discount:
        fields.append(_field("💵 Original Price", f"~~{_money(order.list_price)}~~"))
    fields.append(_field("💰 Total Paid", f"**{_money(order.total_paid)}**"))
    if order.has_discount:
        fields.append(_field("🎉 You Saved", f"**{_money(order.discount_amount)}**"))
    return fields


def _summary_fields(order: Order, *, product: str, email: str) -> list[dict[str, Any]]:
    return [
        _field("📋 Order ID", f"`{order.order_id}`"),
        _field("📅 Date", format_timestamp(order.created_at)),
        _field("⏱️ Status", order.status or "PROCESSING"),
        _field("🎮 Roblox", f"`{order.roblox_username or 'Not linked'}`"),
        _field("📧 Email", f"`{email}`"),
        _field("🛒 Items", items_list(order, product), inline=False),
    ]


def instruction_embed() -> Embed:
    steps = [
        ("⏳ Step 1: Wait for Staff", "A staff member will join this thread shortly to assist with your delivery."),
        ("🔗 Step 2: Private Server Link", "You'll receive a Roblox private server link in this thread."),
        ("🎁 Step 3: Join & Claim", "Click the link, join the server, and claim your items!"),
        ("⭐ Step 4: Leave a Review", "After delivery, we'd love your feedback on our website!"),
        ("💬 Questions?", "Feel free to ask anything in this thread - staff will respond ASAP!"),
    ]
    return {
        "title": INSTRUCTION_TITLE,
        "description": "Welcome to your private order thread! Here's what happens next:",
        "color": BLURPLE,
        "fields": [_field(name, value, inline=False) for name, value in steps],
        "footer": {"text": "This thread is private - only you and staff can see it"},
        "timestamp": _now_iso(),
    }


def order_detail_embed(order: Order, *, product: str, email: str, brand: str) -> Embed:
    fields = _summary_fields(order, product=product, email=email)
    fields.extend(pricing_fields(order))
    promo = promo_display(order)
    if promo:
        fields.append(_field("🎟️ Promo Code Used", promo))
    affiliate = affiliate_display(order, referrer_prefix="Referred by: ")
    if affiliate:
        fields.append(_field("👥 Referred By", affiliate))
    return {
        "title": ORDER_DETAILS_TITLE,
        "description": f"Here's a summary of your {brand} order:",
        "color": BRAND_GREEN,
        "fields": fields,
        "footer": {"text": f"Thank you for shopping with {brand}! 💚"},
        "timestamp": _now_iso(),
    }


def customer_confirmation_embed(
    order: Order, *, thread_url: str, product: str, email: str, brand: str
) -> Embed:
    fields = _summary_fields(order, product=product, email=email)
    fields.extend(pricing_fields(order))
    promo = promo_display(order)
    if promo:
        fields.append(_field("🎟️ Promo Code", promo))
    affiliate = affiliate_display(order)
    if affiliate:
        fields.append(_field("👥 Referred By", affiliate))
    fields.append(
        _field("🧵 Your Order Thread", f"[Click here to open your thread]({thread_url})", inline=False)
    )
    return {
        "title": "🎉 Order Confirmed!",
        "description": (
            f"Thank you for your {brand} purchase!\n\n"
            "🧵 **Your private order thread is ready!**\n"
            "Click the link below to access your thread where staff will assist with delivery."
        ),
        "color": BRAND_GREEN,
        "fields": fields,
        "footer": {"text": f"{brand} • Your items will be delivered soon! 💚"},
        "timestamp": _now_iso(),
    }


def staff_new_order_embed(order: Order, thread_id: str | None) -> Embed:
    fields = [
        _field("📦 Order ID", f"`{order.order_id}`"),
        _field("💰 Total", f"**{_money(order.total_paid)}**"),
    ]
    promo = promo_display(order)
    if promo:
        fields.append(_field("🎟️ Promo Code", promo))
    if order.affiliate:
        fields.append(_field("👥 Affiliate", affiliate_display(order, referrer_prefix=None) or ""))
    fields.append(
        _field(
            "🧵 Order Thread",
            f"<#{thread_id}>" if thread_id else "Pending (customer not in server)",
            inline=False,
        )
    )
    return {
        "title": "🔔 NEW ORDER!",
        "description": "A new order has been placed and needs delivery!",
        "color": STAFF_ORANGE,
        "fields": fields,
        "footer": {"text": "Please deliver this order ASAP!"},
        "timestamp": _now_iso(),
    }


def delivery_embed(
    order_id: str, completed_by: str, *, brand: str, store_url: str, in_thread: bool
) -> Embed:
    store_host = store_url.split("//")[-1].rstrip("/")
    fields = [
        _field("📦 Order ID", f"`{order_id}`"),
        _field("👨‍💼 Delivered By", f"<@{completed_by}>"),
        _field("📅 Completed", format_timestamp(datetime.now(timezone.utc))),
        _field(
            "⭐ Leave a Review",
            "We'd love to hear your feedback! Leave us a review on our website or Discord.",
            inline=False,
        ),
        _field("🔄 Order Again?", f"Visit [{store_host}]({store_url}) for more items!", inline=False),
    ]
    if in_thread:
        fields.append(
            _field(
                "📁 Thread Status",
                "This thread will be archived shortly. You can still view it in your thread history.",
                inline=False,
            )
        )
    return {
        "title": "🎉 ORDER DELIVERED!",
        "description": "Your items have been successfully delivered to your Roblox account!",
        "color": SUCCESS_GREEN,
        "fields": fields,
        "footer": {"text": f"Thank you for shopping with {brand}! 💚"},
        "timestamp": _now_iso(),
    }


def completion_log_embed(
    order_id: str,
    completed_by: str,
    *,
    thread_url: str,
    prior_fields: Iterable[Mapping[str, Any]],
    brand: str,
) -> Embed:
    fields = [
        _field("📦 Order ID", f"`{order_id}`"),
        _field("👨‍💼 Delivered By", f"<@{completed_by}>"),
        _field("📅 Completed", format_timestamp(datetime.now(timezone.utc))),
        _field("🔗 Thread Archive", f"[View archived thread]({thread_url})", inline=False),
    ]
    for prior in prior_fields:
        name = str(prior.get("name", ""))
        if "Order ID" in name:
            continue
        fields.append(_field(name, str(prior.get("value", "")), bool(prior.get("inline", False))))
    return {
        "title": "✅ Order Delivered & Archived",
        "description": "This order has been successfully completed and the thread is now archived.",
        "color": SUCCESS_GREEN,
        "fields": fields,
        "footer": {"text": f"{brand} Order Log • Thread archived for records"},
        "timestamp": _now_iso(),
    }


def staff_message_embed(message: str, author_tag: str) -> Embed:
    return {
        "title": "📨 Message from Staff",
        "description": message,
        "color": BLURPLE,
        "footer": {"text": f"From: {author_tag}"},
        "timestamp": _now_iso(),
    }


def server_link_embed(link: str, author_tag: str) -> Embed:
    return {
        "title": "🎮 PRIVATE SERVER LINK",
        "description": "**Click the link below to join the private server and receive your items!**",
        "color": BRAND_GREEN,
        "fields": [
            _field("🔗 Server Link", link, inline=False),
            _field(
                "📝 Instructions",
                "1. Click the link above\n2. Join the private server\n3. Meet our staff member\n4. Claim your items!",
                inline=False,
            ),
        ],
        "footer": {"text": f"Sent by: {author_tag}"},
        "timestamp": _now_iso(),
    }


def order_status_embed(order_id: str, record: Mapping[str, Any]) -> Embed:
    status = record.get("status") or "PENDING"
    return {
        "title": f"Order Status: {order_id}",
        "color": SUCCESS_GREEN if status == "DELIVERED" else PENDING_AMBER,
        "fields": [
            _field("Status", str(status)),
            _field("Roblox", str(record.get("robloxUsername") or "Not set")),
            _field("Discord", "Linked" if record.get("discordId") else "Not linked"),
        ],
        "timestamp": _now_iso(),
    }


def find_embed(messages: Iterable[Any], title_fragment: str) -> Embed | None:
    """Return the first embed in ``messages`` whose title contains the fragment."""

    for message in messages:
        for embed in getattr(message, "embeds", None) or []:
            if title_fragment in (embed.get("title") or ""):
                return embed
    return None
