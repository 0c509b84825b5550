"""Canonical order representation shared by every orchestration component."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

SUFFIX_LENGTH = 6


def order_suffix(order_id: str) -> str:
    """Return the uppercase six-character suffix used in thread names."""

    return order_id[-SUFFIX_LENGTH:].upper()


@dataclass
class OrderItem:
    name: str
    quantity: int = 1
    price: float = 0.0


@dataclass
class PromoCode:
    code: str
    discount: float | str | None = None
    type: str | None = None


@dataclass
class Affiliate:
    code: str | None
    username: str | None = None
    discount: float | str | None = None


@dataclass
class Order:
    """A paid order as seen by the orchestrator.

    The backend owns the durable record; this value is built once at the
    ingress boundary and passed around unchanged.
    """

    order_id: str
    user_id: str
    email: str | None = None
    product_summary: str | None = None
    roblox_username: str | None = None
    items: list[OrderItem] = field(default_factory=list)
    total_paid: float = 0.0
    discount_amount: float = 0.0
    original_price: float | None = None
    promo: PromoCode | None = None
    affiliate: Affiliate | None = None
    stripe_payment_id: str | None = None
    status: str = "PROCESSING"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    thread_id: str | None = None
    thread_url: str | None = None

    @property
    def suffix(self) -> str:
        return order_suffix(self.order_id)

    @property
    def has_discount(self) -> bool:
        return self.discount_amount > 0

    @property
    def list_price(self) -> float:
        """Price before discounts, derived when the backend did not send one."""

        if self.original_price and self.original_price > 0:
            return self.original_price
        return self.total_paid + self.discount_amount

    def cache_fields(self) -> dict[str, Any]:
        """Display fields worth remembering across events for this order."""

        return {
            "user_id": self.user_id,
            "email": self.email,
            "product": self.product_summary,
            "roblox_username": self.roblox_username,
            "discount_code": self.promo.code if self.promo else None,
            "promo_discount": self.promo.discount if self.promo else None,
            "promo_type": self.promo.type if self.promo else None,
            "affiliate_code": self.affiliate.code if self.affiliate else None,
            "affiliate_name": self.affiliate.username if self.affiliate else None,
            "affiliate_discount": self.affiliate.discount if self.affiliate else None,
        }
