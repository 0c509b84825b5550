"""Pydantic schemas for inbound order events.

The webhook accepts several shapes for the same information (string or object
promo codes, nested or flat product names). Everything is folded into one
:class:`~orderbot.orders.models.Order` by :meth:`CreateTicketPayload.to_order`
so the rest of the system never inspects alternate field names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Affiliate, Order, OrderItem, PromoCode


class ProductRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None


class OrderItemPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product: ProductRef | None = None
    name: str | None = None
    product_name: str | None = Field(default=None, alias="productName")
    quantity: int | None = None
    price: float | None = None

    def to_item(self) -> OrderItem:
        name = (
            (self.product.name if self.product else None)
            or self.name
            or self.product_name
            or "Product"
        )
        return OrderItem(
            name=name,
            quantity=self.quantity or 1,
            price=self.price or 0.0,
        )


class PromoCodePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str | None = None
    discount: float | str | None = None
    type: str | None = None


class AffiliatePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str | None = None
    username: str | None = None
    discount: float | str | None = None


class CreateTicketPayload(BaseModel):
    """Body of ``POST /webhook/create-ticket``."""

    model_config = ConfigDict(extra="ignore")

    user_id: str | None = None
    order_id: str | None = None
    email: str | None = None
    product: str | None = None
    roblox_username: str | None = None
    stripe_payment_id: str | None = None
    order_items: list[OrderItemPayload] | None = None
    total_paid: float | None = None
    discount_amount: float | None = None
    original_price: float | None = None
    order_date: datetime | None = None
    promo_code: str | PromoCodePayload | None = None
    affiliate_code: str | AffiliatePayload | None = None

    @field_validator("user_id", "order_id", mode="before")
    @classmethod
    def _stringify_identifier(cls, value: Any) -> Any:
        # Discord snowflakes sometimes arrive as JSON numbers.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def has_identifiers(self) -> bool:
        return bool(self.user_id and self.order_id)

    def _promo(self) -> PromoCode | None:
        promo = self.promo_code
        if isinstance(promo, PromoCodePayload):
            if not promo.code:
                return None
            return PromoCode(code=promo.code, discount=promo.discount, type=promo.type)
        if promo:
            return PromoCode(code=promo)
        return None

    def _affiliate(self) -> Affiliate | None:
        affiliate = self.affiliate_code
        if isinstance(affiliate, AffiliatePayload):
            if not (affiliate.code or affiliate.username):
                return None
            return Affiliate(
                code=affiliate.code,
                username=affiliate.username,
                discount=affiliate.discount,
            )
        if affiliate:
            return Affiliate(code=affiliate)
        return None

    def to_order(self) -> Order:
        """Normalise the payload into the canonical order value.

        Raises:
            ValueError: If ``user_id`` or ``order_id`` is missing.
        """

        user_id, order_id = self.user_id, self.order_id
        if not (user_id and order_id):
            raise ValueError("Missing user_id or order_id")
        created_at = self.order_date or datetime.now(timezone.utc)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return Order(
            order_id=order_id,
            user_id=user_id,
            email=self.email or None,
            product_summary=self.product or None,
            roblox_username=self.roblox_username or None,
            items=[item.to_item() for item in self.order_items or []],
            total_paid=self.total_paid or 0.0,
            discount_amount=self.discount_amount or 0.0,
            original_price=self.original_price or None,
            promo=self._promo(),
            affiliate=self._affiliate(),
            stripe_payment_id=self.stripe_payment_id,
            created_at=created_at,
        )
