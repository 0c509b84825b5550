"""Order model, ingress normalization, display cache and embeds."""

from .cache import OrderStateCache
from .models import Affiliate, Order, OrderItem, PromoCode, order_suffix

__all__ = [
    "Affiliate",
    "Order",
    "OrderItem",
    "OrderStateCache",
    "PromoCode",
    "order_suffix",
]
