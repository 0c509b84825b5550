"""Short-lived in-memory record of order attributes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .models import Order

UNKNOWN_PRODUCT = "Unknown Product"
EMAIL_NOT_PROVIDED = "Not provided"


class OrderStateCache:
    """Best-effort display fields keyed by order id.

    Entries live for the lifetime of the process. They are never
    authoritative: callers only consult them when the current event omits a
    field.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    def put(self, order_id: str, fields: Mapping[str, Any]) -> None:
        record = self._records.setdefault(order_id, {})
        for key, value in fields.items():
            if value is not None:
                record[key] = value

    def get(self, order_id: str) -> dict[str, Any] | None:
        record = self._records.get(order_id)
        return dict(record) if record is not None else None

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Display fallbacks

    def resolve_product(self, order: Order) -> str:
        if order.product_summary:
            return order.product_summary
        names = [item.name for item in order.items if item.name]
        if names:
            return ", ".join(names)
        cached = self.get(order.order_id) or {}
        return cached.get("product") or UNKNOWN_PRODUCT

    def resolve_email(self, order: Order) -> str:
        if order.email:
            return order.email
        cached = self.get(order.order_id) or {}
        return cached.get("email") or EMAIL_NOT_PROVIDED
