"""Client for the order-management backend REST API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import requests

SECRET_HEADER = "X-Webhook-Secret"


class BackendError(RuntimeError):
    """Raised when the backend rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BackendClient:
    """Authenticated calls against ``/api/orders``.

    Every request carries the shared secret header. Blocking ``requests``
    calls are pushed to a worker thread.
    """

    def __init__(
        self,
        base_url: str,
        secret: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 15.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        self._headers = {SECRET_HEADER: secret}

    def _send(self, method: str, path: str, *, json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers, json=json, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise BackendError(f"{method} {path} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.status_code >= 400:
            detail = None
            if isinstance(payload, dict):
                detail = payload.get("message") or payload.get("error")
            raise BackendError(
                detail or f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return payload

    async def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        return await asyncio.to_thread(self._send, method, path, json=json)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        payload = await self._request("GET", f"/api/orders/{order_id}")
        return payload or {}

    async def patch_order(self, order_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        payload = await self._request("PATCH", f"/api/orders/{order_id}", json=dict(fields))
        return payload or {}

    async def post_delivery_state(self, order_id: str, *, action: str, step: str) -> None:
        await self._request(
            "POST",
            f"/api/orders/{order_id}/delivery-state",
            json={"action": action, "step": step},
        )

    async def close(self) -> None:
        self.session.close()


__all__ = ["BackendClient", "BackendError", "SECRET_HEADER"]
