"""Shared slowapi limiter keyed by client IP."""

from __future__ import annotations

import os

from fastapi import Request
from slowapi import Limiter

WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "60/minute")


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting.

    Prefer ``X-Forwarded-For`` (first hop) if present, otherwise use the
    socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=get_client_ip)
