"""Order webhook and health routes."""

from __future__ import annotations

import hmac
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..backend import SECRET_HEADER
from ..orchestrator import Orchestrator
from ..orders.schemas import CreateTicketPayload
from ..rate_limit import WEBHOOK_RATE_LIMIT, limiter

router = APIRouter(tags=["webhooks"])

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _authorized(request: Request, secret: str) -> bool:
    received = request.headers.get(SECRET_HEADER)
    if not received or not secret:
        return False
    return hmac.compare_digest(received.encode("utf-8"), secret.encode("utf-8"))


@router.post("/webhook/create-ticket")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def create_ticket(request: Request) -> JSONResponse:
    """Accept a paid order from the backend and open the customer's thread."""
    orchestrator = get_orchestrator(request)
    if not _authorized(request, orchestrator.settings.webhook_secret):
        logger.warning("Rejected create-ticket call with a bad secret")
        return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    body_bytes = await request.body()
    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid JSON payload: {exc}")
    if not isinstance(payload, dict):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON payload")

    try:
        ticket = CreateTicketPayload.model_validate(payload)
    except ValidationError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid payload: {exc.error_count()} error(s)")
    try:
        order = ticket.to_order()
    except ValueError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    try:
        thread_id = await orchestrator.events.handle_new_order(order)
    except Exception as exc:
        logger.exception("Webhook handling failed for order %s", order.order_id)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    return JSONResponse(content={"success": True, "customerThreadId": thread_id})


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe with a minimal JSON body."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
