"""Discord HTTP interactions endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from ..dispatch import CommandInvocation
from ..messaging.base import PlatformError
from ..orchestrator import Orchestrator
from .webhooks import get_orchestrator

router = APIRouter(tags=["interactions"])

logger = logging.getLogger(__name__)

PING = 1
APPLICATION_COMMAND = 2
MESSAGE_COMPONENT = 3

PONG = 1
DEFERRED_CHANNEL_MESSAGE = 5
EPHEMERAL = 64


def verify_signature(public_key: str | None, signature: str, timestamp: str, body: bytes) -> bool:
    """Check Discord's Ed25519 signature over ``timestamp + body``."""
    if not (public_key and signature and timestamp):
        return False
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key))
        key.verify(bytes.fromhex(signature), timestamp.encode("utf-8") + body)
    except (ValueError, InvalidSignature):
        return False
    return True


def parse_invocation(payload: Mapping[str, Any]) -> CommandInvocation:
    member = payload.get("member") or {}
    user = member.get("user") or payload.get("user") or {}
    data = payload.get("data") or {}
    options = {
        str(option.get("name")): str(option.get("value"))
        for option in data.get("options") or []
        if option.get("value") is not None
    }
    discriminator = user.get("discriminator")
    username = str(user.get("username") or "")
    tag = f"{username}#{discriminator}" if discriminator and discriminator != "0" else username
    return CommandInvocation(
        user_id=str(user.get("id") or ""),
        user_tag=tag,
        role_ids=frozenset(str(role) for role in member.get("roles") or []),
        command=data.get("name") if payload.get("type") == APPLICATION_COMMAND else None,
        options=options,
        custom_id=data.get("custom_id") if payload.get("type") == MESSAGE_COMPONENT else None,
    )


async def run_interaction(
    orchestrator: Orchestrator, invocation: CommandInvocation, token: str
) -> None:
    reply = await orchestrator.commands.dispatch(invocation)
    try:
        await orchestrator.platform.edit_interaction_response(
            token, content=reply.content, embeds=reply.embeds
        )
    except PlatformError as exc:
        logger.warning("Could not deliver interaction reply: %s", exc)


@router.post("/interactions")
async def interactions(request: Request, background_tasks: BackgroundTasks) -> dict[str, Any]:
    """Answer PINGs and defer commands and button presses as ephemeral replies."""
    orchestrator = get_orchestrator(request)
    body = await request.body()
    if not verify_signature(
        orchestrator.settings.public_key,
        request.headers.get("X-Signature-Ed25519", ""),
        request.headers.get("X-Signature-Timestamp", ""),
        body,
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid request signature"
        )

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    kind = payload.get("type")
    if kind == PING:
        return {"type": PONG}
    if kind not in (APPLICATION_COMMAND, MESSAGE_COMPONENT):
        raise HTTPException(status_code=400, detail=f"Unsupported interaction type: {kind}")

    invocation = parse_invocation(payload)
    background_tasks.add_task(run_interaction, orchestrator, invocation, str(payload.get("token")))
    return {"type": DEFERRED_CHANNEL_MESSAGE, "data": {"flags": EPHEMERAL}}
