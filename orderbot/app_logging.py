"""Application and access logging setup.

This module centralizes logging configuration for the bot's HTTP surface and
its background orchestration. It provides:

- A simple JSON formatter (opt-in via LOG_JSON) or a human-readable formatter.
- Timed rotation of log files for both application logs (app.log) and access
  logs (access.log), honoring retention and timezone options.
- An HTTP middleware that records structured access logs (method, path,
  status, latency, client IP, headers, optional body) with scrubbing of
  secrets such as the webhook shared secret. Order webhook and interaction
  lines also carry the order id they concern.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

from .notifications import COMPLETE_BUTTON_PREFIX
from .rate_limit import get_client_ip

APP_LOGGER_NAME = "orderbot"


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "password",
    "token",
    "access_token",
    "refresh_token",
    "x-webhook-secret",
    "x-signature-ed25519",
    "email",
}


def _scrub(data: object) -> object:
    """Recursively scrub sensitive fields from dictionaries and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if k.lower() in SENSITIVE_FIELDS else _scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


ORDER_WEBHOOK_PATH = "/webhook/create-ticket"
INTERACTIONS_PATH = "/interactions"
TAGGED_PATHS = {ORDER_WEBHOOK_PATH, INTERACTIONS_PATH}


def _interaction_order_id(data: dict[str, Any]) -> str | None:
    custom_id = data.get("custom_id") or ""
    if custom_id.startswith(COMPLETE_BUTTON_PREFIX):
        return custom_id[len(COMPLETE_BUTTON_PREFIX):]
    for option in data.get("options") or []:
        if isinstance(option, dict) and option.get("name") == "order_id":
            value = option.get("value")
            return str(value) if value is not None else None
    return None


def _request_tags(path: str, payload: object) -> dict[str, Any]:
    """Identifiers that make an access line findable by order.

    Order webhooks carry ``order_id`` and ``user_id``; interactions carry the
    command or button and, when one is referenced, the order id.
    """

    if not isinstance(payload, dict):
        return {}
    if path == ORDER_WEBHOOK_PATH:
        tags = {"order_id": payload.get("order_id"), "user_id": payload.get("user_id")}
    elif path == INTERACTIONS_PATH:
        data = payload.get("data")
        data = data if isinstance(data, dict) else {}
        tags = {
            "interaction_type": payload.get("type"),
            "command": data.get("name") or data.get("custom_id"),
            "order_id": _interaction_order_id(data),
        }
    else:
        return {}
    return {key: value for key, value in tags.items() if value is not None}


def _install_access_logging(app: FastAPI) -> None:
    """Install request/response access logging middleware.

    One JSON line per request (excluding health/metrics), including a
    generated X-Request-Id that is echoed back in the response headers.
    Order webhook and interaction lines are tagged with the order they
    concern, whether or not bodies are logged.
    """

    log_request_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    skip_paths = {"/health", "/api/metrics"}
    access_logger = logging.getLogger("uvicorn.access")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        path = request.url.path
        if path in skip_paths:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id

        start = time.time()

        body_bytes = b""
        if log_request_bodies or path in TAGGED_PATHS:
            body_bytes = await request.body()

            async def receive() -> dict:  # pragma: no cover - internal
                return {"type": "http.request", "body": body_bytes, "more_body": False}

            request._receive = receive  # type: ignore[attr-defined]

        payload: object = None
        if body_bytes:
            try:
                payload = json.loads(body_bytes)
            except ValueError:
                payload = None

        response = await call_next(request)

        log_data: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "latency_ms": round((time.time() - start) * 1000, 2),
            "client_ip": get_client_ip(request),
            "headers": _scrub(dict(request.headers)),
        }
        log_data.update(_request_tags(path, payload))

        if log_request_bodies and body_bytes:
            log_data["body"] = (
                _scrub(payload)
                if payload is not None
                else body_bytes.decode("utf-8", errors="replace")
            )

        response.headers["X-Request-Id"] = request_id

        access_logger.info(json.dumps(log_data, default=str))
        return response


def _rotating_handler(
    path: str, retention_days: int, rotate_utc: bool, formatter: logging.Formatter
) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        path, when="midnight", backupCount=retention_days, utc=rotate_utc
    )
    handler.setFormatter(formatter)
    return handler


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise application and access loggers."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    log_json = os.getenv("LOG_JSON", "false").lower() == "true"
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)
    formatter = _get_formatter(log_json)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(
            _rotating_handler(
                os.path.join(log_dir, "app.log"), retention_days, rotate_utc, formatter
            )
        )
    app_logger.setLevel(log_level)

    # Replaced on every call so a new LOG_DIR takes effect.
    access_logger = logging.getLogger("uvicorn.access")
    access_logger.handlers.clear()
    access_logger.addHandler(
        _rotating_handler(
            os.path.join(log_dir, "access.log"), retention_days, rotate_utc, formatter
        )
    )
    access_logger.setLevel(log_level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)
