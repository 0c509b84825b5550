"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

from dotenv import load_dotenv

__all__ = [
    "ConfigurationError",
    "Settings",
    "get_settings",
    "reset_settings_cache",
]

DEFAULT_BACKEND_URL = "https://bloxbeam-backend.vercel.app"


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing."""


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _optional(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


@dataclasses.dataclass(frozen=True)
class Settings:
    """Everything the orchestrator needs to talk to Discord and the backend."""

    bot_token: str
    client_id: str
    guild_id: str
    webhook_secret: str
    backend_url: str = DEFAULT_BACKEND_URL
    public_key: str | None = None
    staff_role_id: str | None = None
    claim_channel_id: str | None = None
    claim_channel_name: str = "claim-here"
    order_log_channel_name: str = "order-saved"
    staff_notify_channel_name: str = "new-orders"
    dashboard_category_name: str = "Dashboard"
    keepalive_interval_seconds: float = 60.0
    archive_grace_seconds: float = 10.0
    staff_add_delay_seconds: float = 0.1
    staff_dm_delay_seconds: float = 0.2
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    http_timeout_seconds: float = 15.0
    brand_name: str = "BloxBeam"
    store_url: str = "https://bloxbeam.com"
    port: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment.

        Raises:
            ConfigurationError: If the bot token, client id or server id is
                missing.
        """

        bot_token = _optional("DISCORD_BOT_TOKEN") or ""
        client_id = _optional("DISCORD_CLIENT_ID") or ""
        guild_id = _optional("DISCORD_SERVER_ID") or ""
        missing = [
            name
            for name, value in (
                ("DISCORD_BOT_TOKEN", bot_token),
                ("DISCORD_CLIENT_ID", client_id),
                ("DISCORD_SERVER_ID", guild_id),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Environment variable(s) {', '.join(missing)} must be set."
            )
        port = os.getenv("PORT") or os.getenv("WEBHOOK_PORT") or "5000"
        return cls(
            bot_token=bot_token,
            client_id=client_id,
            guild_id=guild_id,
            webhook_secret=_optional("INTERNAL_WEBHOOK_SECRET") or bot_token,
            backend_url=(os.getenv("BACKEND_URL") or DEFAULT_BACKEND_URL).rstrip("/"),
            public_key=_optional("DISCORD_PUBLIC_KEY"),
            staff_role_id=_optional("DISCORD_STAFF_ROLE_ID"),
            claim_channel_id=_optional("DISCORD_CLAIM_HERE_CHANNEL_ID"),
            claim_channel_name=os.getenv("CLAIM_CHANNEL_NAME", "claim-here"),
            order_log_channel_name=os.getenv("ORDER_LOG_CHANNEL_NAME", "order-saved"),
            staff_notify_channel_name=os.getenv("STAFF_NOTIFY_CHANNEL_NAME", "new-orders"),
            dashboard_category_name=os.getenv("DASHBOARD_CATEGORY_NAME", "Dashboard"),
            keepalive_interval_seconds=_float("KEEPALIVE_INTERVAL_SECONDS", 60.0),
            archive_grace_seconds=_float("ARCHIVE_GRACE_SECONDS", 10.0),
            staff_add_delay_seconds=_float("STAFF_ADD_DELAY_SECONDS", 0.1),
            staff_dm_delay_seconds=_float("STAFF_DM_DELAY_SECONDS", 0.2),
            retry_max_attempts=_int("RETRY_MAX_ATTEMPTS", 3),
            retry_base_delay_seconds=_float("RETRY_BASE_DELAY_SECONDS", 1.0),
            http_timeout_seconds=_float("HTTP_TIMEOUT_SECONDS", 15.0),
            brand_name=os.getenv("BRAND_NAME", "BloxBeam"),
            store_url=os.getenv("STORE_URL", "https://bloxbeam.com"),
            port=int(port),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process, reading ``.env`` if present."""

    load_dotenv()
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
