"""Runtime configuration loaded from environment variables.

Values are read on every call to `get_settings()` so that tests and operators
can change the environment without restarting the process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

DEFAULT_GRAPH_API_VERSION = "v18.0"
DEFAULT_OUTBOUND_TIMEOUT = 10.0
DEFAULT_OUTBOUND_MAX_RETRIES = 1

OutboundMode = Literal["live", "stub"]


@dataclass(frozen=True)
class Settings:
    """Service settings.

    Attributes:
        database_url: PostgreSQL DSN used by the store.
        whatsapp_verify_token: Token expected in WhatsApp hub.verify_token.
        instagram_verify_token: Token expected in Instagram hub.verify_token.
        facebook_verify_token: Token expected in Messenger hub.verify_token.
        meta_app_secret: App secret for X-Hub-Signature-256; empty disables the check.
        whatsapp_phone_number_id: Account key for WhatsApp payloads without metadata.
        graph_api_version: Graph API version used by the outbound client.
        outbound_timeout: Per-attempt timeout for outbound sends, in seconds.
        outbound_max_retries: Retries after the first attempt for transient failures.
        outbound_mode: "live" sends through the Graph API, "stub" records sends in memory.
    """

    database_url: str = ""
    whatsapp_verify_token: str = ""
    instagram_verify_token: str = ""
    facebook_verify_token: str = ""
    meta_app_secret: str = ""
    whatsapp_phone_number_id: str = ""
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    outbound_timeout: float = DEFAULT_OUTBOUND_TIMEOUT
    outbound_max_retries: int = DEFAULT_OUTBOUND_MAX_RETRIES
    outbound_mode: OutboundMode = "live"

    def verify_token_for(self, platform: str) -> str:
        """Return the configured webhook verify token for a platform."""
        return {
            "whatsapp": self.whatsapp_verify_token,
            "instagram": self.instagram_verify_token,
            "facebook": self.facebook_verify_token,
        }.get(platform, "")


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value >= 0 else default


def get_settings() -> Settings:
    """Build Settings from the current environment."""
    mode = os.environ.get("OUTBOUND_MODE", "live").strip().lower()
    if mode not in ("live", "stub"):
        mode = "live"

    return Settings(
        database_url=os.environ.get("DATABASE_URL", ""),
        whatsapp_verify_token=os.environ.get("WHATSAPP_VERIFY_TOKEN", ""),
        instagram_verify_token=os.environ.get("INSTAGRAM_VERIFY_TOKEN", ""),
        facebook_verify_token=os.environ.get("FACEBOOK_VERIFY_TOKEN", ""),
        meta_app_secret=os.environ.get("META_APP_SECRET", ""),
        whatsapp_phone_number_id=os.environ.get("WHATSAPP_PHONE_NUMBER_ID", ""),
        graph_api_version=os.environ.get("META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION),
        outbound_timeout=_float_env("OUTBOUND_TIMEOUT_SECONDS", DEFAULT_OUTBOUND_TIMEOUT),
        outbound_max_retries=_int_env("OUTBOUND_MAX_RETRIES", DEFAULT_OUTBOUND_MAX_RETRIES),
        outbound_mode=mode,  # type: ignore[arg-type]
    )
