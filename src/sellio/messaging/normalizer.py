"""Platform Event Normalizer: one entry point for all webhook platforms."""

from __future__ import annotations

from typing import Any

from sellio.settings import get_settings

from . import messenger_adapter, whatsapp_adapter
from .errors import NormalizationError
from .models import InboundMessage


def normalize(platform: str, payload: Any) -> list[InboundMessage]:
    """Convert a webhook body into InboundMessages, in payload order.

    Args:
        platform: Platform that delivered the webhook.
        payload: Parsed JSON body.

    Returns:
        Normalized messages. Malformed individual events are skipped.

    Raises:
        NormalizationError: If the body as a whole cannot be read.
    """
    if not isinstance(payload, dict):
        raise NormalizationError("payload must be a JSON object")

    if platform == "whatsapp":
        default_account = get_settings().whatsapp_phone_number_id or None
        return whatsapp_adapter.normalize(payload, default_account_id=default_account)
    if platform == "instagram":
        return messenger_adapter.normalize(payload, messenger_adapter.INSTAGRAM)
    if platform == "facebook":
        return messenger_adapter.normalize(payload, messenger_adapter.FACEBOOK)

    raise NormalizationError(f"unsupported platform: {platform}")
