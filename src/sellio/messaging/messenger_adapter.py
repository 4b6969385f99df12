"""Messenger-format adapter for Instagram Messaging and Facebook Messenger.

Both platforms deliver the same envelope under a different object tag:
{
  "object": "instagram" | "page",
  "entry": [{
    "id": "...",
    "time": 1704067200000,
    "messaging": [{
      "sender": {"id": "...", "username": "..."},
      "recipient": {"id": "...", "username": "..."},
      "timestamp": 1704067200000,
      "message": {"mid": "...", "text": "...", "attachments": [...]}
    }]
  }]
}

Account and sender keys differ per platform:
- instagram: recipient.username / sender.username
- facebook: recipient.id (page id) / sender.id (PSID)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sellio.infra.time import from_epoch
from sellio.observability.logging import get_logger
from sellio.observability.redaction import safe_log_context

from .errors import NormalizationError
from .models import InboundMessage, MessageType, Platform

logger = get_logger(__name__)


@dataclass(frozen=True)
class MessengerDialect:
    platform: Platform
    object_type: str
    identity_key: str  # field of sender/recipient used as the external key


INSTAGRAM = MessengerDialect(platform="instagram", object_type="instagram", identity_key="username")
FACEBOOK = MessengerDialect(platform="facebook", object_type="page", identity_key="id")

_ATTACHMENT_LABELS: dict[str, str] = {
    "image": "[Image]",
    "video": "[Video]",
    "audio": "[Audio]",
    "file": "[File]",
}


def describe_message(message: dict[str, Any]) -> tuple[str, MessageType]:
    """Render a Messenger message as chat text and classify it."""
    text = message.get("text")
    attachments = message.get("attachments") or []
    if not isinstance(attachments, list):
        attachments = []

    if text:
        return str(text), "text"

    labels = []
    for attachment in attachments:
        if isinstance(attachment, dict):
            kind = str(attachment.get("type") or "")
            labels.append(_ATTACHMENT_LABELS.get(kind, f"[{kind or 'Attachment'}]"))
    if labels:
        return " ".join(labels), "media"

    return "[Unsupported message]", "other"


def _identity(party: Any, key: str) -> str | None:
    if not isinstance(party, dict):
        return None
    value = party.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _to_inbound(event: dict[str, Any], dialect: MessengerDialect) -> InboundMessage | None:
    message = event.get("message")
    sender = event.get("sender")
    recipient = event.get("recipient")
    if not message or not sender or not recipient or not isinstance(message, dict):
        raise NormalizationError("event missing message, sender or recipient")

    if message.get("is_echo"):
        # Our own outbound message reflected back by the platform.
        return None

    external_id = _identity(sender, dialect.identity_key)
    account_id = _identity(recipient, dialect.identity_key)
    if not external_id or not account_id:
        raise NormalizationError(f"event missing sender/recipient {dialect.identity_key}")

    content, message_type = describe_message(message)
    raw_kind = "text"
    if message_type != "text":
        attachments = message.get("attachments") or [{}]
        first = attachments[0] if isinstance(attachments, list) and attachments else {}
        raw_kind = str(first.get("type") or "unknown") if isinstance(first, dict) else "unknown"
    raw_timestamp = event.get("timestamp")
    mid = message.get("mid")
    display_name = f"@{external_id}" if dialect.platform == "instagram" else None

    return InboundMessage(
        platform=dialect.platform,
        account_id=account_id,
        external_sender_id=external_id,
        external_sender_display_name=display_name,
        text=content,
        raw_timestamp=raw_timestamp,
        raw_message_type=raw_kind,
        message_type=message_type,
        platform_message_id=str(mid) if mid else None,
        sent_at=from_epoch(raw_timestamp, millis=True),
        reply_to_id=_identity(sender, "id"),
    )


def normalize(payload: dict[str, Any], dialect: MessengerDialect) -> list[InboundMessage]:
    """Normalize an Instagram or Facebook delivery in array order.

    Events missing message, sender or recipient are skipped and logged; echo
    events are dropped silently.

    Raises:
        NormalizationError: If the payload as a whole does not match the dialect.
    """
    if payload.get("object") != dialect.object_type:
        raise NormalizationError(f"not a {dialect.object_type} payload")

    entries = payload.get("entry")
    if not isinstance(entries, list):
        raise NormalizationError("entry must be a list")

    result: list[InboundMessage] = []
    for entry_index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        for event_index, event in enumerate(entry.get("messaging") or []):
            if not isinstance(event, dict):
                continue
            try:
                inbound = _to_inbound(event, dialect)
            except NormalizationError as e:
                logger.warning(
                    "malformed messaging event skipped",
                    extra={
                        "extra_fields": safe_log_context(
                            platform=dialect.platform,
                            entry=entry_index,
                            index=event_index,
                            error=str(e),
                        )
                    },
                )
                continue
            if inbound is not None:
                result.append(inbound)

    return result
