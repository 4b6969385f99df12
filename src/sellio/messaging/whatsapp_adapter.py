"""WhatsApp Business (Cloud API) adapter - normalize webhook payloads.

Meta payload structure:
{
  "object": "whatsapp_business_account",
  "entry": [{
    "changes": [{
      "field": "messages",
      "value": {
        "metadata": {"phone_number_id": "..."},
        "contacts": [{"wa_id": "PHONE", "profile": {"name": "..."}}],
        "messages": [{"from": "PHONE", "id": "wamid...", "timestamp": "1704067200",
                      "type": "text", "text": {"body": "..."}}],
        "statuses": [...]
      }
    }]
  }]
}
"""

from __future__ import annotations

from typing import Any, Iterator

from sellio.infra.time import from_epoch
from sellio.observability.logging import get_logger
from sellio.observability.redaction import safe_log_context

from .errors import NormalizationError
from .models import InboundMessage, MessageType

OBJECT_TYPE = "whatsapp_business_account"

logger = get_logger(__name__)

_MEDIA_LABELS: dict[str, str] = {
    "image": "[Image]",
    "document": "[Document]",
    "audio": "[Audio]",
    "video": "[Video]",
    "sticker": "[Sticker]",
}


def describe_content(message: dict[str, Any]) -> tuple[str, MessageType]:
    """Render a WhatsApp message as chat text and classify it.

    Returns:
        Tuple of (content, message_type).
    """
    kind = str(message.get("type") or "unknown")
    body = message.get(kind) if isinstance(message.get(kind), dict) else {}

    if kind == "text":
        return str(body.get("body") or ""), "text"

    if kind in _MEDIA_LABELS:
        label = _MEDIA_LABELS[kind]
        if kind == "document":
            detail = body.get("filename") or body.get("caption")
        else:
            detail = body.get("caption")
        return (f"{label} {detail}" if detail else label), "media"

    if kind == "location":
        detail = body.get("name") or body.get("address")
        return (f"[Location] {detail}" if detail else "[Location]"), "other"

    return f"[Unsupported: {kind}]", "other"


def _contact_names(value: dict[str, Any]) -> dict[str, str]:
    names: dict[str, str] = {}
    for contact in value.get("contacts") or []:
        if not isinstance(contact, dict):
            continue
        wa_id = contact.get("wa_id")
        profile = contact.get("profile") if isinstance(contact.get("profile"), dict) else {}
        name = profile.get("name")
        if wa_id and name:
            names[str(wa_id)] = str(name)
    return names


def _message_values(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    entries = payload.get("entry")
    if not isinstance(entries, list):
        raise NormalizationError("entry must be a list")

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            if not isinstance(change, dict):
                continue
            if change.get("field", "messages") != "messages":
                continue
            value = change.get("value")
            if isinstance(value, dict):
                yield value


def _to_inbound(
    message: dict[str, Any],
    account_id: str,
    names: dict[str, str],
) -> InboundMessage:
    sender = message.get("from")
    if not sender or not isinstance(sender, (str, int)):
        raise NormalizationError("missing sender")
    sender = str(sender)

    content, message_type = describe_content(message)
    message_id = message.get("id")
    raw_timestamp = message.get("timestamp")

    return InboundMessage(
        platform="whatsapp",
        account_id=account_id,
        external_sender_id=sender,
        external_sender_display_name=names.get(sender),
        text=content,
        raw_timestamp=raw_timestamp,
        raw_message_type=str(message.get("type") or "unknown"),
        message_type=message_type,
        platform_message_id=str(message_id) if message_id else None,
        sent_at=from_epoch(raw_timestamp),
        reply_to_id=sender,
    )


def normalize(payload: dict[str, Any], default_account_id: str | None = None) -> list[InboundMessage]:
    """Normalize a WhatsApp webhook delivery.

    Messages are returned in payload order. Messages without a sender are
    skipped and logged. Status-only changes (delivery receipts) yield nothing.

    Args:
        payload: Raw webhook body.
        default_account_id: phone_number_id to use when a change carries no
            metadata (single-number deployments, WHATSAPP_PHONE_NUMBER_ID).

    Raises:
        NormalizationError: If the payload as a whole is not a WhatsApp delivery.
    """
    if payload.get("object") != OBJECT_TYPE:
        raise NormalizationError("not a whatsapp_business_account payload")

    result: list[InboundMessage] = []
    for value in _message_values(payload):
        messages = value.get("messages") or []
        if not isinstance(messages, list) or not messages:
            continue

        metadata = value.get("metadata") if isinstance(value.get("metadata"), dict) else {}
        account_id = metadata.get("phone_number_id") or default_account_id
        if not account_id:
            logger.warning(
                "whatsapp change without phone_number_id skipped",
                extra={"extra_fields": safe_log_context(messages=messages)},
            )
            continue

        names = _contact_names(value)
        for index, message in enumerate(messages):
            if not isinstance(message, dict):
                continue
            try:
                result.append(_to_inbound(message, str(account_id), names))
            except NormalizationError as e:
                logger.warning(
                    "malformed whatsapp message skipped",
                    extra={"extra_fields": safe_log_context(index=index, error=str(e))},
                )

    return result
