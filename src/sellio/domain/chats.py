"""Chat Reconciler - one chat per customer per platform, append-only messages.

Invariants:
- chats are unique on (business_id, platform, customer_id)
- messages are never modified after insert (except is_read)
- a platform message id is recorded at most once per chat; a redelivered
  event is a successful no-op and does not touch the chat
- unread_count only grows through customer messages, via SQL increment
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sellio.infra.store import Store, StoreError
from sellio.infra.time import utc_now
from sellio.messaging.models import Chat, Customer, InboundMessage, Message, MessageType, SenderType

from .errors import ReconciliationError

CHATS = "chats"
MESSAGES = "messages"

MESSAGE_ORDER = ("created_at", "recorded_at")


@dataclass(frozen=True)
class Reconciliation:
    """Result of reconciling one inbound message.

    `created` is False when the message was already recorded (redelivery).
    """

    chat: Chat
    message: Message
    created: bool


def get_or_create_chat(store: Store, customer: Customer) -> Chat:
    """Find or create the customer's chat on their platform."""
    now = utc_now()
    row, _ = store.upsert(
        CHATS,
        {
            "id": str(uuid.uuid4()),
            "business_id": customer.business_id,
            "customer_id": customer.id,
            "platform": customer.platform,
            "last_message": None,
            "unread_count": 0,
            "status": "active",
            "created_at": now,
            "updated_at": now,
        },
        conflict=("business_id", "platform", "customer_id"),
    )
    return Chat.from_row(row)


def _append(
    store: Store,
    chat_id: str,
    *,
    sender_type: SenderType,
    content: str,
    message_type: MessageType,
    is_read: bool,
    created_at: datetime,
    platform_message_id: str | None,
) -> tuple[Message, bool]:
    values = {
        "id": str(uuid.uuid4()),
        "chat_id": chat_id,
        "sender_type": sender_type,
        "content": content,
        "message_type": message_type,
        "is_read": is_read,
        "platform_message_id": platform_message_id,
        "created_at": created_at,
        "recorded_at": utc_now(),
    }
    if platform_message_id is None:
        return Message.from_row(store.insert(MESSAGES, values)), True

    row, created = store.upsert(MESSAGES, values, conflict=("chat_id", "platform_message_id"))
    return Message.from_row(row), created


def reconcile(store: Store, customer: Customer, inbound: InboundMessage) -> Reconciliation:
    """Record an inbound customer message in the customer's chat.

    Creates the chat on first contact, appends the message (deduplicated by
    platform message id) and updates last_message, updated_at and
    unread_count for new messages.

    Raises:
        ReconciliationError: On store failure.
    """
    try:
        chat = get_or_create_chat(store, customer)
        message, created = _append(
            store,
            chat.id,
            sender_type="customer",
            content=inbound.text,
            message_type=inbound.message_type,
            is_read=False,
            created_at=inbound.sent_at or utc_now(),
            platform_message_id=inbound.platform_message_id,
        )
        if not created:
            return Reconciliation(chat=chat, message=message, created=False)

        row = store.update(
            CHATS,
            {"id": chat.id},
            {"last_message": message.content, "updated_at": utc_now()},
            increments={"unread_count": 1},
        )
        if row is None:
            raise ReconciliationError("chat disappeared during update")
        return Reconciliation(chat=Chat.from_row(row), message=message, created=True)
    except StoreError as e:
        raise ReconciliationError(f"chat reconciliation failed: {e}") from e


def record_outbound(
    store: Store,
    chat_id: str,
    content: str,
    *,
    sender_type: SenderType = "business",
    platform_message_id: str | None = None,
) -> Message:
    """Record a message sent by the business (or by the auto-responder).

    Outbound messages count as read and do not change unread_count.

    Raises:
        ReconciliationError: On store failure.
    """
    try:
        message, created = _append(
            store,
            chat_id,
            sender_type=sender_type,
            content=content,
            message_type="text",
            is_read=True,
            created_at=utc_now(),
            platform_message_id=platform_message_id,
        )
        if created:
            store.update(CHATS, {"id": chat_id}, {"last_message": content, "updated_at": utc_now()})
        return message
    except StoreError as e:
        raise ReconciliationError(f"outbound message not recorded: {e}") from e


def list_messages(store: Store, chat_id: str, limit: int | None = None) -> list[Message]:
    """Messages of a chat in creation order."""
    rows = store.find_all(MESSAGES, {"chat_id": chat_id}, order_by=MESSAGE_ORDER, limit=limit)
    return [Message.from_row(row) for row in rows]


def get_chat(store: Store, chat_id: str) -> Chat | None:
    row = store.find_one(CHATS, {"id": chat_id})
    return Chat.from_row(row) if row else None
