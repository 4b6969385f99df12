"""Messaging models shared by the normalizer, the domain layer and the clients."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Mapping

Platform = Literal["whatsapp", "instagram", "facebook", "direct"]
SenderType = Literal["customer", "business", "auto"]
MessageType = Literal["text", "media", "other"]
CustomerStatus = Literal["active", "vip", "inactive"]
ChatStatus = Literal["active", "completed"]

# Platforms that deliver webhooks ("direct" customers are created by hand).
WEBHOOK_PLATFORMS: tuple[str, ...] = ("whatsapp", "instagram", "facebook")


@dataclass(frozen=True)
class InboundMessage:
    """Platform event normalized to a single shape.

    Transient: lives only for the duration of the webhook request. Contains
    PII (`external_sender_id`, display name, `text`), never log it directly.
    """

    platform: Platform
    account_id: str  # business side: phone_number_id, IG username or page id
    external_sender_id: str
    external_sender_display_name: str | None
    text: str
    raw_timestamp: Any
    raw_message_type: str
    message_type: MessageType
    platform_message_id: str | None = None
    sent_at: datetime | None = None
    # Address the Send API expects: IGSID on Instagram, PSID on Facebook,
    # wa_id on WhatsApp. Differs from external_sender_id on Instagram.
    reply_to_id: str | None = None


@dataclass(frozen=True)
class PlatformConnection:
    """A business's connected platform account."""

    id: str
    business_id: str
    platform: Platform
    account_id: str
    access_token: str
    auto_reply_enabled: bool = False
    connected: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PlatformConnection:
        return cls(
            id=str(row["id"]),
            business_id=str(row["business_id"]),
            platform=row["platform"],
            account_id=row["account_id"],
            access_token=row.get("access_token") or "",
            auto_reply_enabled=bool(row.get("auto_reply_enabled", False)),
            connected=bool(row.get("connected", True)),
        )


@dataclass(frozen=True)
class Customer:
    id: str
    business_id: str
    platform: Platform
    external_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    status: CustomerStatus = "active"
    platform_user_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Customer:
        return cls(
            id=str(row["id"]),
            business_id=str(row["business_id"]),
            platform=row["platform"],
            external_id=row["external_id"],
            name=row["name"],
            email=row.get("email"),
            phone=row.get("phone"),
            status=row.get("status") or "active",
            platform_user_id=row.get("platform_user_id"),
        )

    @property
    def reply_address(self) -> str:
        """Recipient id for outbound sends to this customer."""
        return self.platform_user_id or self.external_id


@dataclass(frozen=True)
class Chat:
    id: str
    business_id: str
    customer_id: str
    platform: Platform
    last_message: str | None
    unread_count: int
    status: ChatStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Chat:
        return cls(
            id=str(row["id"]),
            business_id=str(row["business_id"]),
            customer_id=str(row["customer_id"]),
            platform=row["platform"],
            last_message=row.get("last_message"),
            unread_count=int(row.get("unread_count") or 0),
            status=row.get("status") or "active",
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class Message:
    id: str
    chat_id: str
    sender_type: SenderType
    content: str
    message_type: MessageType
    is_read: bool
    created_at: datetime
    platform_message_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Message:
        return cls(
            id=str(row["id"]),
            chat_id=str(row["chat_id"]),
            sender_type=row["sender_type"],
            content=row["content"],
            message_type=row["message_type"],
            is_read=bool(row["is_read"]),
            created_at=row["created_at"],
            platform_message_id=row.get("platform_message_id"),
        )


@dataclass(frozen=True)
class SendResult:
    """Outcome of a successful outbound send."""

    message_id: str | None
