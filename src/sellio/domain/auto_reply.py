"""Auto-Reply Trigger - keyword rules answered through the platform client.

Rules are checked in order and the first keyword found (case-insensitive
substring) wins. A message matching nothing gets the default reply.

A reply is recorded only after the platform accepted it. Send failures are
logged and leave no trace in the chat; the inbound message that triggered the
reply is already committed at that point.
"""

from __future__ import annotations

from dataclasses import dataclass

from sellio.infra.store import SessionFactory, StoreError
from sellio.messaging.graph_client import OutboundSendError, PlatformClient
from sellio.messaging.models import Chat, Customer, Message, PlatformConnection
from sellio.observability.logging import get_logger
from sellio.observability.redaction import safe_log_context

from .chats import record_outbound
from .errors import ReconciliationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReplyRule:
    name: str
    keywords: tuple[str, ...]
    template: str


RULES: tuple[ReplyRule, ...] = (
    ReplyRule(
        name="greeting",
        keywords=("hello", "hey", "good morning", "good afternoon", "good evening"),
        template="Hello! Welcome to Sellio. How can we help you today?",
    ),
    ReplyRule(
        name="price",
        keywords=("price", "cost", "how much"),
        template="For pricing information, please visit our website or contact our sales team.",
    ),
    ReplyRule(
        name="order",
        keywords=("order", "buy", "purchase"),
        template=(
            "Thanks for your interest in ordering! Tell us which product and quantity "
            "you'd like and we'll get it started."
        ),
    ),
    ReplyRule(
        name="delivery",
        keywords=("delivery", "deliver", "shipping"),
        template=(
            "We deliver nationwide. Delivery usually takes 2-5 business days "
            "after your order is confirmed."
        ),
    ),
)

DEFAULT_RULE = ReplyRule(
    name="default",
    keywords=(),
    template="Thank you for your message! We'll get back to you soon.",
)


def select_reply(content: str | None) -> ReplyRule:
    """Pick the reply rule for a message."""
    lowered = (content or "").lower()
    for rule in RULES:
        if any(keyword in lowered for keyword in rule.keywords):
            return rule
    return DEFAULT_RULE


def maybe_reply(
    session_factory: SessionFactory,
    client: PlatformClient,
    connection: PlatformConnection,
    chat: Chat,
    customer: Customer,
    content: str | None,
) -> Message | None:
    """Send and record an auto-reply if the connection has auto-replies on.

    Returns:
        The recorded auto message, or None if nothing was sent or recorded.
    """
    if not connection.auto_reply_enabled:
        return None

    rule = select_reply(content)
    log_ctx = safe_log_context(
        platform=connection.platform,
        chat_id=chat.id,
        rule=rule.name,
    )

    try:
        result = client.send_message(connection, customer.reply_address, rule.template)
    except OutboundSendError as e:
        logger.warning(
            "auto-reply not delivered",
            extra={
                "extra_fields": {
                    **log_ctx,
                    **safe_log_context(error=str(e), status_code=e.status_code),
                }
            },
        )
        return None

    try:
        with session_factory() as store:
            message = record_outbound(
                store,
                chat.id,
                rule.template,
                sender_type="auto",
                platform_message_id=result.message_id,
            )
    except (ReconciliationError, StoreError):
        logger.exception(
            "auto-reply delivered but not recorded",
            extra={"extra_fields": log_ctx},
        )
        return None

    logger.info("auto-reply sent", extra={"extra_fields": log_ctx})
    return message
