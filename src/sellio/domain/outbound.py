"""Business-initiated sends from the inbox.

The message is delivered through the platform first and recorded only after
the platform accepted it, so the chat never shows a reply the customer did
not get. Send failures propagate to the caller.
"""

from __future__ import annotations

from sellio.infra.store import SessionFactory
from sellio.messaging.graph_client import OutboundSendError, PlatformClient
from sellio.messaging.models import Message
from sellio.observability.logging import get_logger
from sellio.observability.redaction import safe_log_context

from .chats import get_chat, record_outbound
from .connections import connection_for_business
from .errors import ChatNotFoundError
from .identity import get_customer

logger = get_logger(__name__)


def send_business_message(
    session_factory: SessionFactory,
    client: PlatformClient,
    chat_id: str,
    text: str,
) -> Message:
    """Send `text` to the customer of a chat and record it as a business message.

    Args:
        session_factory: Store session factory.
        client: Platform client used for delivery.
        chat_id: Chat to reply in.
        text: Message text. NEVER logged.

    Returns:
        The recorded message.

    Raises:
        ValueError: If `text` is blank.
        ChatNotFoundError: If the chat or its customer does not exist.
        TenantResolutionError: If the business has no connected account on the chat's platform.
        OutboundSendError: If the platform did not accept the message.
        ReconciliationError: If the message was sent but could not be recorded.
    """
    content = (text or "").strip()
    if not content:
        raise ValueError("message text is required")

    with session_factory() as store:
        chat = get_chat(store, chat_id)
        if chat is None:
            raise ChatNotFoundError("chat not found")
        customer = get_customer(store, chat.customer_id)
        if customer is None:
            raise ChatNotFoundError("chat has no customer")
        connection = connection_for_business(store, chat.business_id, chat.platform)

    log_ctx = safe_log_context(platform=chat.platform, chat_id=chat.id, text_len=len(content))

    try:
        result = client.send_message(connection, customer.reply_address, content)
    except OutboundSendError as e:
        logger.warning(
            "business message not delivered",
            extra={"extra_fields": {**log_ctx, **safe_log_context(status_code=e.status_code)}},
        )
        raise

    with session_factory() as store:
        message = record_outbound(
            store,
            chat.id,
            content,
            sender_type="business",
            platform_message_id=result.message_id,
        )

    logger.info("business message sent", extra={"extra_fields": log_ctx})
    return message
