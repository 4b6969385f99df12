"""Inbound pipeline - reconcile every event of a webhook delivery.

For each normalized event, in payload order:

1. open one store session (one transaction)
2. resolve the owning business from the platform account
3. find or create the customer
4. find or create the chat and append the message
5. commit, then maybe send an auto-reply

A failure in steps 1-5 rolls back that event only. The delivery as a whole
never fails because of a single event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sellio.infra.store import SessionFactory, StoreError
from sellio.messaging.graph_client import PlatformClient
from sellio.messaging.models import InboundMessage
from sellio.messaging.normalizer import normalize
from sellio.observability.correlation import (
    event_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from sellio.observability.logging import get_logger
from sellio.observability.redaction import hash_identifier, id_prefix, safe_log_context

from .auto_reply import maybe_reply
from .chats import reconcile
from .connections import get_connection
from .errors import InboundProcessingError, TenantResolutionError
from .identity import resolve_customer

logger = get_logger(__name__)


@dataclass
class DeliveryReport:
    """Per-delivery counters, logged once the delivery is done."""

    received: int = 0
    processed: int = 0
    duplicates: int = 0
    unmatched: int = 0
    failed: int = 0
    auto_replies: int = 0
    chat_ids: list[str] = field(default_factory=list)


def _phone_for(inbound: InboundMessage) -> str | None:
    if inbound.platform != "whatsapp":
        return None
    digits = inbound.external_sender_id.lstrip("+")
    return f"+{digits}" if digits else None


def process_event(
    inbound: InboundMessage,
    *,
    session_factory: SessionFactory,
    client: PlatformClient,
    report: DeliveryReport,
) -> None:
    """Reconcile one event and update the report.

    Raises:
        InboundProcessingError: If the event could not be recorded.
    """
    with session_factory() as store:
        connection = get_connection(store, inbound.platform, inbound.account_id)
        customer = resolve_customer(
            store,
            connection.business_id,
            inbound.platform,
            inbound.external_sender_id,
            inbound.external_sender_display_name,
            phone=_phone_for(inbound),
            platform_user_id=inbound.reply_to_id,
        )
        outcome = reconcile(store, customer, inbound)

    report.chat_ids.append(outcome.chat.id)
    if not outcome.created:
        report.duplicates += 1
        logger.info(
            "duplicate message ignored",
            extra={
                "extra_fields": safe_log_context(
                    platform=inbound.platform,
                    message_id_prefix=id_prefix(inbound.platform_message_id),
                )
            },
        )
        return

    report.processed += 1
    logger.info(
        "inbound message recorded",
        extra={
            "extra_fields": safe_log_context(
                platform=inbound.platform,
                sender_hash=hash_identifier(inbound.external_sender_id),
                message_type=inbound.message_type,
                text_len=len(inbound.text),
                unread_count=outcome.chat.unread_count,
            )
        },
    )

    if maybe_reply(session_factory, client, connection, outcome.chat, customer, inbound.text):
        report.auto_replies += 1


def process_messages(
    messages: list[InboundMessage],
    *,
    session_factory: SessionFactory,
    client: PlatformClient,
) -> DeliveryReport:
    """Reconcile already-normalized events, isolating failures per event."""
    report = DeliveryReport(received=len(messages))

    for index, inbound in enumerate(messages):
        token = set_correlation_id(
            event_correlation_id(inbound.platform, inbound.platform_message_id, index)
        )
        try:
            process_event(inbound, session_factory=session_factory, client=client, report=report)
        except TenantResolutionError as e:
            report.unmatched += 1
            logger.warning(
                "no connected business for inbound event",
                extra={
                    "extra_fields": safe_log_context(
                        platform=inbound.platform,
                        account_hash=hash_identifier(inbound.account_id),
                        error=str(e),
                    )
                },
            )
        except (InboundProcessingError, StoreError) as e:
            report.failed += 1
            logger.error(
                "inbound event failed",
                extra={
                    "extra_fields": safe_log_context(
                        platform=inbound.platform,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                },
            )
        except Exception:
            # Always ack the delivery; the event is logged for follow-up.
            report.failed += 1
            logger.exception(
                "unexpected error processing inbound event",
                extra={"extra_fields": safe_log_context(platform=inbound.platform, index=index)},
            )
        finally:
            reset_correlation_id(token)

    return report


def process_delivery(
    platform: str,
    payload: Any,
    *,
    session_factory: SessionFactory,
    client: PlatformClient,
) -> DeliveryReport:
    """Normalize a webhook body and reconcile all of its events.

    Raises:
        NormalizationError: If the body as a whole is unusable.
    """
    messages = normalize(platform, payload)
    report = process_messages(messages, session_factory=session_factory, client=client)

    logger.info(
        "webhook delivery processed",
        extra={
            "extra_fields": safe_log_context(
                platform=platform,
                received=report.received,
                processed=report.processed,
                duplicates=report.duplicates,
                unmatched=report.unmatched,
                failed=report.failed,
                auto_replies=report.auto_replies,
            )
        },
    )
    return report
