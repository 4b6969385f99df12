"""Outbound messaging through the Meta Graph API.

Security: NEVER log recipient ids or text. Only log hashes and lengths.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Protocol

import requests

from sellio.observability.correlation import get_correlation_id
from sellio.observability.logging import get_logger
from sellio.observability.redaction import hash_identifier, safe_log_context
from sellio.settings import Settings, get_settings

from .models import PlatformConnection, SendResult

logger = get_logger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"

# Delay between the first attempt and the retry (seconds)
RETRY_DELAY = 0.2


class OutboundSendError(Exception):
    """Raised when a message could not be delivered to the platform."""

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class PlatformClient(Protocol):
    def send_message(
        self, connection: PlatformConnection, recipient_id: str, text: str
    ) -> SendResult: ...


def build_request(
    connection: PlatformConnection,
    recipient_id: str,
    text: str,
    api_version: str,
) -> tuple[str, dict[str, Any]]:
    """Build Graph API URL and JSON body for a text message.

    Returns:
        Tuple of (url, payload).
    """
    url = f"{GRAPH_BASE_URL}/{api_version}/{connection.account_id}/messages"

    if connection.platform == "whatsapp":
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient_id.lstrip("+"),
            "type": "text",
            "text": {"body": text},
        }
    elif connection.platform in ("instagram", "facebook"):
        payload = {
            "recipient": {"id": recipient_id},
            "messaging_type": "RESPONSE",
            "message": {"text": text},
        }
    else:
        raise OutboundSendError(f"platform {connection.platform} has no outbound API")

    return url, payload


def extract_message_id(platform: str, data: Any) -> str | None:
    """Pull the platform message id out of a Graph API send response."""
    if not isinstance(data, dict):
        return None
    if platform == "whatsapp":
        messages = data.get("messages")
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            return messages[0].get("id")
        return None
    return data.get("message_id")


class GraphApiClient:
    """Platform client for WhatsApp Cloud API, Instagram and Messenger sends.

    Each attempt is bounded by `timeout`. Network errors, timeouts and 5xx
    responses are retried `max_retries` times; 4xx responses fail at once.
    """

    def __init__(
        self,
        *,
        api_version: str,
        timeout: float,
        max_retries: int,
        session: requests.Session | None = None,
    ):
        self._api_version = api_version
        self._timeout = timeout
        self._max_retries = max_retries
        # None: one-shot requests.post per attempt
        self._session = session

    def _do_request(self, url: str, payload: dict[str, Any], access_token: str) -> Any:
        """Execute HTTP POST request. Raises on error."""
        poster = self._session or requests
        response = poster.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self._timeout,
        )
        response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            return None

    def send_message(
        self, connection: PlatformConnection, recipient_id: str, text: str
    ) -> SendResult:
        """Send a text message to a customer.

        Args:
            connection: Business account to send from (carries the token).
            recipient_id: Platform id of the customer. NEVER logged.
            text: Message text. NEVER logged.

        Raises:
            OutboundSendError: On missing credentials or delivery failure after retry.
        """
        if not connection.access_token:
            raise OutboundSendError("connection has no access token")

        url, payload = build_request(connection, recipient_id, text, self._api_version)

        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            platform=connection.platform,
            to_hash=hash_identifier(recipient_id),
            text_len=len(text),
        )
        logger.info("sending outbound message", extra={"extra_fields": log_ctx})

        for attempt in range(self._max_retries + 1):
            try:
                data = self._do_request(url, payload, connection.access_token)
            except requests.RequestException as e:
                status_code = e.response.status_code if e.response is not None else None
                is_5xx = status_code is not None and 500 <= status_code < 600
                is_network = isinstance(e, (requests.ConnectionError, requests.Timeout))
                retryable = is_5xx or is_network

                if attempt < self._max_retries and retryable:
                    logger.warning(
                        "outbound send failed, retrying",
                        extra={
                            "extra_fields": {
                                **log_ctx,
                                **safe_log_context(attempt=attempt, error_type=type(e).__name__),
                            }
                        },
                    )
                    time.sleep(RETRY_DELAY)
                    continue

                logger.error(
                    "outbound send failed",
                    extra={
                        "extra_fields": {
                            **log_ctx,
                            **safe_log_context(
                                attempt=attempt,
                                error_type=type(e).__name__,
                                status_code=status_code,
                            ),
                        }
                    },
                )
                raise OutboundSendError(
                    f"{connection.platform} send failed: {type(e).__name__}",
                    status_code=status_code,
                    retryable=retryable,
                ) from e

            message_id = extract_message_id(connection.platform, data)
            logger.info(
                "outbound message sent",
                extra={"extra_fields": {**log_ctx, **safe_log_context(attempt=attempt)}},
            )
            return SendResult(message_id=message_id)

        # range() always runs at least once
        raise OutboundSendError("no send attempt made")


class StubPlatformClient:
    """Client for test mode: records sends instead of calling the Graph API."""

    def __init__(self) -> None:
        self.sent: list[tuple[PlatformConnection, str, str]] = []

    def send_message(
        self, connection: PlatformConnection, recipient_id: str, text: str
    ) -> SendResult:
        self.sent.append((connection, recipient_id, text))
        logger.info(
            "outbound message recorded by stub client",
            extra={
                "extra_fields": safe_log_context(
                    platform=connection.platform,
                    to_hash=hash_identifier(recipient_id),
                    text_len=len(text),
                )
            },
        )
        return SendResult(message_id=f"stub.{uuid.uuid4().hex}")


def build_platform_client(settings: Settings | None = None) -> PlatformClient:
    """Build the platform client selected by OUTBOUND_MODE."""
    settings = settings or get_settings()
    if settings.outbound_mode == "stub":
        return StubPlatformClient()
    return GraphApiClient(
        api_version=settings.graph_api_version,
        timeout=settings.outbound_timeout,
        max_retries=settings.outbound_max_retries,
    )
