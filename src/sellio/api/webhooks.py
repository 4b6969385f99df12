"""Shared webhook handling for the Meta platforms.

Ack policy:
- GET verification: 200 + hub.challenge on token match, 403 otherwise
- POST with a body that is not JSON: 500
- every other POST: 200, even if some or all events failed, because Meta
  redelivers the whole batch on non-2xx responses
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool

from sellio.domain.inbound import process_delivery
from sellio.infra.store import SessionFactory, postgres_session
from sellio.messaging.errors import NormalizationError, SignatureVerificationError
from sellio.messaging.graph_client import PlatformClient, build_platform_client
from sellio.messaging.signature import verify_signature
from sellio.observability.correlation import get_correlation_id
from sellio.observability.logging import get_logger
from sellio.observability.redaction import safe_log_context
from sellio.settings import get_settings

logger = get_logger(__name__)


def _get_session_factory() -> SessionFactory:
    """Get store session factory (allows test injection)."""
    return postgres_session


def _get_platform_client() -> PlatformClient:
    """Get outbound platform client (allows test injection)."""
    return build_platform_client()


def verify_subscription(
    platform: str,
    hub_mode: str | None,
    hub_verify_token: str | None,
    hub_challenge: str | None,
) -> Response:
    """Answer Meta's subscription handshake for one platform.

    An unconfigured verify token never matches.
    """
    expected_token = get_settings().verify_token_for(platform)

    if expected_token and hub_mode == "subscribe" and hub_verify_token == expected_token:
        logger.info(
            "webhook verification successful",
            extra={"extra_fields": safe_log_context(platform=platform, hub_mode=hub_mode)},
        )
        return Response(status_code=200, content=hub_challenge or "", media_type="text/plain")

    logger.warning(
        "webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                platform=platform,
                hub_mode=hub_mode or "missing",
                token_configured=bool(expected_token),
            )
        },
    )
    return Response(status_code=403, content="verification failed", media_type="text/plain")


async def handle_delivery(
    platform: str,
    request: Request,
    signature_header: str | None,
) -> Response:
    """Receive one webhook delivery and reconcile its events."""
    correlation_id = get_correlation_id()
    ok = Response(status_code=200, content="ok", media_type="text/plain")

    try:
        body_bytes = await request.body()
    except Exception:
        logger.warning(
            "failed to read request body",
            extra={"extra_fields": safe_log_context(platform=platform, correlationId=correlation_id)},
        )
        return ok

    app_secret = get_settings().meta_app_secret
    if app_secret:
        try:
            verify_signature(body_bytes, signature_header or "", app_secret)
        except SignatureVerificationError as e:
            logger.warning(
                "webhook signature verification failed",
                extra={"extra_fields": safe_log_context(platform=platform, error=str(e))},
            )
            # 200 so Meta does not keep redelivering a request we will never accept
            return ok

    try:
        payload: Any = json.loads(body_bytes)
    except ValueError:
        logger.error(
            "invalid json body",
            extra={"extra_fields": safe_log_context(platform=platform, body_len=len(body_bytes))},
        )
        return Response(status_code=500, content="invalid json", media_type="text/plain")

    try:
        await run_in_threadpool(
            process_delivery,
            platform,
            payload,
            session_factory=_get_session_factory(),
            client=_get_platform_client(),
        )
    except NormalizationError as e:
        logger.info(
            "webhook payload ignored",
            extra={"extra_fields": safe_log_context(platform=platform, reason=str(e))},
        )
    except Exception:
        logger.exception(
            "webhook processing failed",
            extra={"extra_fields": safe_log_context(platform=platform)},
        )

    return ok
