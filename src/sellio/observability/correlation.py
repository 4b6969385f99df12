"""Correlation ID management for webhook request tracing."""

import uuid
from contextvars import ContextVar, Token

# One value per request; visible to code running in the request's threadpool.
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    """Set correlation ID in context."""
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    """Reset correlation ID to previous value."""
    correlation_id_var.reset(token)


def event_correlation_id(platform: str, platform_message_id: str | None, index: int) -> str:
    """Derive a child correlation ID for one event inside a delivery.

    Keeps the request ID as prefix so every event of a batch can still be
    grouped by delivery.
    """
    parent = get_correlation_id() or "no-request"
    suffix = platform_message_id[-12:] if platform_message_id else f"idx{index}"
    return f"{parent}:{platform}:{suffix}"
