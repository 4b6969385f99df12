"""Errors raised while reconciling one inbound event.

Each of these aborts only the event being processed; the rest of the webhook
delivery continues and the platform still receives 200.
"""


class InboundProcessingError(Exception):
    """Base class for per-event processing failures."""

    pass


class TenantResolutionError(InboundProcessingError):
    """No connected business owns the platform account the event was sent to."""

    pass


class IdentityResolutionError(InboundProcessingError):
    """Store failure while finding or creating the customer."""

    pass


class ReconciliationError(InboundProcessingError):
    """Store failure while appending the message or updating the chat."""

    pass


class ChatNotFoundError(Exception):
    """The chat (or its customer) a business message was addressed to does not exist."""

    pass
