"""WhatsApp Business (Cloud API) webhook routes."""

from fastapi import APIRouter, Header, Query, Request, Response

from sellio.api import webhooks

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

PLATFORM = "whatsapp"


@router.get("")
async def whatsapp_webhook_verify(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
) -> Response:
    """Echo hub.challenge if hub.verify_token matches WHATSAPP_VERIFY_TOKEN."""
    return webhooks.verify_subscription(PLATFORM, hub_mode, hub_verify_token, hub_challenge)


@router.post("")
async def whatsapp_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
) -> Response:
    """Receive WhatsApp message notifications (object=whatsapp_business_account)."""
    return await webhooks.handle_delivery(PLATFORM, request, x_hub_signature_256)
