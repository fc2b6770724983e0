"""
Inbound webhooks.

BRy AR posts certificate request status changes here. The response is
always {"code": 200, "status": "success"} unless the body cannot be
processed at all, so BRy does not redeliver on our own internal failures.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.certificates.notifications import NotificationDispatcher
from app.certificates.store import CertificateRequestStore
from app.certificates.webhook import CertificateWebhookHandler
from app.config import get_settings, Settings, CORS_ALLOW_HEADERS
from app.email import get_email_service, EmailService
from app.models import WebhookAck
from app.supabase_client import get_supabase_client, SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["webhooks"],
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
}


def get_webhook_handler(
    supabase: SupabaseClient = Depends(get_supabase_client),
    email_service: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
) -> CertificateWebhookHandler:
    return CertificateWebhookHandler(
        store=CertificateRequestStore(supabase, settings),
        dispatcher=NotificationDispatcher(email_service, settings),
    )


@router.options("/bry-ar", include_in_schema=False)
async def bry_ar_webhook_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post(
    "/bry-ar",
    response_model=WebhookAck,
    response_model_exclude_none=True,
    summary="BRy AR certificate request status webhook",
)
async def bry_ar_webhook(
    request: Request,
    handler: CertificateWebhookHandler = Depends(get_webhook_handler),
):
    try:
        payload = await request.json()
        await handler.handle(payload)
    except Exception as e:
        logger.error(f"BRy AR webhook processing error: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=WebhookAck(code=500, status="error", message=str(e)).model_dump(),
            headers=CORS_HEADERS,
        )

    return JSONResponse(
        content=WebhookAck().model_dump(exclude_none=True),
        headers=CORS_HEADERS,
    )
