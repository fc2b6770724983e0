"""
Certificate request status API, consumed by the client status poller.
"""
import logging

from fastapi import APIRouter, Depends, Path, Request

from app.auth import get_client_ip, verify_admin_secret
from app.bry.client import BryArClient, get_bry_client
from app.certificates.sync import CertificateSyncService
from app.certificates.webhook import CertificateWebhookHandler
from app.exceptions import NotFoundError, RateLimitException
from app.models import (
    CertificateRequest,
    CertificateStatusResponse,
    SyncRequest,
    SyncResponse,
)
from app.routers.webhooks import get_webhook_handler
from app.supabase_client import get_supabase_client, SupabaseClient
from app.utils.rate_limiter import get_sync_rate_limiter, RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/certificate-requests",
    tags=["certificates"],
    dependencies=[Depends(verify_admin_secret)],
)


def get_sync_service(
    handler: CertificateWebhookHandler = Depends(get_webhook_handler),
    bry_client: BryArClient = Depends(get_bry_client),
) -> CertificateSyncService:
    return CertificateSyncService(handler, bry_client)


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Reconcile certificate requests with BRy AR",
)
async def sync_certificate_requests(
    body: SyncRequest,
    request: Request,
    service: CertificateSyncService = Depends(get_sync_service),
    limiter: RateLimiter = Depends(get_sync_rate_limiter),
):
    """
    Fetch the current BRy state of each protocol and apply it locally.
    `changed` is true for every request whose stored status moved.
    """
    allowed, retry_after = limiter.is_allowed(get_client_ip(request))
    if not allowed:
        raise RateLimitException(retry_after)

    logger.info(f"Status sync requested for {len(body.protocols)} protocol(s)")
    results = await service.sync(body.protocols)
    return SyncResponse(results=results)


@router.get(
    "/{protocol}/status",
    response_model=CertificateStatusResponse,
    summary="Current stored status of a certificate request",
)
async def get_certificate_status(
    protocol: str = Path(..., min_length=1, max_length=100),
    supabase: SupabaseClient = Depends(get_supabase_client),
):
    row = supabase.get_certificate_request(protocol)
    if not row:
        raise NotFoundError("Certificate request", protocol)

    cert_request = CertificateRequest(**row)
    return CertificateStatusResponse(
        protocol=protocol,
        status=cert_request.status,
        certificate_issued=bool(cert_request.certificate_issued),
        emission_url=cert_request.emission_url,
        rejection_reason=cert_request.rejection_reason,
        updated_at=cert_request.updated_at,
    )
