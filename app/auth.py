"""
Service authentication for the certificate status API.

The BRy webhook is unauthenticated (BRy does not sign deliveries); the
status and sync endpoints require the shared X-Admin-Secret.
"""
import logging

from fastapi import Depends, Request

from app.config import get_settings, Settings
from app.exceptions import AuthenticationError
from app.utils.security import verify_shared_secret

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address, handling proxies and Cloud Run.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


async def verify_admin_secret(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> bool:
    """
    Verify admin API secret from X-Admin-Secret header.

    Without ADMIN_API_SECRET configured, requests are let through outside
    production only.
    """
    if not settings.admin_api_secret:
        if settings.environment == "production":
            logger.error("ADMIN_API_SECRET not configured")
            raise AuthenticationError("Admin authentication not configured")
        return True

    admin_secret = request.headers.get("X-Admin-Secret")
    if not admin_secret:
        raise AuthenticationError("Admin secret required")

    if not verify_shared_secret(admin_secret, settings.admin_api_secret):
        logger.warning("Admin secret mismatch")
        raise AuthenticationError("Invalid admin secret", status_code=403)

    return True
