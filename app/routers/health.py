"""
Health check endpoints for diagnosing service dependencies.
"""
from fastapi import APIRouter, Depends

from app.config import get_settings, Settings

router = APIRouter(
    prefix="/health",
    tags=["health"],
)

SERVICE_VERSION = "1.0.0"


@router.get("")
async def health_check():
    """Liveness probe for Cloud Run."""
    return {"status": "healthy", "version": SERVICE_VERSION}


@router.get("/dependencies")
async def health_check_dependencies(settings: Settings = Depends(get_settings)):
    """
    Report which integrations are configured. Does not call them; a missing
    key here explains silently skipped writes or emails.
    """
    checks = {
        "supabase": bool(settings.supabase_url and settings.supabase_service_role_key),
        "resend": bool(settings.resend_api_key),
        "bry_ar": bool(settings.bry_ar_client_id and settings.bry_ar_client_secret),
        "admin_secret": bool(settings.admin_api_secret),
    }
    status = "healthy" if checks["supabase"] else "degraded"
    return {
        "status": status,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "bry_environment": settings.bry_environment,
        "checks": checks,
    }
