"""
Certificate Status Service - Main FastAPI Application
Keeps BRy AR certificate requests in sync and notifies applicants.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from app.config import get_settings, CORS_ALLOW_ORIGINS, CORS_ALLOW_HEADERS
from app.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)
from app.routers import certificates, health, webhooks
from app.routers.health import SERVICE_VERSION
from app.utils.logging import setup_logging, RequestIdMiddleware, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        environment=settings.environment,
        level=logging.DEBUG if settings.debug else logging.INFO,
    )
    logger.info(
        f"Starting Certificate Status Service v{SERVICE_VERSION} "
        f"({settings.environment}, BRy {settings.bry_environment})"
    )
    yield
    logger.info("Shutting down Certificate Status Service")


app = FastAPI(
    title="Certificate Status Service",
    description="""Certificate request lifecycle backend.

## Endpoints

- `POST /webhooks/bry-ar`: BRy AR status webhook (unauthenticated, always acknowledged)
- `POST /v1/certificate-requests/sync`: pull current status from BRy AR for a set of protocols
- `GET /v1/certificate-requests/{protocol}/status`: stored status

The `/v1` endpoints require `X-Admin-Secret`.
""",
    version=SERVICE_VERSION,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "webhooks", "description": "Inbound BRy AR webhooks"},
        {"name": "certificates", "description": "Certificate request status"},
        {"name": "health", "description": "Health check endpoints"},
    ],
)

# Middleware
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=CORS_ALLOW_HEADERS,
)

# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(certificates.router)


# Run with uvicorn
if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 8000)),
        reload=True,
    )
