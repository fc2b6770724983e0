"""
Logging configuration with request_id correlation.
Structured logging for Cloud Logging compatibility.

PII Protection:
- Never log raw emails, phones, tax ids or PFX passwords
- Use fingerprints (sha256[:8]) for correlation
- Protocols are external tracking ids and are safe to log
"""
import hashlib
import logging
import sys
import uuid
import json
from contextvars import ContextVar
from typing import Optional
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


def fingerprint(value: Optional[str], prefix: str = "") -> str:
    """
    Create a safe fingerprint for logging PII values.

    Example:
        fingerprint("user@example.com", "email_") -> "email_f5e6d7c8"
    """
    if not value:
        return f"{prefix}none" if prefix else "none"
    fp = hashlib.sha256(value.encode()).hexdigest()[:8]
    return f"{prefix}{fp}" if prefix else fp


def mask_email(email: Optional[str]) -> str:
    """Mask email for safe logging: john@example.com -> j***@e***.com"""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    domain_parts = domain.split(".")
    masked_local = local[0] + "***" if local else "***"
    masked_domain = domain_parts[0][0] + "***" if domain_parts[0] else "***"
    return f"{masked_local}@{masked_domain}.{domain_parts[-1] if len(domain_parts) > 1 else 'com'}"


# Context variables for request correlation
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
protocol_var: ContextVar[Optional[str]] = ContextVar("protocol", default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def set_context(protocol: Optional[str] = None) -> None:
    """Set logging context variables."""
    if protocol:
        protocol_var.set(protocol)


def clear_context() -> None:
    """Clear all context variables."""
    request_id_var.set(None)
    protocol_var.set(None)


class CloudLoggingFormatter(logging.Formatter):
    """
    Formatter for Google Cloud Logging structured logs.
    Outputs JSON format compatible with Cloud Logging.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "logger": record.name,
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["logging.googleapis.com/trace"] = request_id
            log_entry["request_id"] = request_id

        protocol = protocol_var.get()
        if protocol:
            log_entry["protocol"] = protocol

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_entry["data"] = record.extra_data

        return json.dumps(log_entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get() or "-"
        protocol = protocol_var.get()

        prefix = f"[{record.levelname}] [{request_id[:8] if request_id != '-' else '-'}]"
        if protocol:
            prefix += f" [proto:{protocol}]"

        message = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logging(environment: str = "development", level: int = logging.INFO) -> None:
    """
    Configure logging based on environment.
    - production: JSON structured logs for Cloud Logging
    - development: Human-readable format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if environment == "production":
        handler.setFormatter(CloudLoggingFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns a unique request_id to each request.
    Also extracts the certificate protocol from the path if present.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)

        # /v1/certificate-requests/{protocol}/status
        path_parts = request.url.path.split("/")
        for i, part in enumerate(path_parts):
            if part == "certificate-requests" and i + 1 < len(path_parts):
                candidate = path_parts[i + 1]
                if candidate and candidate != "sync":
                    protocol_var.set(candidate)
                break

        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)
