"""
Email module using Resend for sending emails.

Callers always get an EmailResult back instead of an exception. Certificate
status notifications make a single attempt; `max_attempts` (capped at
MAX_RETRY_ATTEMPTS) is part of the service API for callers that want
retries with backoff.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional, List
from dataclasses import dataclass, field

import httpx

from app.config import get_settings, Settings
from app.utils.logging import fingerprint

logger = logging.getLogger(__name__)


# Retry configuration (used only when callers ask for more than one attempt)
MAX_RETRY_ATTEMPTS = 3
RETRY_DELAYS_SECONDS = [0, 2, 4]  # Exponential backoff: immediate, 2s, 4s


class EmailDeliveryStatus(str, Enum):
    """Email delivery status for tracking."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Email not configured or disabled


@dataclass
class EmailAttempt:
    """Record of a single email send attempt."""
    attempt_number: int
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


@dataclass
class EmailResult:
    """Result of email send operation with delivery tracking."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    delivery_status: EmailDeliveryStatus = EmailDeliveryStatus.PENDING
    attempts: List[EmailAttempt] = field(default_factory=list)
    total_attempts: int = 0

    @property
    def is_delivered(self) -> bool:
        return self.delivery_status == EmailDeliveryStatus.SENT

    @property
    def is_failed(self) -> bool:
        return self.delivery_status == EmailDeliveryStatus.FAILED


@dataclass
class RenderedEmail:
    """Rendered email ready to send."""
    subject: str
    html: str
    text: Optional[str] = None


class EmailService:
    """Email service using the Resend HTTP API."""

    RESEND_API_URL = "https://api.resend.com/emails"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def is_configured(self) -> bool:
        return bool(self.settings.resend_api_key)

    def _sender(self) -> str:
        return f"{self.settings.resend_from_name} <{self.settings.resend_from_email}>"

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        max_attempts: int = 1,
    ) -> EmailResult:
        """
        Send email via Resend HTTP API.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html: HTML content
            text: Optional plain text content
            max_attempts: Attempts before giving up (1 = no retry)

        Returns:
            EmailResult with delivery_status and attempt history
        """
        email_fp = fingerprint(to_email, "email_")

        if not self.is_configured():
            logger.warning(f"Resend API key not configured, skipping email to {email_fp}")
            return EmailResult(
                success=False,
                error="Email service not configured",
                delivery_status=EmailDeliveryStatus.SKIPPED,
            )

        max_attempts = max(1, min(max_attempts, MAX_RETRY_ATTEMPTS))

        payload = {
            "from": self._sender(),
            "to": [to_email],
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text

        headers = {
            "Authorization": f"Bearer {self.settings.resend_api_key}",
            "Content-Type": "application/json",
        }

        attempts: List[EmailAttempt] = []
        last_error: Optional[str] = None

        for attempt_num in range(1, max_attempts + 1):
            if attempt_num > 1:
                delay = RETRY_DELAYS_SECONDS[attempt_num - 1]
                logger.info(f"Email retry {attempt_num}/{max_attempts} to {email_fp}, waiting {delay}s")
                await asyncio.sleep(delay)

            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self.RESEND_API_URL,
                        json=payload,
                        headers=headers,
                        timeout=30.0,
                    )

                if response.status_code in (200, 201):
                    message_id = response.json().get("id")
                    attempts.append(EmailAttempt(
                        attempt_number=attempt_num,
                        success=True,
                        message_id=message_id,
                    ))
                    logger.info(
                        f"Email sent to {email_fp} on attempt {attempt_num}, "
                        f"message_id: {message_id}"
                    )
                    return EmailResult(
                        success=True,
                        message_id=message_id,
                        delivery_status=EmailDeliveryStatus.SENT,
                        attempts=attempts,
                        total_attempts=attempt_num,
                    )

                last_error = f"API error {response.status_code}: {response.text[:200]}"

            except httpx.TimeoutException as e:
                last_error = f"Timeout: {e}"

            except httpx.HTTPError as e:
                last_error = str(e) or e.__class__.__name__

            attempts.append(EmailAttempt(
                attempt_number=attempt_num,
                success=False,
                error=last_error,
            ))
            logger.warning(
                f"Email attempt {attempt_num}/{max_attempts} to {email_fp} failed: {last_error}"
            )

        logger.error(
            f"Email to {email_fp} failed after {max_attempts} attempt(s). "
            f"Last error: {last_error}"
        )

        return EmailResult(
            success=False,
            error=last_error,
            delivery_status=EmailDeliveryStatus.FAILED,
            attempts=attempts,
            total_attempts=max_attempts,
        )

    async def send_rendered(self, to_email: str, rendered: RenderedEmail, max_attempts: int = 1) -> EmailResult:
        return await self.send_email(
            to_email=to_email,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            max_attempts=max_attempts,
        )


# Singleton instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


__all__ = [
    "EmailService",
    "EmailResult",
    "EmailDeliveryStatus",
    "EmailAttempt",
    "RenderedEmail",
    "get_email_service",
    "MAX_RETRY_ATTEMPTS",
    "RETRY_DELAYS_SECONDS",
]
