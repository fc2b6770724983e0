"""
Pytest configuration and fixtures.
"""
import copy
import os
import sys
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import Settings
from app.email import EmailDeliveryStatus, EmailResult, RenderedEmail


class FakeSupabase:
    """In-memory stand-in for SupabaseClient keyed by protocol."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Dict[str, Any]] = []
        self.fail_reads = False
        self.fail_writes = False
        for row in rows or []:
            self.rows[row["protocol"]] = dict(row)

    def get_certificate_request(self, protocol: str) -> Optional[Dict[str, Any]]:
        if self.fail_reads:
            raise RuntimeError("connection refused")
        row = self.rows.get(protocol)
        return copy.deepcopy(row) if row else None

    def update_certificate_request(
        self,
        protocol: str,
        updates: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if self.fail_writes:
            raise RuntimeError("write failed")
        row = self.rows.get(protocol)
        if row is None:
            return None
        if expected_status is not None and row.get("status") != expected_status:
            return None
        self.updates.append(dict(updates))
        row.update(updates)
        return copy.deepcopy(row)


class FakeEmailService:
    """Records rendered emails instead of calling Resend."""

    def __init__(self, delivery_status: EmailDeliveryStatus = EmailDeliveryStatus.SENT):
        self.delivery_status = delivery_status
        self.sent: List[Dict[str, Any]] = []

    async def send_rendered(self, to_email: str, rendered: RenderedEmail, max_attempts: int = 1) -> EmailResult:
        self.sent.append({"to": to_email, "email": rendered, "max_attempts": max_attempts})
        if self.delivery_status == EmailDeliveryStatus.SENT:
            return EmailResult(success=True, message_id="msg_123", delivery_status=EmailDeliveryStatus.SENT)
        return EmailResult(success=False, error="API error 500: boom", delivery_status=self.delivery_status)


def make_request_row(**overrides) -> Dict[str, Any]:
    row = {
        "id": "req-1",
        "protocol": "ABC123",
        "status": "in_validation",
        "type": "PF",
        "common_name": "Jane Doe",
        "cpf": "123.456.789-09",
        "email": "a@b.com",
        "created_at": "2026-01-10T12:00:00+00:00",
        "updated_at": "2026-01-10T12:00:00+00:00",
        "approved_at": None,
        "issued_at": None,
        "revoked_at": None,
        "emission_url": None,
        "certificate_issued": False,
        "rejection_reason": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def settings():
    """Settings built from explicit values, independent of the environment."""
    return Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        RESEND_API_KEY="re_test",
        BRY_ENVIRONMENT="hom",
        BRY_AR_CLIENT_ID="client-id",
        BRY_AR_CLIENT_SECRET="client-secret",
        APP_URL="https://app.example.com",
        EMAIL_ASSETS_URL="https://assets.example.com/email",
        ADMIN_API_SECRET="admin-secret",
        ENVIRONMENT="test",
    )


@pytest.fixture
def request_row():
    return make_request_row()


@pytest.fixture
def fake_supabase(request_row):
    return FakeSupabase([request_row])


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def store(fake_supabase, settings):
    from app.certificates.store import CertificateRequestStore
    return CertificateRequestStore(fake_supabase, settings)


@pytest.fixture
def dispatcher(fake_email, settings):
    from app.certificates.notifications import NotificationDispatcher
    return NotificationDispatcher(fake_email, settings)


@pytest.fixture
def handler(store, dispatcher):
    from app.certificates.webhook import CertificateWebhookHandler
    return CertificateWebhookHandler(store, dispatcher)


@pytest.fixture
def client(settings, fake_supabase, fake_email):
    """TestClient with Supabase, Resend and settings overridden."""
    from app.main import app
    from app.config import get_settings
    from app.email import get_email_service
    from app.supabase_client import get_supabase_client

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_supabase_client] = lambda: fake_supabase
    app.dependency_overrides[get_email_service] = lambda: fake_email
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
