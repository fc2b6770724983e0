"""
Tests for applicant status emails.
"""
import pytest

from app.certificates.notifications import (
    NOTIFICATION_TEMPLATES,
    NotificationDispatcher,
    NotificationExtras,
)
from app.certificates.results import StageOutcome
from app.email import EmailDeliveryStatus
from app.models import CertificateStatus as S

from conftest import FakeEmailService


class TestTemplateTable:

    def test_every_status_has_a_decision(self):
        assert set(NOTIFICATION_TEMPLATES) == set(S)

    def test_silent_statuses(self):
        for status in (S.CREATED, S.PENDING, S.PENDING_AUTHENTICATION):
            assert NOTIFICATION_TEMPLATES[status] is None

    def test_revoked_has_no_call_to_action(self):
        assert NOTIFICATION_TEMPLATES[S.REVOKED].cta_label is None


class TestRender:

    def test_subject_carries_protocol(self, dispatcher):
        rendered = dispatcher.render(S.ISSUED, "Jane Doe", "ABC123")
        assert rendered.subject.endswith(" - Protocolo ABC123")
        assert "<strong>Jane Doe</strong>" in rendered.html
        assert rendered.text.startswith("Olá Jane Doe,")
        assert "ABC123" in rendered.text

    def test_approved_links_to_emission_portal(self, dispatcher):
        url = "https://mp-universal.hom.bry.com.br/protocolo/emissao?cpf=12345678909&protocolo=ABC123"
        rendered = dispatcher.render(S.APPROVED, "Jane", "ABC123", NotificationExtras(emission_url=url))

        assert url.replace("&", "&amp;") in rendered.html
        assert "Emitir Certificado" in rendered.html
        assert url in rendered.text

    def test_approved_without_emission_url_falls_back_to_app(self, dispatcher):
        rendered = dispatcher.render(S.APPROVED, "Jane", "ABC123")
        assert "https://app.example.com/certificados" in rendered.html

    def test_rejection_reason_shown(self, dispatcher):
        rendered = dispatcher.render(
            S.REJECTED, "Jane", "ABC123", NotificationExtras(rejection_reason="CPF divergente")
        )
        assert "CPF divergente" in rendered.html
        assert "Motivo: CPF divergente" in rendered.text

    def test_reason_escaped(self, dispatcher):
        rendered = dispatcher.render(
            S.REJECTED, "Jane", "ABC123", NotificationExtras(rejection_reason="<script>x</script>")
        )
        assert "<script>" not in rendered.html

    def test_reason_hidden_where_not_relevant(self, dispatcher):
        rendered = dispatcher.render(
            S.ISSUED, "Jane", "ABC123", NotificationExtras(rejection_reason="stale")
        )
        assert "stale" not in rendered.html

    def test_missing_name(self, dispatcher):
        rendered = dispatcher.render(S.ISSUED, "", "ABC123")
        assert "<strong>cliente</strong>" in rendered.html

    def test_assets_url(self, dispatcher):
        rendered = dispatcher.render(S.ISSUED, "Jane", "ABC123")
        assert "https://assets.example.com/email/header-banner.png" in rendered.html

    def test_no_template(self, dispatcher):
        assert dispatcher.render(S.PENDING, "Jane", "ABC123") is None


class TestNotify:

    @pytest.mark.asyncio
    async def test_sends_single_attempt(self, dispatcher, fake_email):
        result = await dispatcher.notify(S.ISSUED, "a@b.com", "Jane", "ABC123")

        assert result.ok
        assert len(fake_email.sent) == 1
        assert fake_email.sent[0]["to"] == "a@b.com"
        assert fake_email.sent[0]["max_attempts"] == 1

    @pytest.mark.asyncio
    async def test_silent_status_skipped(self, dispatcher, fake_email):
        result = await dispatcher.notify(S.PENDING, "a@b.com", "Jane", "ABC123")
        assert result.outcome == StageOutcome.SKIPPED
        assert fake_email.sent == []

    @pytest.mark.asyncio
    async def test_unknown_status_skipped(self, dispatcher, fake_email):
        result = await dispatcher.notify("on_hold", "a@b.com", "Jane", "ABC123")
        assert result.outcome == StageOutcome.SKIPPED
        assert fake_email.sent == []

    @pytest.mark.asyncio
    async def test_no_email_address(self, dispatcher, fake_email):
        result = await dispatcher.notify(S.ISSUED, "", "Jane", "ABC123")
        assert result.outcome == StageOutcome.SKIPPED
        assert fake_email.sent == []

    @pytest.mark.asyncio
    async def test_delivery_failure_reported(self, settings):
        email = FakeEmailService(delivery_status=EmailDeliveryStatus.FAILED)
        dispatcher = NotificationDispatcher(email, settings)

        result = await dispatcher.notify(S.ISSUED, "a@b.com", "Jane", "ABC123")

        assert result.outcome == StageOutcome.FAILED
        assert "500" in result.reason

    @pytest.mark.asyncio
    async def test_unconfigured_email_skipped(self, settings):
        email = FakeEmailService(delivery_status=EmailDeliveryStatus.SKIPPED)
        dispatcher = NotificationDispatcher(email, settings)

        result = await dispatcher.notify(S.ISSUED, "a@b.com", "Jane", "ABC123")

        assert result.outcome == StageOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_send_exception_contained(self, dispatcher, fake_email):
        async def boom(*args, **kwargs):
            raise RuntimeError("resend down")

        fake_email.send_rendered = boom
        result = await dispatcher.notify(S.ISSUED, "a@b.com", "Jane", "ABC123")

        assert result.outcome == StageOutcome.FAILED
        assert "resend down" in result.reason
