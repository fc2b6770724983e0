"""
Applicant emails for certificate status changes.

One template (templates/certificate_status.html) is rendered from a small
per-status TemplateConfig. Sending is best-effort: a single attempt, and
the outcome is returned as a StageResult rather than raised.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from app.config import Settings, get_settings
from app.certificates.results import Stage, StageResult
from app.certificates.status import StatusValue, require_every_status
from app.email import EmailDeliveryStatus, EmailService, RenderedEmail
from app.models import CertificateStatus
from app.utils.datetime_utils import utc_now
from app.utils.logging import mask_email

logger = logging.getLogger(__name__)

BRAND_NAME = "Eon Sign"

# CTA targets
CTA_EMISSION = "emission"
CTA_CERTIFICATES = "certificates"


@dataclass(frozen=True)
class TemplateConfig:
    subject: str
    title: str
    accent_color: str
    paragraphs: Tuple[str, ...]
    cta_label: Optional[str] = None
    cta_target: Optional[str] = None
    show_reason: bool = False


@dataclass
class NotificationExtras:
    emission_url: Optional[str] = None
    rejection_reason: Optional[str] = None


# None = no email for that status. Every CertificateStatus must appear here.
NOTIFICATION_TEMPLATES: Dict[CertificateStatus, Optional[TemplateConfig]] = {
    CertificateStatus.CREATED: None,
    CertificateStatus.PENDING: None,
    CertificateStatus.PENDING_AUTHENTICATION: None,
    CertificateStatus.IN_VALIDATION: TemplateConfig(
        subject="Sua solicitação de certificado digital está em validação",
        title="Documentação em Análise",
        accent_color="#2563eb",
        paragraphs=(
            "Recebemos a sua documentação e ela já está sendo analisada pela Autoridade de Registro.",
            "Você receberá um novo e-mail assim que a validação for concluída.",
        ),
        cta_label="Acompanhar Solicitação",
        cta_target=CTA_CERTIFICATES,
    ),
    CertificateStatus.APPROVED: TemplateConfig(
        subject="Certificado digital aprovado - emita agora",
        title="Solicitação Aprovada!",
        accent_color="#16a34a",
        paragraphs=(
            "Sua solicitação de Certificado Digital A1 foi aprovada.",
            "Clique no botão abaixo para concluir a emissão do seu certificado.",
        ),
        cta_label="Emitir Certificado",
        cta_target=CTA_EMISSION,
    ),
    CertificateStatus.ISSUED: TemplateConfig(
        subject="Seu certificado digital foi emitido",
        title="Certificado Emitido!",
        accent_color="#16a34a",
        paragraphs=(
            "Seu Certificado Digital A1 foi emitido com sucesso.",
            "Ele já está disponível para download na seção Certificado Digital da plataforma.",
        ),
        cta_label="Acessar Meus Certificados",
        cta_target=CTA_CERTIFICATES,
    ),
    CertificateStatus.VALIDATION_REJECTED: TemplateConfig(
        subject="Pendência na validação do seu certificado digital",
        title="Documentação Precisa de Ajustes",
        accent_color="#f59e0b",
        paragraphs=(
            "A Autoridade de Registro identificou uma pendência na documentação enviada.",
            "Corrija os itens indicados e reenvie a documentação para continuar o processo.",
        ),
        cta_label="Corrigir Documentação",
        cta_target=CTA_CERTIFICATES,
        show_reason=True,
    ),
    CertificateStatus.REJECTED: TemplateConfig(
        subject="Solicitação de certificado digital não aprovada",
        title="Solicitação Recusada",
        accent_color="#dc2626",
        paragraphs=(
            "Infelizmente sua solicitação de Certificado Digital A1 não foi aprovada.",
            "Em caso de dúvidas, entre em contato com o nosso suporte pela plataforma.",
        ),
        cta_label="Acessar a Plataforma",
        cta_target=CTA_CERTIFICATES,
        show_reason=True,
    ),
    CertificateStatus.REVOKED: TemplateConfig(
        subject="Seu certificado digital foi revogado",
        title="Certificado Revogado",
        accent_color="#6b7280",
        paragraphs=(
            "Seu Certificado Digital A1 foi revogado e não pode mais ser utilizado para assinar documentos.",
            "Se você não reconhece esta ação, entre em contato com o nosso suporte imediatamente.",
        ),
    ),
}

require_every_status(NOTIFICATION_TEMPLATES, "notification decision")


_jinja_env = Environment(
    loader=PackageLoader("app.certificates", "templates"),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


def get_template_config(status: StatusValue) -> Optional[TemplateConfig]:
    if not isinstance(status, CertificateStatus):
        return None
    return NOTIFICATION_TEMPLATES[status]


class NotificationDispatcher:
    """Sends the applicant one email per accepted status update."""

    def __init__(self, email_service: EmailService, settings: Optional[Settings] = None):
        self.email_service = email_service
        self.settings = settings or get_settings()

    def _cta_url(self, config: TemplateConfig, extras: NotificationExtras) -> Optional[str]:
        if config.cta_target == CTA_EMISSION and extras.emission_url:
            return extras.emission_url
        if config.cta_target is not None:
            return f"{self.settings.get_app_url()}/certificados"
        return None

    def render(
        self,
        status: CertificateStatus,
        applicant_name: Optional[str],
        protocol: str,
        extras: Optional[NotificationExtras] = None,
    ) -> Optional[RenderedEmail]:
        """Render the email for `status`, or None when the status has no template."""
        config = get_template_config(status)
        if config is None:
            return None
        extras = extras or NotificationExtras()

        reason = extras.rejection_reason if config.show_reason else None
        context = {
            "title": config.title,
            "accent_color": config.accent_color,
            "paragraphs": config.paragraphs,
            "applicant_name": applicant_name or "cliente",
            "protocol": protocol,
            "rejection_reason": reason,
            "cta_label": config.cta_label,
            "cta_url": self._cta_url(config, extras),
            "assets_url": self.settings.email_assets_url.rstrip("/"),
            "brand_name": BRAND_NAME,
            "year": utc_now().year,
        }
        html = _jinja_env.get_template("certificate_status.html").render(**context)

        text_lines = [f"Olá {context['applicant_name']},", ""]
        text_lines.extend(config.paragraphs)
        text_lines.append("")
        text_lines.append(f"Protocolo: {protocol}")
        if reason:
            text_lines.append(f"Motivo: {reason}")
        if context["cta_url"]:
            text_lines.append(f"{config.cta_label}: {context['cta_url']}")

        return RenderedEmail(
            subject=f"{config.subject} - Protocolo {protocol}",
            html=html,
            text="\n".join(text_lines),
        )

    async def notify(
        self,
        status: StatusValue,
        applicant_email: Optional[str],
        applicant_name: Optional[str],
        protocol: str,
        extras: Optional[NotificationExtras] = None,
    ) -> StageResult:
        """Send the status email. Never raises."""
        if get_template_config(status) is None:
            return StageResult.skipped(Stage.NOTIFY, f"no template for status {status}")
        if not applicant_email:
            return StageResult.skipped(Stage.NOTIFY, "request has no email")

        try:
            rendered = self.render(status, applicant_name, protocol, extras)
            result = await self.email_service.send_rendered(applicant_email, rendered, max_attempts=1)
        except Exception as e:
            logger.error(f"Failed to send {status.value} email for {protocol}: {e}", exc_info=True)
            return StageResult.failed(Stage.NOTIFY, f"send error: {e}")

        if result.delivery_status == EmailDeliveryStatus.SENT:
            logger.info(f"Sent {status.value} email for {protocol} to {mask_email(applicant_email)}")
            return StageResult.success(Stage.NOTIFY, data=result)
        if result.delivery_status == EmailDeliveryStatus.SKIPPED:
            return StageResult.skipped(Stage.NOTIFY, result.error or "email skipped")
        return StageResult.failed(Stage.NOTIFY, result.error or "email failed", data=result)
