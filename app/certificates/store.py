"""
Certificate request store: reads and writes `certificate_requests` rows
keyed by BRy protocol.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.config import BRY_EMISSION_BASE_URLS, Settings, get_settings
from app.certificates.results import Stage, StageResult
from app.certificates.status import (
    StatusValue,
    is_allowed_transition,
    status_value,
)
from app.models import BryArWebhookPayload, CertificateRequest, CertificateStatus
from app.supabase_client import SupabaseClient
from app.utils.datetime_utils import utc_now_iso
from app.utils.security import digits_only

logger = logging.getLogger(__name__)


def build_emission_url(tax_id: Optional[str], protocol: str, environment: str = "hom") -> Optional[str]:
    """
    Link to the BRy emission portal for an approved request.

    {base}/protocolo/emissao?cpf={digits}&protocolo={protocol}
    """
    cpf = digits_only(tax_id)
    if not cpf:
        return None
    base_url = BRY_EMISSION_BASE_URLS.get(environment, BRY_EMISSION_BASE_URLS["hom"])
    return f"{base_url}/protocolo/emissao?cpf={cpf}&protocolo={protocol}"


class CertificateRequestStore:
    """Persistence for certificate requests, one row per BRy protocol."""

    def __init__(self, supabase: SupabaseClient, settings: Optional[Settings] = None):
        self.supabase = supabase
        self.settings = settings or get_settings()

    async def get_by_protocol(self, protocol: str) -> StageResult:
        try:
            row = self.supabase.get_certificate_request(protocol)
        except Exception as e:
            logger.error(f"Error fetching certificate request {protocol}: {e}")
            return StageResult.failed(Stage.LOOKUP, f"lookup error: {e}")

        if not row:
            return StageResult.failed(Stage.LOOKUP, "not_found")

        try:
            request = CertificateRequest(**row)
        except ValidationError as e:
            logger.error(f"Stored certificate request {protocol} is malformed: {e}")
            return StageResult.failed(Stage.LOOKUP, "malformed row")

        return StageResult.success(Stage.LOOKUP, data=request)

    def check_transition(self, existing: CertificateRequest, status: StatusValue) -> StageResult:
        if is_allowed_transition(existing.status, status):
            return StageResult.success(Stage.TRANSITION)
        return StageResult.failed(
            Stage.TRANSITION,
            f"transition {existing.status} -> {status_value(status)} not allowed",
        )

    def build_update(
        self,
        status: StatusValue,
        payload: BryArWebhookPayload,
        existing: CertificateRequest,
    ) -> Dict[str, Any]:
        """Row changes for moving `existing` into `status`."""
        now = utc_now_iso()
        updates: Dict[str, Any] = {
            "status": status_value(status),
            "updated_at": now,
        }

        if status == CertificateStatus.APPROVED:
            if existing.approved_at is None:
                updates["approved_at"] = now
            emission_url = build_emission_url(
                existing.cpf, existing.protocol or "", self.settings.bry_environment
            )
            if emission_url:
                updates["emission_url"] = emission_url
            else:
                logger.warning(f"No CPF on request {existing.protocol}, emission URL not generated")

        elif status == CertificateStatus.ISSUED:
            if existing.issued_at is None:
                updates["issued_at"] = now
            updates["certificate_issued"] = True
            artifact_fields = {
                "pfx_data": payload.pfx_data,
                "pfx_password": payload.pfx_password,
                "certificate_serial": payload.certificate_serial,
                "certificate_valid_from": payload.valid_from,
                "certificate_valid_until": payload.valid_until,
            }
            for column, value in artifact_fields.items():
                if value:
                    updates[column] = value
            if payload.pfx_data:
                logger.info(f"Storing PFX bundle delivered with webhook for {existing.protocol}")

        elif status in (CertificateStatus.REJECTED, CertificateStatus.VALIDATION_REJECTED):
            reason = payload.best_rejection_reason
            if reason:
                updates["rejection_reason"] = reason

        elif status == CertificateStatus.REVOKED:
            if existing.revoked_at is None:
                updates["revoked_at"] = now

        return updates

    async def apply_update(
        self,
        status: StatusValue,
        payload: BryArWebhookPayload,
        existing: CertificateRequest,
    ) -> StageResult:
        """
        Write the status change for `existing`.

        The write is conditional on the row still holding the status that was
        read, so a concurrent delivery that already moved it wins and this
        one reports a conflict.
        """
        protocol = existing.protocol or ""
        updates = self.build_update(status, payload, existing)

        try:
            row = self.supabase.update_certificate_request(
                protocol,
                updates,
                expected_status=existing.status,
            )
        except Exception as e:
            logger.error(f"Database update error for {protocol}: {e}")
            return StageResult.failed(Stage.PERSIST, f"update error: {e}", data=updates)

        if row is None:
            return StageResult.failed(Stage.PERSIST, "conflict: status changed concurrently", data=updates)

        try:
            updated = CertificateRequest(**row)
        except ValidationError:
            updated = existing.model_copy(update=updates)

        return StageResult.success(Stage.PERSIST, data=updated)
