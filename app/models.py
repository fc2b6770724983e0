from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator


class BaseRequest(BaseModel):
    """Base class for all request models - ignores extra fields."""
    model_config = ConfigDict(extra="ignore")


# Enums
class CertificateStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    IN_VALIDATION = "in_validation"
    APPROVED = "approved"
    PENDING_AUTHENTICATION = "pending_authentication"
    VALIDATION_REJECTED = "validation_rejected"
    REJECTED = "rejected"
    ISSUED = "issued"
    REVOKED = "revoked"


# Database Models
class CertificateRequest(BaseModel):
    """Row of the certificate_requests table."""
    model_config = ConfigDict(extra="ignore")

    id: str
    protocol: Optional[str] = None
    status: str
    type: Optional[str] = None
    common_name: Optional[str] = None
    cpf: Optional[str] = None
    cnpj: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    emission_url: Optional[str] = None
    certificate_issued: Optional[bool] = None
    pfx_data: Optional[str] = Field(default=None, repr=False)
    pfx_password: Optional[str] = Field(default=None, repr=False)
    certificate_serial: Optional[str] = None
    certificate_valid_from: Optional[str] = None
    certificate_valid_until: Optional[str] = None
    rejection_reason: Optional[str] = None

# Webhook Models
class BryArWebhookPayload(BaseModel):
    """
    Inbound BRy AR webhook body.

    BRy sends the status either as {"action": "status", "result": "..."}
    or as a bare {"status": "..."}; unknown fields are kept.
    """
    model_config = ConfigDict(extra="allow")

    protocol: Optional[str] = None
    action: Optional[str] = None
    result: Optional[str] = None
    status: Optional[str] = None

    rejection_reason: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    pfx_data: Optional[str] = Field(default=None, repr=False)
    pfx_password: Optional[str] = Field(default=None, repr=False)
    certificate_serial: Optional[str] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None

    @field_validator(
        "protocol", "result", "status", "certificate_serial", "valid_from", "valid_until",
        "pfx_data", "pfx_password", "rejection_reason", "reason", "message",
        mode="before",
    )
    @classmethod
    def coerce_scalar_to_str(cls, v):
        # Protocols and serials occasionally arrive as JSON numbers
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def raw_status(self) -> Optional[str]:
        """Prefer `result`, fall back to `status`."""
        return self.result or self.status

    @property
    def best_rejection_reason(self) -> Optional[str]:
        """First non-empty of rejection_reason, reason, message."""
        for value in (self.rejection_reason, self.reason, self.message):
            if value and value.strip():
                return value.strip()
        return None


class WebhookAck(BaseModel):
    code: int = 200
    status: str = "success"
    message: Optional[str] = None


# Sync Models
class SyncRequest(BaseRequest):
    protocols: List[str] = Field(..., min_length=1, max_length=50)

    @field_validator("protocols")
    @classmethod
    def strip_protocols(cls, v: List[str]) -> List[str]:
        cleaned = [p.strip() for p in v if p and p.strip()]
        if not cleaned:
            raise ValueError("At least one protocol is required")
        # Keep first occurrence order
        return list(dict.fromkeys(cleaned))


class SyncResult(BaseModel):
    protocol: str
    success: bool
    changed: bool = False
    status: Optional[str] = None
    previous_status: Optional[str] = None
    error: Optional[str] = None


class SyncResponse(BaseModel):
    results: List[SyncResult]


class CertificateStatusResponse(BaseModel):
    protocol: str
    status: str
    certificate_issued: bool = False
    emission_url: Optional[str] = None
    rejection_reason: Optional[str] = None
    updated_at: Optional[datetime] = None
