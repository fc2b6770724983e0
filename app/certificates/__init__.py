"""
Certificate request lifecycle: BRy AR status mapping, persistence,
applicant notifications, webhook processing and status polling.
"""
from app.certificates.status import (
    ALLOWED_TRANSITIONS,
    BRY_STATUS_MAP,
    TERMINAL_STATUSES,
    is_allowed_transition,
    map_status,
)
from app.certificates.results import PipelineOutcome, Stage, StageOutcome, StageResult
from app.certificates.store import CertificateRequestStore, build_emission_url
from app.certificates.notifications import (
    NOTIFICATION_TEMPLATES,
    NotificationDispatcher,
    NotificationExtras,
    TemplateConfig,
)
from app.certificates.webhook import CertificateWebhookHandler
from app.certificates.sync import CertificateSyncService
from app.certificates.poller import StatusPoller, StatusSyncClient

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BRY_STATUS_MAP",
    "TERMINAL_STATUSES",
    "is_allowed_transition",
    "map_status",
    "PipelineOutcome",
    "Stage",
    "StageOutcome",
    "StageResult",
    "CertificateRequestStore",
    "build_emission_url",
    "NOTIFICATION_TEMPLATES",
    "NotificationDispatcher",
    "NotificationExtras",
    "TemplateConfig",
    "CertificateWebhookHandler",
    "CertificateSyncService",
    "StatusPoller",
    "StatusSyncClient",
]
