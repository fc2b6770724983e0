"""
BRy AR webhook processing.

The caller always gets a success acknowledgment once the payload parses;
what actually happened (unknown protocol, refused transition, failed
write, failed email) is recorded in the PipelineOutcome and logged once.
"""
import logging
from typing import Any, Dict, Optional

from app.certificates.notifications import NotificationDispatcher, NotificationExtras
from app.certificates.results import PipelineOutcome, Stage, StageResult
from app.certificates.status import map_status, status_value
from app.certificates.store import CertificateRequestStore
from app.models import BryArWebhookPayload, CertificateRequest
from app.utils.logging import set_context

logger = logging.getLogger(__name__)


class CertificateWebhookHandler:
    """Status mapper -> request store -> notification dispatcher."""

    def __init__(self, store: CertificateRequestStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def handle(self, payload: Dict[str, Any]) -> PipelineOutcome:
        """
        Process one webhook delivery.

        Raises:
            pydantic.ValidationError: payload is not a JSON object of the expected shape
        """
        parsed = BryArWebhookPayload.model_validate(payload)
        return await self.process(parsed, source="BRy AR webhook")

    async def process(
        self,
        payload: BryArWebhookPayload,
        source: str,
        only_if_changed: bool = False,
    ) -> PipelineOutcome:
        """
        Run one status update through lookup, transition check, write and email.

        With `only_if_changed`, an update that matches the stored status is a
        no-op (no write, no email); webhook deliveries are always applied.
        """
        outcome = PipelineOutcome(protocol=payload.protocol, raw_status=payload.raw_status)

        if not payload.protocol:
            outcome.add(StageResult.skipped(Stage.PARSE, "no protocol"))
            logger.info(f"{source}: no protocol in payload, nothing to do")
            return outcome

        set_context(protocol=payload.protocol)

        status = map_status(payload.raw_status)
        if status is None:
            outcome.add(StageResult.skipped(Stage.PARSE, "no status"))
            outcome.log(logger, source)
            return outcome

        outcome.status = status_value(status)
        outcome.add(StageResult.success(Stage.PARSE))

        lookup = outcome.add(await self.store.get_by_protocol(payload.protocol))
        if not lookup.ok:
            outcome.log(logger, source)
            return outcome

        existing: CertificateRequest = lookup.data
        outcome.previous_status = existing.status

        transition = outcome.add(self.store.check_transition(existing, status))
        if not transition.ok:
            outcome.log(logger, source)
            return outcome

        if only_if_changed and outcome.status == existing.status:
            outcome.add(StageResult.skipped(Stage.PERSIST, "status unchanged"))
            outcome.add(StageResult.skipped(Stage.NOTIFY, "status unchanged"))
            return outcome

        persist = outcome.add(await self.store.apply_update(status, payload, existing))

        # The applicant is told even when the write failed
        outcome.add(await self.dispatcher.notify(
            status,
            existing.email,
            existing.common_name,
            payload.protocol,
            self._notification_extras(persist, payload),
        ))

        outcome.log(logger, source)
        return outcome

    @staticmethod
    def _notification_extras(persist: StageResult, payload: BryArWebhookPayload) -> NotificationExtras:
        emission_url: Optional[str] = None
        updated = persist.data
        if isinstance(updated, CertificateRequest):
            emission_url = updated.emission_url
        elif isinstance(updated, dict):
            emission_url = updated.get("emission_url")

        return NotificationExtras(
            emission_url=emission_url,
            rejection_reason=payload.best_rejection_reason,
        )
