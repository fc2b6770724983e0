"""
Pull-based reconciliation: ask BRy for the current state of a set of
protocols and push each answer through the webhook update path.
"""
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from app.bry.client import BryArClient
from app.certificates.webhook import CertificateWebhookHandler
from app.exceptions import BryApiError, NotFoundError
from app.models import BryArWebhookPayload, SyncResult

logger = logging.getLogger(__name__)


def payload_from_bry_request(protocol: str, data: Dict[str, Any]) -> BryArWebhookPayload:
    """Treat a BRy request document like a webhook body for `protocol`."""
    known = {k: v for k, v in data.items() if k in BryArWebhookPayload.model_fields}
    known["protocol"] = protocol
    return BryArWebhookPayload.model_validate(known)


class CertificateSyncService:
    def __init__(self, handler: CertificateWebhookHandler, bry_client: BryArClient):
        self.handler = handler
        self.bry_client = bry_client

    async def sync(self, protocols: List[str]) -> List[SyncResult]:
        try:
            token = await self.bry_client.authenticate()
        except BryApiError as e:
            logger.error(f"BRy AR sync aborted, authentication failed: {e.message}")
            return [SyncResult(protocol=p, success=False, error=e.message) for p in protocols]

        results = []
        for protocol in protocols:
            results.append(await self.sync_one(protocol, token))

        changed = sum(1 for r in results if r.changed)
        logger.info(f"BRy AR sync finished: {len(results)} protocol(s), {changed} changed")
        return results

    async def sync_one(self, protocol: str, access_token: str) -> SyncResult:
        try:
            data = await self.bry_client.get_request(protocol, access_token=access_token)
        except NotFoundError:
            return SyncResult(protocol=protocol, success=False, error="Request not found at BRy")
        except BryApiError as e:
            return SyncResult(protocol=protocol, success=False, error=e.message)

        try:
            payload = payload_from_bry_request(protocol, data)
        except ValidationError as e:
            logger.error(f"Unexpected BRy AR response for {protocol}: {e}")
            return SyncResult(protocol=protocol, success=False, error="Unexpected BRy response")

        outcome = await self.handler.process(payload, source="BRy AR sync", only_if_changed=True)
        failures = outcome.failures

        return SyncResult(
            protocol=protocol,
            success=not failures,
            changed=outcome.changed,
            status=outcome.status if outcome.changed else (outcome.previous_status or outcome.status),
            previous_status=outcome.previous_status,
            error=failures[0].reason if failures else None,
        )
