"""
Client-side status poller.

Fallback for sessions that cannot observe webhook deliveries: while there
are in-flight protocols, periodically ask the backend to sync them and
call `on_change` when any of them moved. Polling is adaptive (fast for the
first few ticks, slower afterwards) and never overlaps itself.
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Union

import httpx

from app.certificates.status import TERMINAL_STATUSES
from app.models import CertificateStatusResponse, SyncResponse, SyncResult

logger = logging.getLogger(__name__)

FAST_INTERVAL_SECONDS = 10.0
NORMAL_INTERVAL_SECONDS = 20.0
FAST_ATTEMPTS = 6
INITIAL_DELAY_SECONDS = 1.0

SyncCallable = Callable[[List[str]], Awaitable[List[SyncResult]]]
ChangeCallback = Callable[[], Union[None, Awaitable[None]]]

_TERMINAL_VALUES = {s.value for s in TERMINAL_STATUSES}


class StatusSyncClient:
    """Calls the backend sync endpoint; usable directly as a poller `sync` callable."""

    def __init__(
        self,
        base_url: str,
        admin_secret: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.admin_secret = admin_secret
        self.timeout = timeout
        self._http_client = http_client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.admin_secret:
            headers["X-Admin-Secret"] = self.admin_secret
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._http_client is not None:
            response = await self._http_client.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method, url, headers=self._headers(), timeout=self.timeout, **kwargs
                )
        response.raise_for_status()
        return response

    async def __call__(self, protocols: List[str]) -> List[SyncResult]:
        response = await self._request("POST", "/v1/certificate-requests/sync", json={"protocols": protocols})
        return SyncResponse.model_validate(response.json()).results

    async def get_status(self, protocol: str) -> CertificateStatusResponse:
        response = await self._request("GET", f"/v1/certificate-requests/{protocol}/status")
        return CertificateStatusResponse.model_validate(response.json())


class StatusPoller:
    """
    Adaptive, non-overlapping status poller.

    Usage:
        async with StatusPoller(StatusSyncClient(api_url), on_change=reload) as poller:
            poller.track(["ABC123"])
            ...
    """

    def __init__(
        self,
        sync: SyncCallable,
        on_change: Optional[ChangeCallback] = None,
        fast_interval: float = FAST_INTERVAL_SECONDS,
        normal_interval: float = NORMAL_INTERVAL_SECONDS,
        fast_attempts: int = FAST_ATTEMPTS,
        initial_delay: float = INITIAL_DELAY_SECONDS,
    ):
        self._sync = sync
        self._on_change = on_change
        self.fast_interval = fast_interval
        self.normal_interval = normal_interval
        self.fast_attempts = fast_attempts
        self.initial_delay = initial_delay

        self._protocols: List[str] = []
        self._attempts = 0
        self._syncing = False
        self._active = False
        self._task: Optional[asyncio.Task] = None

    @property
    def protocols(self) -> List[str]:
        return list(self._protocols)

    @property
    def pending_count(self) -> int:
        return len(self._protocols)

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_interval(self) -> float:
        return self.fast_interval if self._attempts < self.fast_attempts else self.normal_interval

    def track(self, protocols: Iterable[str]) -> None:
        """Replace the set of in-flight protocols; restarts the fast phase."""
        self._protocols = list(dict.fromkeys(p for p in protocols if p))
        self._attempts = 0
        if self._active:
            self._restart()

    def start(self) -> None:
        self._active = True
        self._restart()

    async def stop(self) -> None:
        self._active = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "StatusPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _restart(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if not self._protocols:
            logger.debug("No in-flight certificate requests, polling disabled")
            return
        logger.info(
            f"Starting status polling for {len(self._protocols)} request(s) "
            f"({self.fast_interval}s x {self.fast_attempts}, then {self.normal_interval}s)"
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        delay = self.initial_delay
        while True:
            await asyncio.sleep(delay)
            if not self._protocols:
                logger.info("All tracked requests settled, polling stopped")
                return
            if await self.sync_now():
                self._attempts += 1
            delay = self.next_interval()

    async def sync_now(self) -> bool:
        """
        Poll once. Returns False when skipped because a poll is already in
        flight or nothing is tracked.
        """
        if self._syncing or not self._protocols:
            return False

        self._syncing = True
        try:
            results = await self._sync(list(self._protocols))
        except Exception as e:
            logger.warning(f"Status sync failed: {e}")
            return True
        finally:
            self._syncing = False

        settled = {r.protocol for r in results if r.success and r.status in _TERMINAL_VALUES}
        if settled:
            self._protocols = [p for p in self._protocols if p not in settled]

        if any(r.changed for r in results):
            logger.info("Certificate status changed, refreshing")
            await self._notify_change()
        return True

    async def _notify_change(self) -> None:
        if self._on_change is None:
            return
        try:
            result = self._on_change()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Status change callback failed: {e}", exc_info=True)
