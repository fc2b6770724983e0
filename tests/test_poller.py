"""
Tests for the client-side status poller.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.certificates.poller import StatusPoller, StatusSyncClient
from app.models import SyncResult


def _result(protocol, status="in_validation", changed=False, success=True):
    return SyncResult(protocol=protocol, success=success, changed=changed, status=status)


class TestSyncNow:

    @pytest.mark.asyncio
    async def test_nothing_tracked(self):
        sync = AsyncMock()
        poller = StatusPoller(sync)

        assert await poller.sync_now() is False
        sync.assert_not_called()

    @pytest.mark.asyncio
    async def test_change_triggers_callback(self):
        sync = AsyncMock(return_value=[_result("A", "approved", changed=True)])
        on_change = MagicMock()
        poller = StatusPoller(sync, on_change=on_change)
        poller.track(["A"])

        assert await poller.sync_now() is True

        sync.assert_awaited_once_with(["A"])
        on_change.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_callback(self):
        sync = AsyncMock(return_value=[_result("A", "approved", changed=True)])
        on_change = AsyncMock()
        poller = StatusPoller(sync, on_change=on_change)
        poller.track(["A"])

        await poller.sync_now()

        on_change.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_change_no_callback(self):
        on_change = MagicMock()
        poller = StatusPoller(AsyncMock(return_value=[_result("A")]), on_change=on_change)
        poller.track(["A"])

        await poller.sync_now()

        on_change.assert_not_called()

    @pytest.mark.asyncio
    async def test_terminal_requests_dropped(self):
        sync = AsyncMock(return_value=[_result("A", "issued", changed=True), _result("B")])
        poller = StatusPoller(sync)
        poller.track(["A", "B"])

        await poller.sync_now()

        assert poller.protocols == ["B"]

    @pytest.mark.asyncio
    async def test_overlapping_poll_skipped(self):
        release = asyncio.Event()
        calls = 0

        async def slow_sync(protocols):
            nonlocal calls
            calls += 1
            await release.wait()
            return [_result("A")]

        poller = StatusPoller(slow_sync)
        poller.track(["A"])

        first = asyncio.ensure_future(poller.sync_now())
        await asyncio.sleep(0)
        assert poller.is_syncing
        assert await poller.sync_now() is False

        release.set()
        assert await first is True
        assert calls == 1
        assert not poller.is_syncing

    @pytest.mark.asyncio
    async def test_sync_error_contained(self):
        poller = StatusPoller(AsyncMock(side_effect=httpx.ConnectError("down")))
        poller.track(["A"])

        assert await poller.sync_now() is True
        assert poller.protocols == ["A"]
        assert not poller.is_syncing

    @pytest.mark.asyncio
    async def test_callback_error_contained(self):
        sync = AsyncMock(return_value=[_result("A", "approved", changed=True)])
        poller = StatusPoller(sync, on_change=MagicMock(side_effect=RuntimeError("boom")))
        poller.track(["A"])

        assert await poller.sync_now() is True


class TestSchedule:

    def test_adaptive_interval(self):
        poller = StatusPoller(AsyncMock(), fast_interval=10, normal_interval=20, fast_attempts=2)
        assert poller.next_interval() == 10
        poller._attempts = 2
        assert poller.next_interval() == 20

    def test_track_resets_attempts_and_dedupes(self):
        poller = StatusPoller(AsyncMock())
        poller._attempts = 5
        poller.track(["A", "A", "", "B"])
        assert poller.protocols == ["A", "B"]
        assert poller.attempts == 0

    @pytest.mark.asyncio
    async def test_runs_until_settled(self):
        sync = AsyncMock(side_effect=[
            [_result("A")],
            [_result("A", "issued", changed=True)],
        ])
        on_change = MagicMock()
        poller = StatusPoller(
            sync, on_change=on_change, fast_interval=0.01, normal_interval=0.01, initial_delay=0
        )

        async with poller:
            poller.track(["A"])
            for _ in range(100):
                if not poller.is_running:
                    break
                await asyncio.sleep(0.01)

        assert sync.await_count == 2
        on_change.assert_called_once()
        assert poller.pending_count == 0

    @pytest.mark.asyncio
    async def test_stop_cancels(self):
        poller = StatusPoller(AsyncMock(return_value=[]), initial_delay=10)
        poller.track(["A"])
        poller.start()
        assert poller.is_running

        await poller.stop()

        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_start_without_protocols_is_idle(self):
        poller = StatusPoller(AsyncMock())
        poller.start()
        assert not poller.is_running
        await poller.stop()


class TestStatusSyncClient:

    @pytest.mark.asyncio
    async def test_posts_protocols(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["secret"] = request.headers.get("X-Admin-Secret")
            seen["body"] = request.content
            return httpx.Response(200, json={"results": [
                {"protocol": "A", "success": True, "changed": True, "status": "approved"},
            ]})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = StatusSyncClient("https://api.example.com/", admin_secret="s", http_client=http)

        results = await client(["A"])

        assert seen["path"] == "/v1/certificate-requests/sync"
        assert seen["secret"] == "s"
        assert b'"protocols"' in seen["body"]
        assert results[0].changed is True

    @pytest.mark.asyncio
    async def test_http_error_raised(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(429)))
        client = StatusSyncClient("https://api.example.com", http_client=http)

        with pytest.raises(httpx.HTTPStatusError):
            await client(["A"])

    @pytest.mark.asyncio
    async def test_get_status(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"protocol": "A", "status": "issued", "certificate_issued": True})
        ))
        client = StatusSyncClient("https://api.example.com", http_client=http)

        status = await client.get_status("A")

        assert status.status == "issued"


class TestSkippedTicks:

    @pytest.mark.asyncio
    async def test_skipped_tick_keeps_fast_phase(self):
        poller = StatusPoller(AsyncMock(), fast_interval=0.01, normal_interval=0.01, initial_delay=0)
        poller.track(["A"])
        poller.sync_now = AsyncMock(side_effect=[False, False, True, asyncio.CancelledError()])

        with pytest.raises(asyncio.CancelledError):
            await poller._run()

        assert poller.attempts == 1
