"""
In-memory token bucket rate limiter for the status sync endpoint.

Each open client session polls on its own timer; this caps how hard a
single client can drive BRy AR lookups through us. Buckets live per
process, so with several Cloud Run instances the effective limit is
per instance.
"""
import time
import threading
from typing import Dict, Optional, Tuple
from dataclasses import dataclass

from app.config import get_settings


@dataclass
class TokenBucket:
    tokens: float
    last_update: float


class RateLimiter:
    """Thread-safe token bucket keyed by an arbitrary string (client IP)."""

    def __init__(self, max_requests: int = 30, window_seconds: int = 60, cleanup_interval: int = 3600):
        self.max_tokens = max_requests
        self.refill_rate = max_requests / window_seconds  # tokens per second
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.monotonic()

    def _refill(self, bucket: TokenBucket, now: float) -> None:
        elapsed = now - bucket.last_update
        bucket.tokens = min(self.max_tokens, bucket.tokens + elapsed * self.refill_rate)
        bucket.last_update = now

    def _cleanup_idle_buckets(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        cutoff = now - self._cleanup_interval
        for key in [k for k, b in self._buckets.items() if b.last_update < cutoff]:
            del self._buckets[key]
        self._last_cleanup = now

    def is_allowed(self, key: str) -> Tuple[bool, int]:
        """
        Consume one token for `key`.

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        with self._lock:
            now = time.monotonic()
            self._cleanup_idle_buckets(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = TokenBucket(tokens=float(self.max_tokens), last_update=now)
            self._refill(bucket, now)

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True, 0

            retry_after = int((1 - bucket.tokens) / self.refill_rate) + 1
            return False, retry_after

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)


_sync_rate_limiter: Optional[RateLimiter] = None


def get_sync_rate_limiter() -> RateLimiter:
    """Get the status sync rate limiter, sized from settings on first use."""
    global _sync_rate_limiter
    if _sync_rate_limiter is None:
        settings = get_settings()
        _sync_rate_limiter = RateLimiter(
            max_requests=settings.sync_rate_limit_requests,
            window_seconds=settings.sync_rate_limit_window_seconds,
        )
    return _sync_rate_limiter
