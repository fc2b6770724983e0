"""
Timezone-aware datetime utilities.

All datetime operations should use these helpers to ensure consistent
timezone handling across the codebase.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string for database writes."""
    return utc_now().isoformat()
