"""
Supabase client module for database operations.

Webhook and sync calls carry no user JWT, so the service role key is used.
The client is constructed explicitly and passed into the store; FastAPI
routes obtain it through `get_supabase_client`, tests inject fakes.
"""
import logging
from typing import Optional, Dict, Any

from supabase import create_client, Client

from app.config import get_settings, Settings
from app.utils.datetime_utils import utc_now_iso

logger = logging.getLogger(__name__)

CERTIFICATE_REQUESTS_TABLE = "certificate_requests"


class SupabaseClient:
    """Supabase client wrapper using the service role key."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        self.settings = settings or get_settings()
        self._base_client: Optional[Client] = client

    @property
    def client(self) -> Client:
        if self._base_client is None:
            self._base_client = create_client(
                self.settings.supabase_url,
                self.settings.supabase_service_role_key,
            )
        return self._base_client

    def table(self, table_name: str):
        return self.client.table(table_name)

    # Certificate request operations
    def get_certificate_request(self, protocol: str) -> Optional[Dict[str, Any]]:
        """Get a certificate request by its BRy protocol."""
        result = self.table(CERTIFICATE_REQUESTS_TABLE).select(
            "*"
        ).eq(
            "protocol", protocol
        ).limit(1).execute()

        return result.data[0] if result.data else None

    def update_certificate_request(
        self,
        protocol: str,
        updates: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Update a certificate request by protocol.

        With `expected_status`, the write only applies while the row still
        holds that status. Returns the updated row, or None when no row matched.
        """
        updates.setdefault("updated_at", utc_now_iso())

        query = self.table(CERTIFICATE_REQUESTS_TABLE).update(updates).eq("protocol", protocol)
        if expected_status is not None:
            query = query.eq("status", expected_status)

        result = query.execute()

        if not result.data:
            return None
        return result.data[0]


# Singleton instance
_supabase_client: Optional[SupabaseClient] = None


def get_supabase_client() -> SupabaseClient:
    """Get the Supabase client singleton (FastAPI dependency)."""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = SupabaseClient()
    return _supabase_client
