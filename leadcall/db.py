"""
Supabase Database Client.

Provides the process-wide Supabase client and typed helper methods for
the ``leads``, ``agents`` and ``calls`` tables. Queries run in a worker
thread so a slow round-trip only holds up its own request. Read helpers and webhook
writes log failures and return ``None``; callers that must not proceed
on a failed write (dispatch) turn that ``None`` into an error.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from supabase import Client, create_client

from leadcall.config import get_settings
from leadcall.logging_config import get_logger
from leadcall.schemas.call import CallStatus

logger = get_logger(__name__)

LEADS_TABLE = "leads"
AGENTS_TABLE = "agents"
CALLS_TABLE = "calls"

# Statuses a webhook completion may overwrite; completed is re-applied harmlessly
_COMPLETABLE = [CallStatus.ONGOING.value, CallStatus.COMPLETED.value]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _execute(query: Any) -> Any:
    """Run a built query off the event loop; the supabase client blocks on I/O."""
    return await asyncio.to_thread(query.execute)


class DatabaseClient:
    """Wrapper around the official Supabase Python client."""

    _instance: Optional[DatabaseClient] = None

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls) -> DatabaseClient:
        """Build a client from SUPABASE_URL / SUPABASE_SERVICE_KEY."""
        settings = get_settings()

        if not settings.supabase_url or not settings.supabase_service_key:
            logger.warning(
                "Supabase credentials missing. Database operations will fail.",
                url=bool(settings.supabase_url),
                key=bool(settings.supabase_service_key),
            )

        try:
            client = create_client(settings.supabase_url, settings.supabase_service_key)
            logger.info("Supabase client initialized", url=settings.supabase_url)
        except Exception as e:
            logger.error("Failed to initialize Supabase client", error=str(e))
            raise
        return cls(client)

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    # -- Leads & Agents --

    async def get_lead(self, lead_id: str) -> dict[str, Any] | None:
        """Fetch a lead by id."""
        try:
            response = await _execute(
                self.client.table(LEADS_TABLE)
                .select("*")
                .eq("id", lead_id)
                .limit(1)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error("Error fetching lead", id=lead_id, error=str(e))
            return None

    async def update_lead(self, lead_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        """Update a lead record."""
        try:
            response = await _execute(
                self.client.table(LEADS_TABLE)
                .update(updates)
                .eq("id", lead_id)
            )
            if response.data:
                return response.data[0]
            return None
        except Exception as e:
            logger.error("Error updating lead", id=lead_id, error=str(e))
            return None

    async def get_agent(self, agent_id: str) -> dict[str, Any] | None:
        """Fetch an agent persona by id."""
        try:
            response = await _execute(
                self.client.table(AGENTS_TABLE)
                .select("*")
                .eq("id", agent_id)
                .limit(1)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error("Error fetching agent", id=agent_id, error=str(e))
            return None

    # -- Calls --

    async def create_call_record(
        self,
        lead_id: str | None,
        ultravox_call_id: str,
        summary: str = "Call initiated via Ultravox",
    ) -> dict[str, Any] | None:
        """Insert a new ongoing call record."""
        try:
            payload = {
                "lead_id": lead_id,
                "ultravox_call_id": ultravox_call_id,
                "started_at": _now_iso(),
                "status": CallStatus.ONGOING.value,
                "summary": summary,
            }
            response = await _execute(self.client.table(CALLS_TABLE).insert(payload))
            if response.data:
                return response.data[0]
            return None
        except Exception as e:
            logger.error("Error creating call record", ultravox_call_id=ultravox_call_id, error=str(e))
            return None

    async def get_call_record(self, call_id: str) -> dict[str, Any] | None:
        """Fetch a call record by local id."""
        try:
            response = await _execute(
                self.client.table(CALLS_TABLE)
                .select("*")
                .eq("id", call_id)
                .limit(1)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error("Error fetching call record", id=call_id, error=str(e))
            return None

    async def get_call_by_external_id(self, ultravox_call_id: str) -> dict[str, Any] | None:
        """Fetch a call record by the provider's call id."""
        try:
            response = await _execute(
                self.client.table(CALLS_TABLE)
                .select("*")
                .eq("ultravox_call_id", ultravox_call_id)
                .limit(1)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error("Error fetching call by external id", ultravox_call_id=ultravox_call_id, error=str(e))
            return None

    async def complete_call_by_external_id(
        self,
        ultravox_call_id: str,
        duration_seconds: int | None,
        summary: str,
    ) -> dict[str, Any] | None:
        """
        Mark a call completed from the provider's end-of-call webhook.

        Rows already finalised as missed/failed are left untouched.
        """
        try:
            response = await _execute(
                self.client.table(CALLS_TABLE)
                .update({
                    "ended_at": _now_iso(),
                    "duration_seconds": duration_seconds,
                    "status": CallStatus.COMPLETED.value,
                    "summary": summary,
                })
                .eq("ultravox_call_id", ultravox_call_id)
                .in_("status", _COMPLETABLE)
            )
            if response.data:
                return response.data[0]
            return None
        except Exception as e:
            logger.error("Error completing call", ultravox_call_id=ultravox_call_id, error=str(e))
            return None

    async def finalize_call(
        self,
        call_id: str,
        status: CallStatus,
        summary: str | None = None,
    ) -> dict[str, Any] | None:
        """Client-initiated finalisation; only applies to ongoing rows."""
        updates: dict[str, Any] = {"ended_at": _now_iso(), "status": status.value}
        if summary:
            updates["summary"] = summary
        try:
            response = await _execute(
                self.client.table(CALLS_TABLE)
                .update(updates)
                .eq("id", call_id)
                .eq("status", CallStatus.ONGOING.value)
            )
            if response.data:
                return response.data[0]
            return None
        except Exception as e:
            logger.error("Error finalizing call", call_id=call_id, status=status.value, error=str(e))
            return None

    async def list_stale_ongoing_calls(
        self,
        older_than: timedelta,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Ongoing calls started before ``now - older_than``, oldest first."""
        cutoff = (datetime.now(timezone.utc) - older_than).isoformat()
        try:
            response = await _execute(
                self.client.table(CALLS_TABLE)
                .select("id, lead_id, ultravox_call_id, started_at")
                .eq("status", CallStatus.ONGOING.value)
                .lt("started_at", cutoff)
                .order("started_at", desc=False)
                .limit(limit)
            )
            return response.data or []
        except Exception as e:
            logger.error("Error listing stale calls", error=str(e))
            return []


# Global accessor
def get_db() -> DatabaseClient:
    if DatabaseClient._instance is None:
        DatabaseClient._instance = DatabaseClient.from_settings()
    return DatabaseClient._instance
