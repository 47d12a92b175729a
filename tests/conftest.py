import itertools
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from leadcall.api import middleware
from leadcall.config import Settings
from leadcall.services.telephony import TelephonyClient
from leadcall.services.ultravox import UltravoxClient

UV_BASE = "https://api.ultravox.test/api"


class FakeDatabase:
    """In-memory stand-in for DatabaseClient with the same async surface."""

    def __init__(self):
        self.leads: dict[str, dict] = {}
        self.agents: dict[str, dict] = {}
        self.calls: dict[str, dict] = {}
        self.fail_writes = False
        self.lead_updates: list[tuple[str, dict]] = []
        self._ids = itertools.count(1)

    async def get_lead(self, lead_id):
        return self.leads.get(lead_id)

    async def update_lead(self, lead_id, updates):
        self.lead_updates.append((lead_id, updates))
        if self.fail_writes or lead_id not in self.leads:
            return None
        self.leads[lead_id].update(updates)
        return self.leads[lead_id]

    async def get_agent(self, agent_id):
        return self.agents.get(agent_id)

    async def create_call_record(self, lead_id, ultravox_call_id, summary="Call initiated via Ultravox"):
        if self.fail_writes:
            return None
        call_id = f"call-{next(self._ids)}"
        self.calls[call_id] = {
            "id": call_id,
            "lead_id": lead_id,
            "ultravox_call_id": ultravox_call_id,
            "started_at": "2026-01-01T10:00:00+00:00",
            "ended_at": None,
            "duration_seconds": None,
            "status": "ongoing",
            "summary": summary,
        }
        return self.calls[call_id]

    async def get_call_record(self, call_id):
        return self.calls.get(call_id)

    async def get_call_by_external_id(self, ultravox_call_id):
        for row in self.calls.values():
            if row["ultravox_call_id"] == ultravox_call_id:
                return row
        return None

    async def complete_call_by_external_id(self, ultravox_call_id, duration_seconds, summary):
        if self.fail_writes:
            return None
        row = await self.get_call_by_external_id(ultravox_call_id)
        if row is None or row["status"] not in ("ongoing", "completed"):
            return None
        row.update({
            "ended_at": "2026-01-01T10:05:00+00:00",
            "duration_seconds": duration_seconds,
            "status": "completed",
            "summary": summary,
        })
        return row

    async def finalize_call(self, call_id, status, summary=None):
        row = self.calls.get(call_id)
        if self.fail_writes or row is None or row["status"] != "ongoing":
            return None
        row["status"] = status.value
        row["ended_at"] = "2026-01-01T10:05:00+00:00"
        if summary:
            row["summary"] = summary
        return row

    async def list_stale_ongoing_calls(self, older_than: timedelta, limit=50):
        return [row for row in self.calls.values() if row["status"] == "ongoing"][:limit]


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    middleware.limiter.reset()
    yield


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ultravox_api_key="test-key",
        ultravox_base_url=UV_BASE,
        ultravox_webhook_secret="",
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_phone_number="+15550001111",
        backend_url="https://leadcall.example.com",
        default_country_code="+91",
        default_voice="terrence",
        qualification_rules_path="",
    )


@pytest.fixture
def fake_db():
    db = FakeDatabase()
    db.leads["lead-1"] = {
        "id": "lead-1",
        "name": "Priya",
        "business_name": "Sunrise Bakery",
        "phone": "9876543210",
        "email": "priya@sunrise.example",
        "status": "New",
        "source": "Maps",
    }
    db.agents["agent-1"] = {
        "id": "agent-1",
        "name": "Asha",
        "tone": "Friendly",
        "script": "Hi {customer_name}, I'm calling {business_name} about rooftop solar.",
        "voice_id": "V9LCAAi4tTlqe9",
        "voice_speed": 1.1,
        "language_style": "Tanglish",
    }
    return db


@pytest.fixture
def ultravox():
    return UltravoxClient(api_key="test-key", base_url=UV_BASE)


def make_twilio_call(sid, to, from_="+15550001111"):
    return SimpleNamespace(sid=sid, to=to, from_=from_)


@pytest.fixture
def twilio_client():
    """MagicMock Twilio client whose calls.list answers per status."""
    client = MagicMock()
    client.legs_by_status = {}
    client.calls.list.side_effect = lambda status, limit: client.legs_by_status.get(status, [])
    return client


@pytest.fixture
def telephony(twilio_client):
    return TelephonyClient(client=twilio_client)
