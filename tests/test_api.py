"""
Endpoint tests for the call API.

Services are wired onto ``app.state`` with in-memory fakes and mocked
provider HTTP; the lifespan is not run.
"""

import json

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from leadcall.api import middleware
from leadcall.api_server import app, init_services

from conftest import UV_BASE, make_twilio_call

WEBHOOK = "/webhooks/ultravox/call-ended"


@pytest.fixture
def client(settings, fake_db, ultravox, telephony):
    init_services(app, settings, db=fake_db, ultravox=ultravox, telephony=telephony)
    return TestClient(app)


class TestSystem:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "leadcall"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestOutboundCall:
    @respx.mock
    def test_success(self, client, fake_db):
        respx.post(f"{UV_BASE}/calls").mock(
            return_value=httpx.Response(201, json={"callId": "uv-1", "joinUrl": "wss://join/uv-1"})
        )

        response = client.post("/outbound-call", json={
            "phoneNumber": "9876543210",
            "leadId": "lead-1",
            "agentId": "agent-1",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["callSid"] == "uv-1"
        assert data["ultravoxCallId"] == "uv-1"
        assert data["joinUrl"] == "wss://join/uv-1"
        assert data["status"] == "initiated"
        assert data["dbCallId"] in fake_db.calls

    @respx.mock
    def test_tagged_voice_is_accepted(self, client):
        route = respx.post(f"{UV_BASE}/calls").mock(return_value=httpx.Response(201, json={"callId": "uv-1"}))

        response = client.post("/outbound-call", json={
            "phoneNumber": "+919876543210",
            "voice": {"kind": "native", "voiceId": "Mark"},
        })

        assert response.status_code == 200
        assert json.loads(route.calls[0].request.content)["voice"] == "Mark"

    def test_invalid_phone_is_400(self, client, fake_db):
        response = client.post("/outbound-call", json={"phoneNumber": "12345"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "Invalid phone number format" in body["error"]
        assert fake_db.calls == {}

    def test_missing_phone_is_400(self, client):
        response = client.post("/outbound-call", json={"leadId": "lead-1"})
        assert response.status_code == 400
        assert response.json()["error"] == "Phone number is required"

    @respx.mock
    def test_provider_error_is_500_with_provider_body(self, client, fake_db):
        respx.post(f"{UV_BASE}/calls").mock(return_value=httpx.Response(400, text="bad medium"))

        response = client.post("/outbound-call", json={"phoneNumber": "9876543210"})

        assert response.status_code == 500
        body = response.json()
        assert body["providerStatus"] == 400
        assert "bad medium" in body["error"]
        assert fake_db.calls == {}

    @respx.mock
    def test_unrecorded_call_is_500_with_provider_id(self, client, fake_db):
        respx.post(f"{UV_BASE}/calls").mock(return_value=httpx.Response(201, json={"callId": "uv-orphan"}))
        fake_db.fail_writes = True

        response = client.post("/outbound-call", json={"phoneNumber": "9876543210"})

        assert response.status_code == 500
        assert response.json()["ultravoxCallId"] == "uv-orphan"


class TestEndCall:
    def test_hangs_up_and_finalizes(self, client, fake_db, twilio_client):
        record = fake_db.calls["call-9"] = {
            "id": "call-9", "lead_id": "lead-1", "ultravox_call_id": "uv-9", "status": "ongoing", "summary": None,
        }
        twilio_client.legs_by_status["in-progress"] = [make_twilio_call("CA1", "+919876543210")]

        response = client.post("/end-call", json={"phoneNumber": "9876543210", "dbCallId": "call-9"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "callSid": "CA1", "finalized": True}
        assert record["status"] == "completed"

    def test_no_active_call_is_404(self, client):
        response = client.post("/end-call", json={"phoneNumber": "9876543210"})
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "No active call found"}

    def test_missing_phone_is_400(self, client):
        assert client.post("/end-call", json={}).status_code == 400


class TestFinalize:
    def test_finalizes_ongoing_record(self, client, fake_db):
        fake_db.calls["call-1"] = {"id": "call-1", "ultravox_call_id": "uv-1", "status": "ongoing", "summary": None}

        response = client.post("/calls/call-1/finalize", json={"status": "missed", "summary": "No answer"})

        assert response.json() == {"success": True, "finalized": True, "dbCallId": "call-1"}
        assert fake_db.calls["call-1"]["status"] == "missed"

    def test_ongoing_is_not_a_valid_target(self, client):
        assert client.post("/calls/call-1/finalize", json={"status": "ongoing"}).status_code == 422


class TestCallEndedWebhook:
    @respx.mock
    def test_processes_call(self, client, fake_db):
        fake_db.calls["call-1"] = {
            "id": "call-1", "lead_id": "lead-1", "ultravox_call_id": "uv-1", "status": "ongoing", "summary": None,
        }
        respx.get(f"{UV_BASE}/calls/uv-1/messages").mock(return_value=httpx.Response(200, json={
            "results": [{"role": "MESSAGE_ROLE_USER", "text": "Please send details"}],
            "next": None,
        }))

        response = client.post(WEBHOOK, json={"callId": "uv-1", "endReason": "hangup", "duration": "61.2s"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert fake_db.calls["call-1"]["status"] == "completed"
        assert fake_db.calls["call-1"]["duration_seconds"] == 61
        assert fake_db.leads["lead-1"]["status"] == "Interested"

    @respx.mock
    def test_unknown_call_still_succeeds(self, client, fake_db):
        respx.get(f"{UV_BASE}/calls/uv-x/messages").mock(return_value=httpx.Response(404))

        response = client.post(WEBHOOK, json={"call": {"callId": "uv-x"}, "event": "call.ended"})

        assert response.status_code == 200
        assert fake_db.lead_updates == []

    def test_invalid_payload_is_400(self, client):
        assert client.post(WEBHOOK, json={"endReason": "hangup"}).status_code == 400

    @respx.mock
    def test_transcript_outage_is_502(self, client):
        respx.get(f"{UV_BASE}/calls/uv-1/messages").mock(return_value=httpx.Response(503))
        assert client.post(WEBHOOK, json={"callId": "uv-1"}).status_code == 502


class TestProviderProxies:
    @respx.mock
    def test_status(self, client):
        respx.get(f"{UV_BASE}/calls/uv-1").mock(return_value=httpx.Response(200, json={"callId": "uv-1"}))
        assert client.get("/calls/uv-1/status").json() == {"callId": "uv-1"}

    @respx.mock
    def test_status_of_missing_call(self, client):
        respx.get(f"{UV_BASE}/calls/uv-x").mock(return_value=httpx.Response(404))
        assert client.get("/calls/uv-x/status").json()["status"] == "unknown"

    @respx.mock
    def test_messages(self, client):
        respx.get(f"{UV_BASE}/calls/uv-1/messages").mock(
            return_value=httpx.Response(200, json={"results": [{"role": "MESSAGE_ROLE_USER", "text": "hi"}]})
        )
        assert client.get("/calls/uv-1/messages").json()["results"][0]["text"] == "hi"

    @respx.mock
    def test_recording(self, client):
        respx.get(f"{UV_BASE}/calls/uv-1").mock(
            return_value=httpx.Response(200, json={"recordingUrl": "https://rec/1.wav", "duration": "30s"})
        )
        assert client.get("/calls/uv-1/recording").json()["recordingUrl"] == "https://rec/1.wav"

    @respx.mock
    def test_voices(self, client):
        respx.get(f"{UV_BASE}/voices").mock(return_value=httpx.Response(200, json={"results": []}))
        assert client.get("/voices").json() == {"results": []}


class TestProviderUnreachable:
    @respx.mock
    def test_outbound_call_timeout_is_json_500(self, client, fake_db):
        respx.post(f"{UV_BASE}/calls").mock(side_effect=httpx.ConnectTimeout("connect timed out"))

        response = client.post("/outbound-call", json={"phoneNumber": "9876543210", "leadId": "lead-1"})

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        body = response.json()
        assert body["success"] is False
        assert body["providerStatus"] == 503
        assert fake_db.calls == {}

    @respx.mock
    def test_webhook_timeout_asks_for_redelivery(self, client, fake_db):
        fake_db.calls["call-1"] = {
            "id": "call-1", "lead_id": "lead-1", "ultravox_call_id": "uv-1", "status": "ongoing", "summary": None,
        }
        respx.get(f"{UV_BASE}/calls/uv-1/messages").mock(side_effect=httpx.ConnectTimeout("connect timed out"))

        response = client.post(WEBHOOK, json={"callId": "uv-1"})

        assert response.status_code == 502
        assert response.json()["success"] is False
        assert fake_db.calls["call-1"]["status"] == "ongoing"

    def test_rate_limited_response_is_json(self, client, monkeypatch):
        monkeypatch.setattr(middleware.limiter, "max_requests", 1)
        client.get("/voices-not-a-route")
        response = client.get("/voices-not-a-route")

        assert response.status_code == 429
        assert response.json() == {"success": False, "error": "Rate limit exceeded"}
