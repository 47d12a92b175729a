"""
API Router: Call Management Endpoints.

Places outbound calls, hangs up live calls, finalises call records and
proxies read-only call data from Ultravox.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from leadcall.api.deps import get_orchestrator, get_ultravox
from leadcall.logging_config import get_logger
from leadcall.schemas.call import (
    EndCallRequest,
    EndCallResponse,
    FinalizeCallRequest,
    OutboundCallRequest,
    OutboundCallResponse,
)
from leadcall.services.call_orchestrator import CallOrchestrator
from leadcall.services.ultravox import UltravoxClient

logger = get_logger(__name__)
router = APIRouter(tags=["Calls"])


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@router.post("/outbound-call", response_model=OutboundCallResponse)
async def outbound_call(
    body: OutboundCallRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> OutboundCallResponse:
    """Place an AI-voice call to a lead."""
    result = await orchestrator.dispatch_call(
        phone_number=body.phone_number,
        lead_id=body.lead_id,
        agent_id=body.agent_id,
        system_prompt=body.system_prompt,
        voice=body.voice,
        language_hint=body.language_hint,
        metadata=body.metadata,
    )
    return OutboundCallResponse(
        call_sid=result.ultravox_call_id,
        ultravox_call_id=result.ultravox_call_id,
        join_url=result.join_url,
        db_call_id=result.db_call_id,
    )


@router.post("/end-call", response_model=EndCallResponse)
async def end_call(
    body: EndCallRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Hang up the live call leg for a phone number."""
    result, finalized = await orchestrator.end_call(
        phone_number=body.phone_number,
        db_call_id=body.db_call_id,
        summary=body.summary,
    )
    if result.success:
        return EndCallResponse(call_sid=result.call_sid, finalized=finalized)
    if result.not_found:
        return _failure(404, result.error)
    return _failure(500, result.error or "Failed to end call")


@router.post("/calls/{db_call_id}/finalize")
async def finalize_call(
    db_call_id: str,
    body: FinalizeCallRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Client-side finalisation of a call record after a manual hang-up."""
    finalized = await orchestrator.finalize_call(db_call_id, body.status, body.summary)
    return {"success": True, "finalized": finalized, "dbCallId": db_call_id}


@router.get("/calls/{call_id}/status")
async def get_call_status(
    call_id: str,
    ultravox: UltravoxClient = Depends(get_ultravox),
) -> dict[str, Any]:
    """Current provider-side state of a call."""
    return await ultravox.get_call(call_id)


@router.get("/calls/{call_id}/messages")
async def get_call_messages(
    call_id: str,
    ultravox: UltravoxClient = Depends(get_ultravox),
) -> dict[str, Any]:
    """Full transcript of a call."""
    return await ultravox.get_call_messages(call_id)


@router.get("/calls/{call_id}/recording")
async def get_call_recording(
    call_id: str,
    ultravox: UltravoxClient = Depends(get_ultravox),
) -> dict[str, Any]:
    """Recording URL for a completed call."""
    return await ultravox.get_recording(call_id)


@router.get("/voices")
async def list_voices(ultravox: UltravoxClient = Depends(get_ultravox)) -> dict[str, Any]:
    """Voices available on the call provider."""
    return await ultravox.list_voices()
