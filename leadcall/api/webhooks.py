"""
API Router: Provider Webhooks.

Receives Ultravox's call-ended callback. Once the call has been
processed locally the handler always answers success, so a call whose
record or lead cannot be resolved is not redelivered forever.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from leadcall.api.deps import get_app_settings, get_completion_handler
from leadcall.config import CALL_ENDED_WEBHOOK_PATH, Settings
from leadcall.exceptions import ProviderError
from leadcall.logging_config import get_logger
from leadcall.schemas.call import CallEndedEvent
from leadcall.services.call_completion import CallCompletionHandler

logger = get_logger(__name__)
router = APIRouter(tags=["Webhooks"])

SIGNATURE_HEADER = "X-Ultravox-Webhook-Signature"
TIMESTAMP_HEADER = "X-Ultravox-Webhook-Timestamp"
MAX_CLOCK_SKEW_SECONDS = 300


def _parse_timestamp(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


def verify_signature(secret: str, body: bytes, timestamp: str, signatures: str, now: float | None = None) -> bool:
    """
    Check an HMAC-SHA256 webhook signature over ``body + timestamp``.

    ``signatures`` may hold several comma-separated hex digests (key
    rotation); any match is accepted.
    """
    if not timestamp or not signatures:
        return False
    try:
        sent_at = _parse_timestamp(timestamp)
    except ValueError:
        return False
    if abs((now or time.time()) - sent_at) > MAX_CLOCK_SKEW_SECONDS:
        return False

    expected = hmac.new(secret.encode(), body + timestamp.encode(), hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, sig.strip()) for sig in signatures.split(","))


@router.post(CALL_ENDED_WEBHOOK_PATH)
async def call_ended(
    request: Request,
    handler: CallCompletionHandler = Depends(get_completion_handler),
    settings: Settings = Depends(get_app_settings),
) -> Any:
    """Finalise a call and re-qualify its lead."""
    body = await request.body()

    if settings.ultravox_webhook_secret:
        valid = verify_signature(
            settings.ultravox_webhook_secret,
            body,
            request.headers.get(TIMESTAMP_HEADER, ""),
            request.headers.get(SIGNATURE_HEADER, ""),
        )
        if not valid:
            logger.warning("webhook_signature_invalid")
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = CallEndedEvent.model_validate_json(body)
    except ValidationError as e:
        logger.warning("webhook_payload_invalid", error=str(e))
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid payload"})

    try:
        outcome = await handler.handle_call_ended(event.call_id, event.end_reason, event.duration)
    except ProviderError as e:
        # Transcript unavailable right now; let the provider redeliver
        logger.error("webhook_transcript_fetch_failed", status=e.status_code, call_id=event.call_id)
        return JSONResponse(status_code=502, content={"success": False, "error": str(e)})

    logger.info(
        "webhook_processed",
        call_updated=outcome.call_updated,
        lead_updated=outcome.lead_updated,
    )
    return {"success": True}
