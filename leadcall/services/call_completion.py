"""
Call Completion Handler.

Runs when the voice provider reports that a call has ended: fetches the
transcript, qualifies it, completes the call record and moves the lead
to its new status.

Store failures here are logged and swallowed so that a call which was
processed locally is never redelivered by the provider. Re-running the
handler for the same call re-applies the same writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from leadcall.db import DatabaseClient
from leadcall.logging_config import call_id_var, get_logger
from leadcall.schemas.qualification import InterestLevel, QualificationResult
from leadcall.services.qualification import DEFAULT_RULES, QualificationRules, qualify_transcript
from leadcall.services.ultravox import UltravoxClient

logger = get_logger(__name__)

SUMMARY_MAX_CHARS = 500
DEFAULT_SUMMARY = "Call completed"


@dataclass(frozen=True)
class CompletionOutcome:
    ultravox_call_id: str
    qualification: QualificationResult
    call_updated: bool
    lead_id: Optional[str] = None
    lead_updated: bool = False


def lead_notes_for(result: QualificationResult) -> str:
    return result.notes or f"Call completed. Interest: {result.interest_level.value}"


class CallCompletionHandler:
    """Processes end-of-call notifications for one call at a time."""

    def __init__(
        self,
        *,
        db: DatabaseClient,
        ultravox: UltravoxClient,
        rules: QualificationRules = DEFAULT_RULES,
    ) -> None:
        self.db = db
        self.ultravox = ultravox
        self.rules = rules

    async def handle_call_ended(
        self,
        ultravox_call_id: str,
        end_reason: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> CompletionOutcome:
        """
        Finalise a call from its transcript.

        Raises:
            ProviderError: if the transcript fetch fails with anything
                other than a 404, so the provider redelivers later.
        """
        call_id_var.set(ultravox_call_id)
        logger.info("call_ended_webhook", end_reason=end_reason, duration=duration)

        # 1. Transcript (a 404 comes back as an empty result)
        messages = await self.ultravox.get_call_messages(ultravox_call_id)

        # 2. Qualification
        result = qualify_transcript(messages.get("results") or [], self.rules)
        logger.info(
            "call_qualified",
            interest_level=result.interest_level.value,
            follow_up=result.follow_up_required,
            scheduled_time=result.scheduled_time,
            rules_version=self.rules.version,
        )

        # 3. Call record
        summary = result.transcript[:SUMMARY_MAX_CHARS] or DEFAULT_SUMMARY
        row = await self.db.complete_call_by_external_id(ultravox_call_id, duration, summary)
        call_updated = row is not None
        if not call_updated:
            logger.warning("call_record_not_completed")

        # 4. Lead
        lead_id, lead_updated = await self._update_lead(ultravox_call_id, result)

        return CompletionOutcome(
            ultravox_call_id=ultravox_call_id,
            qualification=result,
            call_updated=call_updated,
            lead_id=lead_id,
            lead_updated=lead_updated,
        )

    async def _update_lead(
        self,
        ultravox_call_id: str,
        result: QualificationResult,
    ) -> tuple[Optional[str], bool]:
        record = await self.db.get_call_by_external_id(ultravox_call_id)
        lead_id = record.get("lead_id") if record else None
        if not lead_id:
            logger.warning("call_record_without_lead")
            return None, False

        if result.interest_level is InterestLevel.UNKNOWN:
            return lead_id, False

        updated = await self.db.update_lead(lead_id, {
            "status": result.interest_level.value,
            "notes": lead_notes_for(result),
        })
        if updated is None:
            logger.error("lead_status_update_failed", lead_id=lead_id)
            return lead_id, False

        logger.info("lead_status_updated", lead_id=lead_id, status=result.interest_level.value)
        return lead_id, True
