"""
Call Orchestrator Service.

Places outbound AI-voice calls to leads through Ultravox, records them,
and handles the user-initiated hang-up path: terminating the Twilio
leg and finalising the local call record.

Dispatch never retries. A failure is surfaced to the caller as-is and
no call record is written unless the provider accepted the call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from leadcall.config import Settings
from leadcall.db import DatabaseClient
from leadcall.exceptions import DispatchError, PersistenceError
from leadcall.logging_config import call_id_var, get_logger, mask_phone
from leadcall.schemas.call import CallStatus
from leadcall.schemas.lead import AgentPersona, Lead
from leadcall.schemas.voice import ExternalVoice, NativeVoice
from leadcall.services.phone import normalize_phone
from leadcall.services.prompts import build_system_prompt, language_hint_for
from leadcall.services.telephony import TelephonyClient, TerminationResult
from leadcall.services.ultravox import UltravoxClient
from leadcall.services.voice import resolve_voice

logger = get_logger(__name__)

VoiceInput = Union[NativeVoice, ExternalVoice, str]


@dataclass(frozen=True)
class DispatchResult:
    ultravox_call_id: str
    join_url: Optional[str]
    db_call_id: Optional[str]


def build_call_request(
    *,
    phone_number: str,
    system_prompt: str,
    voice: Union[str, dict[str, Any]],
    language_hint: str,
    from_number: str,
    callback_url: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Compose the Ultravox create-call payload for an outbound Twilio leg."""
    request: dict[str, Any] = {
        "systemPrompt": system_prompt,
        "voice": voice,
        "languageHint": language_hint,
        "medium": {
            "twilio": {
                "outgoing": {
                    "to": phone_number,
                    "from": from_number,
                },
            },
        },
        # The callee answers the phone, so they speak first
        "firstSpeakerSettings": {"user": {}},
        "recordingEnabled": True,
        "metadata": {k: str(v) for k, v in (metadata or {}).items() if v is not None},
    }
    if callback_url:
        request["callbacks"] = {"ended": {"url": callback_url}}
    return request


class CallOrchestrator:
    """
    Dispatches and terminates outbound calls.

    Provider clients and the store are injected once at startup and
    shared across requests; the orchestrator itself holds no per-call
    state.
    """

    def __init__(
        self,
        *,
        db: DatabaseClient,
        ultravox: UltravoxClient,
        telephony: TelephonyClient,
        settings: Settings,
    ) -> None:
        self.db = db
        self.ultravox = ultravox
        self.telephony = telephony
        self.settings = settings

    # -- Persona / lead lookup --

    async def _load_lead(self, lead_id: Optional[str]) -> Optional[Lead]:
        if not lead_id:
            return None
        row = await self.db.get_lead(lead_id)
        if not row:
            logger.warning("dispatch_lead_not_found", lead_id=lead_id)
            return None
        try:
            return Lead.model_validate(row)
        except ValidationError as e:
            logger.warning("dispatch_lead_invalid", lead_id=lead_id, error=str(e))
            return None

    async def _load_persona(self, agent_id: Optional[str]) -> Optional[AgentPersona]:
        if not agent_id:
            return None
        row = await self.db.get_agent(agent_id)
        if not row:
            logger.warning("dispatch_agent_not_found", agent_id=agent_id)
            return None
        try:
            return AgentPersona.model_validate(row)
        except ValidationError as e:
            logger.warning("dispatch_agent_invalid", agent_id=agent_id, error=str(e))
            return None

    # -- Dispatching --

    async def dispatch_call(
        self,
        *,
        phone_number: Optional[str],
        lead_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
        voice: Optional[VoiceInput] = None,
        language_hint: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> DispatchResult:
        """
        Place an outbound call to a lead.

        Explicit ``system_prompt`` / ``voice`` / ``language_hint`` override
        the persona's values.

        Raises:
            InvalidPhoneNumberError: before any network call if the number
                is missing or implausible.
            ProviderError: if Ultravox rejects the call.
            DispatchError: if the provider is not configured.
            PersistenceError: if the call was placed but could not be recorded.
        """
        formatted = normalize_phone(phone_number, self.settings.default_country_code)
        if not self.settings.twilio_phone_number:
            raise DispatchError("TWILIO_PHONE_NUMBER is not configured")

        persona = await self._load_persona(agent_id)
        prompt = system_prompt
        if not prompt:
            lead = await self._load_lead(lead_id)
            prompt = build_system_prompt(persona, lead)

        selected_voice: VoiceInput = (
            voice
            or (persona.voice_id if persona and persona.voice_id else None)
            or NativeVoice(voice_id=self.settings.default_voice)
        )
        voice_config = resolve_voice(
            selected_voice,
            provider=self.settings.external_voice_provider,
            model=self.settings.external_voice_model,
            speed=persona.voice_speed if persona else None,
        )
        language = language_hint or language_hint_for(
            persona.language_style if persona else None,
            self.settings.default_language_hint,
        )

        request = build_call_request(
            phone_number=formatted,
            system_prompt=prompt,
            voice=voice_config,
            language_hint=language,
            from_number=self.settings.twilio_phone_number,
            callback_url=self.settings.call_ended_callback_url,
            metadata={"leadId": lead_id, "agentId": agent_id, **(metadata or {})},
        )

        logger.info(
            "call_dispatching",
            phone=mask_phone(formatted),
            lead_id=lead_id,
            agent_id=agent_id,
            language=language,
            webhooks=self.settings.webhooks_enabled,
        )

        response = await self.ultravox.create_call(request)
        ultravox_call_id = response.get("callId")
        if not ultravox_call_id:
            raise DispatchError("Ultravox did not return a call id")
        call_id_var.set(ultravox_call_id)

        record = await self.db.create_call_record(lead_id, ultravox_call_id)
        if not record:
            raise PersistenceError(
                f"Call {ultravox_call_id} was placed but could not be logged",
                external_call_id=ultravox_call_id,
            )

        logger.info("call_dispatched", db_call_id=record.get("id"), lead_id=lead_id)
        return DispatchResult(
            ultravox_call_id=ultravox_call_id,
            join_url=response.get("joinUrl"),
            db_call_id=record.get("id"),
        )

    # -- Termination --

    async def end_call(
        self,
        *,
        phone_number: Optional[str],
        db_call_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> tuple[TerminationResult, bool]:
        """
        Hang up the live leg for ``phone_number``.

        When ``db_call_id`` is given and the leg was terminated, the local
        record is finalised as completed. Returns the termination result
        and whether a record was finalised.
        """
        formatted = normalize_phone(phone_number, self.settings.default_country_code)
        result = await self.telephony.end_call_by_phone_number(formatted)

        finalized = False
        if result.success and db_call_id:
            finalized = await self.finalize_call(
                db_call_id,
                CallStatus.COMPLETED,
                summary or "Call ended by operator",
            )
        return result, finalized

    async def finalize_call(
        self,
        db_call_id: str,
        status: CallStatus = CallStatus.COMPLETED,
        summary: Optional[str] = None,
    ) -> bool:
        """
        Move an ongoing call record into a terminal status.

        Returns False if the record does not exist or is already terminal;
        the provider webhook may have won the race.
        """
        row = await self.db.finalize_call(db_call_id, status, summary)
        if row is None:
            logger.info("finalize_call_skipped", db_call_id=db_call_id, status=status.value)
            return False
        logger.info("call_finalized", db_call_id=db_call_id, status=status.value)
        return True
