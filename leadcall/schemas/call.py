"""
Data models for outbound calls, call records and provider webhooks.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leadcall.schemas.voice import VoiceSpec


class CallStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    MISSED = "missed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not CallStatus.ONGOING

    def can_transition_to(self, target: "CallStatus") -> bool:
        """Only ongoing -> terminal is allowed; re-applying completed is a no-op."""
        if self is CallStatus.ONGOING:
            return target.is_terminal
        return self is CallStatus.COMPLETED and target is CallStatus.COMPLETED


class CallRecord(BaseModel):
    id: str
    ultravox_call_id: Optional[str] = None
    lead_id: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    status: CallStatus = CallStatus.ONGOING
    summary: Optional[str] = None

    class Config:
        from_attributes = True


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class OutboundCallRequest(_CamelModel):
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    lead_id: Optional[str] = Field(default=None, alias="leadId")
    agent_id: Optional[str] = Field(default=None, alias="agentId")
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    # Bare strings are shape-sniffed; tagged objects are used as given.
    voice: Optional[Union[VoiceSpec, str]] = None
    language_hint: Optional[str] = Field(default=None, alias="languageHint")
    metadata: dict[str, Any] = Field(default_factory=dict)


class OutboundCallResponse(_CamelModel):
    success: bool = True
    call_sid: str = Field(alias="callSid")
    ultravox_call_id: str = Field(alias="ultravoxCallId")
    join_url: Optional[str] = Field(default=None, alias="joinUrl")
    status: str = "initiated"
    db_call_id: Optional[str] = Field(default=None, alias="dbCallId")


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*s?\s*$")


class CallEndedEvent(_CamelModel):
    """
    End-of-call notification from the voice provider.

    Accepts the flat ``{callId, endReason, duration}`` body as well as the
    provider's envelope form ``{"event": "call.ended", "call": {...}}``.
    """

    call_id: str = Field(alias="callId")
    end_reason: Optional[str] = Field(default=None, alias="endReason")
    duration: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_envelope(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("call"), dict):
            return {**data["call"], **{k: v for k, v in data.items() if k != "call"}}
        return data

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> Any:
        # Provider durations arrive as numbers or as "123.4s" strings
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)):
            return int(round(value))
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValueError(f"Unrecognised duration: {value!r}")
        return int(round(float(match.group(1))))


class EndCallRequest(_CamelModel):
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    db_call_id: Optional[str] = Field(default=None, alias="dbCallId")
    summary: Optional[str] = None


class EndCallResponse(_CamelModel):
    success: bool = True
    call_sid: str = Field(alias="callSid")
    finalized: bool = False


class FinalizeCallRequest(_CamelModel):
    status: CallStatus = CallStatus.COMPLETED
    summary: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _must_be_terminal(cls, value: CallStatus) -> CallStatus:
        if not value.is_terminal:
            raise ValueError("A call can only be finalized into a terminal status")
        return value
