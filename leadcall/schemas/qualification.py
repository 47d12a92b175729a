"""
Data models for transcript turns and post-call qualification results.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InterestLevel(str, Enum):
    UNKNOWN = "unknown"
    NOT_INTERESTED = "Not Interested"
    INTERESTED = "Interested"
    CONTACTED = "Contacted"


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


# Provider message roles mapped onto transcript roles
_ROLE_ALIASES = {
    "message_role_user": TranscriptRole.USER.value,
    "message_role_agent": TranscriptRole.ASSISTANT.value,
    "agent": TranscriptRole.ASSISTANT.value,
    "message_role_system": TranscriptRole.SYSTEM.value,
    "message_role_tool_call": TranscriptRole.TOOL.value,
    "message_role_tool_result": TranscriptRole.TOOL.value,
}


def normalize_role(value: Any) -> Any:
    """Map provider role names (e.g. ``MESSAGE_ROLE_AGENT``) onto transcript roles."""
    if isinstance(value, str):
        lowered = value.lower()
        return _ROLE_ALIASES.get(lowered, lowered)
    return value


class TranscriptTurn(BaseModel):
    """One message of a call transcript."""
    model_config = ConfigDict(frozen=True)

    role: TranscriptRole
    text: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        return normalize_role(value)

    @field_validator("text", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class QualificationResult(BaseModel):
    """Outcome of classifying one finished call's transcript."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    transcript: str = ""
    interest_level: InterestLevel = Field(default=InterestLevel.UNKNOWN, alias="interestLevel")
    follow_up_required: bool = Field(default=False, alias="followUpRequired")
    scheduled_time: Optional[str] = Field(default=None, alias="scheduledTime")
    notes: str = ""
