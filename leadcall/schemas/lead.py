"""
Core data models for leads and agent personas.

Rows come straight from Supabase, where most text columns are nullable;
NULLs are read as the column's default rather than rejected.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class LeadStatus(str, Enum):
    NEW = "New"
    CONTACTED = "Contacted"
    INTERESTED = "Interested"
    NOT_INTERESTED = "Not Interested"
    SCHEDULED = "Scheduled"


class LeadSource(str, Enum):
    MAPS = "Maps"
    MANUAL = "Manual"
    UPLOAD = "Upload"


class Lead(BaseModel):
    """A prospective customer as stored in the ``leads`` table."""
    id: str
    name: str = ""
    business_name: str = ""
    address: Optional[str] = None
    phone: str = ""
    email: str = ""  # Leads imported from Maps have none
    status: LeadStatus = LeadStatus.NEW
    notes: Optional[str] = None
    source: Optional[LeadSource] = None

    class Config:
        from_attributes = True

    @field_validator("name", "business_name", "phone", "email", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _null_status(cls, value: Any) -> Any:
        return LeadStatus.NEW if value is None else value


class AgentTone(str, Enum):
    FRIENDLY = "Friendly"
    PROFESSIONAL = "Professional"
    ASSERTIVE = "Assertive"


DEFAULT_VOICE_SPEED = 1.0


class AgentPersona(BaseModel):
    """A named agent configuration applied to an outbound call."""
    id: str
    name: str = ""
    tone: AgentTone = AgentTone.FRIENDLY
    script: str = ""  # May contain {customer_name} / {business_name}
    voice_id: Optional[str] = None
    voice_speed: float = Field(default=DEFAULT_VOICE_SPEED, gt=0.0, le=4.0)
    language_style: Optional[str] = None

    class Config:
        from_attributes = True
        frozen = True

    @field_validator("name", "script", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tone", mode="before")
    @classmethod
    def _null_tone(cls, value: Any) -> Any:
        return AgentTone.FRIENDLY if value in (None, "") else value

    @field_validator("voice_speed", mode="before")
    @classmethod
    def _parse_speed(cls, value: Any) -> Any:
        # Stored as a nullable numeric or text column; unset means normal speed
        if value is None or value == "" or value == 0:
            return DEFAULT_VOICE_SPEED
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return DEFAULT_VOICE_SPEED
        return value
