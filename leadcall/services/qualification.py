"""
Transcript Qualification Engine.

Deterministic, keyword-driven classification of a finished call's
transcript into a lead interest level, plus best-effort extraction of a
requested callback time. There is no model in the loop: the rule table
below is versioned configuration and can be replaced wholesale from a
JSON file without touching the control flow.

Priority is fixed: a refusal always beats enthusiasm, enthusiasm beats
curiosity, and curiosity beats the length-based fallback.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leadcall.logging_config import get_logger
from leadcall.schemas.qualification import (
    InterestLevel,
    QualificationResult,
    TranscriptRole,
    TranscriptTurn,
    normalize_role,
)

logger = get_logger(__name__)

_TIME = r"(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)"


class QualificationNotes(BaseModel):
    """Default human-readable note for each outcome category."""
    model_config = ConfigDict(frozen=True)

    callback: str = "Callback requested: {time}"
    not_interested: str = "Lead declined or asked not to be called"
    high_interest: str = "High interest - schedule follow-up"
    moderate_interest: str = "Moderate interest - may need nurturing"
    conversation: str = "Call completed - needs review"
    brief: str = "Brief call - may have been missed/busy"


class QualificationRules(BaseModel):
    """
    Versioned keyword and pattern table.

    Keyword sets cover English plus romanized Tamil ("Tanglish"). All
    matching is substring matching against the case-folded transcript.
    """

    model_config = ConfigDict(frozen=True)

    version: str = "2024.1"
    negative_keywords: tuple[str, ...] = (
        "not interested", "no thanks", "busy", "don't call", "stop calling",
        "wrong number", "remove my number", "do not call",
        # Tanglish
        "venda", "time illa", "busy ah irukken", "call panna vendaam",
    )
    high_interest_keywords: tuple[str, ...] = (
        "very interested", "definitely", "sign me up", "let's do it",
        "schedule", "appointment", "meeting", "tomorrow", "next week",
        "call me back", "send details", "whatsapp",
        # Tanglish
        "seri", "ok pa", "sure", "romba nalla iruku", "interested ah irukken",
    )
    moderate_interest_keywords: tuple[str, ...] = (
        "interested", "tell me more", "sounds good", "maybe", "possibly",
        "how much", "price", "cost", "what is the rate",
        # Tanglish
        "sollunga", "konjam yosikaren", "pakalaam",
    )
    # Tried in order; group 1 is the requested time
    schedule_patterns: tuple[str, ...] = (
        rf"tomorrow at {_TIME}",
        rf"call (?:me )?(?:back )?at {_TIME}",
        rf"{_TIME}\s*(?:ku|la)?\s*call pannunga",
    )
    conversation_threshold: int = Field(default=100, ge=0)
    notes: QualificationNotes = QualificationNotes()

    @field_validator("negative_keywords", "high_interest_keywords", "moderate_interest_keywords")
    @classmethod
    def _casefold_keywords(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(kw.casefold() for kw in value if kw.strip())

    @field_validator("schedule_patterns")
    @classmethod
    def _patterns_compile(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in value:
            compiled = re.compile(pattern)
            if compiled.groups < 1:
                raise ValueError(f"Schedule pattern needs a capture group: {pattern!r}")
        return value

    def compiled_patterns(self) -> tuple[re.Pattern[str], ...]:
        return _compile(self.schedule_patterns)


@lru_cache(maxsize=16)
def _compile(patterns: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


DEFAULT_RULES = QualificationRules()


def load_rules(path: Union[str, Path, None]) -> QualificationRules:
    """
    Load a rule table from a JSON file.

    Keys missing from the file keep their built-in defaults. An empty
    path returns ``DEFAULT_RULES``.
    """
    if not path:
        return DEFAULT_RULES
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    rules = QualificationRules.model_validate(data)
    logger.info("qualification_rules_loaded", path=str(path), version=rules.version)
    return rules


TurnLike = Union[TranscriptTurn, Mapping[str, object]]

_SPOKEN_ROLES = (TranscriptRole.USER, TranscriptRole.ASSISTANT)
_SPOKEN_ROLE_NAMES = {role.value for role in _SPOKEN_ROLES}


def render_transcript(turns: Iterable[TurnLike]) -> str:
    """Join user and assistant turns as ``role: text`` lines; system and tool turns are dropped."""
    lines = []
    for turn in turns:
        if not isinstance(turn, TranscriptTurn):
            # Raw provider messages may carry roles we never classify
            if normalize_role(turn.get("role")) not in _SPOKEN_ROLE_NAMES:
                continue
            turn = TranscriptTurn.model_validate(turn)
        if turn.role not in _SPOKEN_ROLES:
            continue
        lines.append(f"{turn.role.value}: {turn.text}")
    return "\n".join(lines)


def extract_callback_time(text: str, rules: QualificationRules = DEFAULT_RULES) -> str | None:
    """Return the first requested callback time found in ``text``, if any."""
    for pattern in rules.compiled_patterns():
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(kw in text for kw in keywords)


def qualify_transcript(
    turns: Iterable[TurnLike],
    rules: QualificationRules = DEFAULT_RULES,
) -> QualificationResult:
    """
    Classify a call transcript into a lead interest level.

    Args:
        turns: Ordered transcript messages (``TranscriptTurn`` or raw
            ``{"role", "text"}`` mappings from the provider).
        rules: Keyword/pattern table to classify with.

    Returns:
        A QualificationResult. The same input always yields the same result.
    """
    transcript = render_transcript(turns)
    folded = transcript.casefold()
    notes = rules.notes

    scheduled_time = extract_callback_time(folded, rules)
    follow_up = scheduled_time is not None
    note = notes.callback.format(time=scheduled_time) if scheduled_time else ""

    if _contains_any(folded, rules.negative_keywords):
        level = InterestLevel.NOT_INTERESTED
        note = note or notes.not_interested
    elif _contains_any(folded, rules.high_interest_keywords):
        level = InterestLevel.INTERESTED
        follow_up = True
        note = note or notes.high_interest
    elif _contains_any(folded, rules.moderate_interest_keywords):
        level = InterestLevel.INTERESTED
        note = note or notes.moderate_interest
    elif len(transcript) > rules.conversation_threshold:
        level = InterestLevel.CONTACTED
        note = note or notes.conversation
    else:
        level = InterestLevel.CONTACTED
        note = note or notes.brief

    return QualificationResult(
        transcript=transcript,
        interest_level=level,
        follow_up_required=follow_up,
        scheduled_time=scheduled_time,
        notes=note,
    )
