"""
Voice Persona Resolver.

Turns a persona's voice into the ``voice`` value of a call request.
Callers should pass a tagged ``NativeVoice`` / ``ExternalVoice``; bare
strings from older persona rows are classified by shape.
"""

from __future__ import annotations

import re
from typing import Any, Union

from leadcall.logging_config import get_logger
from leadcall.schemas.voice import ExternalVoice, NativeVoice

logger = get_logger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
# Identifiers shorter than this that are not UUIDs are external voice ids
EXTERNAL_ID_MAX_LEN = 30

DEFAULT_EXTERNAL_PROVIDER = "elevenLabs"
DEFAULT_EXTERNAL_MODEL = "eleven_turbo_v2_5"


def classify_voice_id(
    voice_id: str,
    provider: str = DEFAULT_EXTERNAL_PROVIDER,
    model: str = DEFAULT_EXTERNAL_MODEL,
) -> Union[NativeVoice, ExternalVoice]:
    """Tag a bare voice identifier as native or external by its shape."""
    if _UUID_RE.match(voice_id):
        return NativeVoice(voice_id=voice_id)
    if voice_id and len(voice_id) < EXTERNAL_ID_MAX_LEN:
        return ExternalVoice(provider=provider, voice_id=voice_id, model=model)
    return NativeVoice(voice_id=voice_id)


def resolve_voice(
    voice: Union[NativeVoice, ExternalVoice, str],
    *,
    provider: str = DEFAULT_EXTERNAL_PROVIDER,
    model: str = DEFAULT_EXTERNAL_MODEL,
    speed: float | None = None,
) -> Union[str, dict[str, Any]]:
    """
    Build the call-time voice configuration.

    Native voices pass through as their id. External voices become a
    dynamic definition naming the provider and model.
    """
    if isinstance(voice, str):
        voice = classify_voice_id(voice, provider=provider, model=model)

    if isinstance(voice, NativeVoice):
        return voice.voice_id

    definition: dict[str, Any] = {
        "voiceId": voice.voice_id,
        "model": voice.model or model,
    }
    effective_speed = voice.speed if voice.speed is not None else speed
    if effective_speed is not None and effective_speed != 1.0:
        definition["speed"] = effective_speed

    logger.debug("external_voice_resolved", provider=voice.provider, voice_id=voice.voice_id)
    return {
        "name": "Custom Voice",
        "definition": {voice.provider: definition},
    }
