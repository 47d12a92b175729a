"""
Tagged voice identifiers.

A persona's voice is either a platform-native voice (addressed by the
provider's own id) or a voice hosted by an external TTS provider that
the call provider loads through a dynamic definition.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class NativeVoice(BaseModel):
    kind: Literal["native"] = "native"
    voice_id: str = Field(alias="voiceId")

    model_config = {"populate_by_name": True}


class ExternalVoice(BaseModel):
    kind: Literal["external"] = "external"
    provider: str = "elevenLabs"
    voice_id: str = Field(alias="voiceId")
    model: Optional[str] = None
    speed: Optional[float] = Field(default=None, gt=0.0, le=4.0)

    model_config = {"populate_by_name": True}


VoiceSpec = Annotated[Union[NativeVoice, ExternalVoice], Field(discriminator="kind")]
