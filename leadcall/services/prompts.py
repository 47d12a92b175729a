"""
System prompt composition for outbound sales calls.
"""

from __future__ import annotations

from typing import Optional

from leadcall.schemas.lead import AgentPersona, AgentTone, Lead

DEFAULT_SALES_PROMPT = """You are a friendly sales representative for VOCA Solar.
Your goal is to introduce yourself and gauge the customer's interest in solar energy solutions.
Be natural, conversational, and listen carefully to their responses.
Ask about their current energy costs and if they've considered solar before.
If they're interested, offer to schedule a follow-up call with a specialist.
Speak naturally and don't be pushy."""

TONE_INSTRUCTIONS: dict[AgentTone, str] = {
    AgentTone.FRIENDLY: "Keep a warm, friendly tone throughout the call.",
    AgentTone.PROFESSIONAL: "Keep a polite, professional tone throughout the call.",
    AgentTone.ASSERTIVE: "Be confident and direct, and steer the call towards a clear next step.",
}

# Language styles that need a non-default language hint
LANGUAGE_HINTS: dict[str, str] = {
    "Formal Tamil": "ta-IN",
}


def render_script(template: str, lead: Optional[Lead]) -> str:
    """Fill ``{customer_name}`` and ``{business_name}`` placeholders from the lead."""
    if lead is None:
        return template
    return (
        template
        .replace("{customer_name}", lead.name)
        .replace("{business_name}", lead.business_name)
    )


def build_system_prompt(persona: Optional[AgentPersona], lead: Optional[Lead]) -> str:
    """Effective system prompt for a persona/lead pair, or the generic prompt."""
    if persona is None or not persona.script.strip():
        return DEFAULT_SALES_PROMPT

    prompt = render_script(persona.script, lead)
    tone = TONE_INSTRUCTIONS.get(persona.tone)
    if tone:
        prompt = f"{prompt}\n\n{tone}"
    if persona.language_style:
        prompt = f"{prompt}\nSpeak in a {persona.language_style} style."
    return prompt


def language_hint_for(language_style: Optional[str], default: str = "en-US") -> str:
    return LANGUAGE_HINTS.get(language_style or "", default)
