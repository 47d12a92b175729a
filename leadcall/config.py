"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default for local
development so the app can start with minimal configuration.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CALL_ENDED_WEBHOOK_PATH = "/webhooks/ultravox/call-ended"


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Central configuration for the LeadCall service.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root. Secrets should NEVER
    be committed; use `.env.example` as the template.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── Ultravox (voice-call provider) ───────────────────────────
    ultravox_api_key: str = Field(default="", description="Ultravox API key")
    ultravox_base_url: str = Field(default="https://api.ultravox.ai/api", description="Ultravox REST base URL")
    ultravox_webhook_secret: str = Field(default="", description="Shared secret for signed call-ended webhooks")

    # ── Twilio (telephony layer) ─────────────────────────────────
    twilio_account_sid: str = Field(default="", description="Twilio account SID")
    twilio_auth_token: str = Field(default="", description="Twilio auth token")
    twilio_phone_number: str = Field(default="", description="Origin number for outbound legs")

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service-role key")

    # ── Callbacks ────────────────────────────────────────────────
    backend_url: str = Field(default="", description="Public base URL used to register the call-ended webhook")

    # ── Call Defaults ────────────────────────────────────────────
    default_country_code: str = Field(default="+91", description="Prefix for numbers with no recognisable country code")
    default_voice: str = Field(default="terrence", description="Platform-native voice used when no persona voice is set")
    default_language_hint: str = Field(default="en-US", description="Language hint sent with every call")
    external_voice_provider: str = Field(default="elevenLabs", description="External TTS provider for cloned voices")
    external_voice_model: str = Field(default="eleven_turbo_v2_5", description="Model used for external TTS voices")

    # ── Qualification ────────────────────────────────────────────
    qualification_rules_path: str = Field(default="", description="Optional JSON file overriding the keyword rules")

    # ── Reconciliation Worker ────────────────────────────────────
    reconcile_interval_seconds: float = Field(default=60.0, ge=5.0, description="Poll interval for stale calls")
    reconcile_stale_after_minutes: int = Field(default=15, ge=1, le=1440, description="Age after which an ongoing call is re-checked")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def webhooks_enabled(self) -> bool:
        return bool(self.backend_url)

    @property
    def call_ended_callback_url(self) -> str | None:
        """Full URL of the call-ended webhook, or None when webhooks are disabled."""
        if not self.backend_url:
            return None
        return f"{self.backend_url.rstrip('/')}{CALL_ENDED_WEBHOOK_PATH}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
