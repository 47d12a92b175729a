"""
Error taxonomy for call orchestration.

Validation errors never reach a provider, provider errors carry the
provider's status and body verbatim, and persistence errors mark a
store write that did not land.
"""

from __future__ import annotations


class LeadCallError(Exception):
    """Base class for every error raised by the service layer."""


class InvalidPhoneNumberError(LeadCallError, ValueError):
    """A phone number was missing or could not be normalised."""

    def __init__(self, raw: str | None, formatted: str | None = None) -> None:
        self.raw = raw
        self.formatted = formatted
        if not raw:
            message = "Phone number is required"
        else:
            message = (
                f"Invalid phone number format. Got: {raw}, formatted: {formatted}. "
                "Expected E.164 format like +919876543210"
            )
        super().__init__(message)


class ProviderError(LeadCallError):
    """A voice or telephony provider answered with a non-success status."""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} API error: {status_code} - {body}")


class DispatchError(LeadCallError):
    """An outbound call could not be placed."""


class PersistenceError(LeadCallError):
    """A write to the relational store returned no row."""

    def __init__(self, message: str, external_call_id: str | None = None) -> None:
        self.external_call_id = external_call_id
        super().__init__(message)


class ProviderUnavailableError(ProviderError):
    """The provider could not be reached; no HTTP response was received."""

    STATUS_CODE = 503

    def __init__(self, provider: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(provider, self.STATUS_CODE, f"{type(cause).__name__}: {cause}")
