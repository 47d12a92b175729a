"""
Phone number normalisation.

Best-effort conversion of user-entered numbers into ``+<cc><digits>``.
This is a heuristic tuned for the default market (India, then North
America), not a numbering-plan validator: the provider may still reject
a number this module accepts.
"""

from __future__ import annotations

import re

from leadcall.exceptions import InvalidPhoneNumberError

MIN_DIGITS = 10

_DISALLOWED = re.compile(r"[^\d]")
_INDIA_MOBILE = re.compile(r"^[6-9]")


def _clean(raw: str) -> str:
    stripped = raw.strip()
    prefix = "+" if stripped.startswith("+") else ""
    return prefix + _DISALLOWED.sub("", stripped)


def _format(cleaned: str, default_country_code: str) -> str:
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("00"):
        return "+" + cleaned[2:]
    if len(cleaned) == 10 and _INDIA_MOBILE.match(cleaned):
        return "+91" + cleaned
    if len(cleaned) == 10:
        return "+1" + cleaned
    if len(cleaned) == 11 and cleaned.startswith("1"):
        return "+" + cleaned
    if len(cleaned) == 12 and cleaned.startswith("91"):
        return "+" + cleaned
    return default_country_code + cleaned


def normalize_phone(raw: str | None, default_country_code: str = "+91") -> str:
    """
    Normalise ``raw`` into canonical international form.

    Raises:
        InvalidPhoneNumberError: if ``raw`` is empty or the result has
            fewer than ten digits.
    """
    if not raw or not raw.strip():
        raise InvalidPhoneNumberError(raw)

    formatted = _format(_clean(raw), default_country_code)
    if sum(ch.isdigit() for ch in formatted) < MIN_DIGITS:
        raise InvalidPhoneNumberError(raw, formatted)
    return formatted
