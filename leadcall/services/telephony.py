"""
Call Termination Handler.

Finds an in-flight call leg for a phone number at the Twilio layer and
hangs it up. Works purely on telephony legs: it never reads or writes
call records.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from leadcall.exceptions import ProviderError
from leadcall.logging_config import get_logger, mask_phone

logger = get_logger(__name__)

PROVIDER = "Twilio"

# Checked in order; a caller may cancel while the leg is still ringing or queued
ACTIVE_STATUSES = ("in-progress", "ringing", "queued")
LIST_LIMIT = 20

NOT_FOUND_ERROR = "No active call found"
NOT_CONFIGURED_ERROR = "Twilio configuration missing"


@dataclass(frozen=True)
class TerminationResult:
    success: bool
    call_sid: Optional[str] = None
    status: Optional[str] = None  # Leg status the call was found in
    error: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return not self.success and self.error == NOT_FOUND_ERROR


class TelephonyClient:
    """Wrapper around the Twilio REST client for leg-level call control."""

    def __init__(
        self,
        *,
        account_sid: str = "",
        auth_token: str = "",
        client: Optional[Client] = None,
    ) -> None:
        if client is None and account_sid and auth_token:
            client = Client(account_sid, auth_token)
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _find_active_call(self, phone_number: str) -> tuple[Any, str] | None:
        for status in ACTIVE_STATUSES:
            calls = self._client.calls.list(status=status, limit=LIST_LIMIT)
            for call in calls:
                if call.to == phone_number or getattr(call, "from_", None) == phone_number:
                    return call, status
        return None

    def _hang_up(self, call_sid: str) -> None:
        self._client.calls(call_sid).update(status="completed")

    async def end_call_by_phone_number(self, phone_number: str) -> TerminationResult:
        """
        Terminate the active leg whose ``to`` or ``from`` matches ``phone_number``.

        Returns a not-found result when no leg is in progress, ringing or
        queued; the call may simply have ended already.

        Raises:
            ProviderError: if Twilio rejects the list or update request.
        """
        if not self.configured:
            logger.error("twilio_not_configured")
            return TerminationResult(success=False, error=NOT_CONFIGURED_ERROR)

        logger.info("end_call_lookup", phone=mask_phone(phone_number))

        try:
            found = await asyncio.to_thread(self._find_active_call, phone_number)
            if found is None:
                logger.info("end_call_not_found", phone=mask_phone(phone_number))
                return TerminationResult(success=False, error=NOT_FOUND_ERROR)

            call, status = found
            logger.info("end_call_terminating", call_sid=call.sid, leg_status=status)
            await asyncio.to_thread(self._hang_up, call.sid)
        except TwilioRestException as e:
            if e.status == 404:
                # Leg finished between the lookup and the hang-up
                logger.info("end_call_already_ended", phone=mask_phone(phone_number))
                return TerminationResult(success=False, error=NOT_FOUND_ERROR)
            logger.error("twilio_error", status=e.status, error=e.msg)
            raise ProviderError(PROVIDER, e.status, str(e.msg)) from e

        logger.info("end_call_terminated", call_sid=call.sid)
        return TerminationResult(success=True, call_sid=call.sid, status=status)
