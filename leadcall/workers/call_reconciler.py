"""
Call Reconciler Worker.

Finds calls that are still ``ongoing`` long after they started and asks
Ultravox what happened to them. Ended calls go through the same
completion path as the call-ended webhook; calls the provider no longer
knows about are finalised as failed. This covers deployments without a
public BACKEND_URL and webhooks that never arrived.

Start with:
    python -m leadcall.workers.call_reconciler
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timedelta
from typing import Any, Optional

from dotenv import load_dotenv

from leadcall.config import Settings, get_settings
from leadcall.db import DatabaseClient, get_db
from leadcall.exceptions import ProviderError
from leadcall.logging_config import get_logger, setup_logging
from leadcall.schemas.call import CallStatus
from leadcall.services.call_completion import CallCompletionHandler
from leadcall.services.qualification import load_rules
from leadcall.services.ultravox import UltravoxClient

logger = get_logger(__name__)

BATCH_SIZE = 25
PROVIDER_GONE_SUMMARY = "Call not found at provider"


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("unparseable_provider_timestamp", value=str(value))
        return None


def call_duration_seconds(call: dict[str, Any]) -> Optional[int]:
    """Duration of a provider call object, from ``joined`` to ``ended``."""
    joined = _parse_ts(call.get("joined"))
    ended = _parse_ts(call.get("ended"))
    if not joined or not ended:
        return None
    return max(0, int(round((ended - joined).total_seconds())))


class CallReconcilerWorker:
    """
    Periodically settles stale ongoing calls.

    Flow:
    1. Query Supabase for ongoing calls older than the stale threshold
    2. Fetch each call from Ultravox
    3. Ended -> run the completion handler (transcript, qualification, lead)
    4. Unknown to the provider -> finalise the record as failed
    5. Still live -> leave it for the next pass
    """

    def __init__(
        self,
        *,
        db: DatabaseClient,
        ultravox: UltravoxClient,
        completion: CallCompletionHandler,
        settings: Settings,
    ) -> None:
        self.db = db
        self.ultravox = ultravox
        self.completion = completion
        self.settings = settings
        self._running = False

    async def start(self) -> None:
        self._running = True
        logger.info(
            "call_reconciler_started",
            poll_interval=self.settings.reconcile_interval_seconds,
            stale_after_minutes=self.settings.reconcile_stale_after_minutes,
        )

        while self._running:
            try:
                await self.reconcile_once()
            except Exception as e:
                logger.error("call_reconciler_error", error=str(e))
            await asyncio.sleep(self.settings.reconcile_interval_seconds)

    async def stop(self) -> None:
        self._running = False
        logger.info("call_reconciler_stopped")

    async def reconcile_once(self) -> int:
        """Run a single pass. Returns the number of calls settled."""
        stale = await self.db.list_stale_ongoing_calls(
            timedelta(minutes=self.settings.reconcile_stale_after_minutes),
            limit=BATCH_SIZE,
        )
        settled = 0
        for record in stale:
            try:
                if await self._reconcile(record):
                    settled += 1
            except ProviderError as e:
                logger.warning(
                    "reconcile_provider_error",
                    db_call_id=record.get("id"),
                    status=e.status_code,
                )
        if stale:
            logger.info("call_reconciler_pass", checked=len(stale), settled=settled)
        return settled

    async def _reconcile(self, record: dict[str, Any]) -> bool:
        ultravox_call_id = record.get("ultravox_call_id")
        if not ultravox_call_id:
            return False

        call = await self.ultravox.get_call(ultravox_call_id)
        if call.get("status") == "unknown":
            return await self._finalize_missing(record["id"])

        if not call.get("ended"):
            return False

        await self.completion.handle_call_ended(
            ultravox_call_id,
            end_reason=call.get("endReason"),
            duration=call_duration_seconds(call),
        )
        return True

    async def _finalize_missing(self, db_call_id: str) -> bool:
        row = await self.db.finalize_call(db_call_id, CallStatus.FAILED, PROVIDER_GONE_SUMMARY)
        if row is not None:
            logger.info("call_reconciled_missing", db_call_id=db_call_id)
        return row is not None


async def main() -> None:
    load_dotenv(".env.local")
    setup_logging()
    settings = get_settings()
    db = get_db()
    ultravox = UltravoxClient(api_key=settings.ultravox_api_key, base_url=settings.ultravox_base_url)
    worker = CallReconcilerWorker(
        db=db,
        ultravox=ultravox,
        completion=CallCompletionHandler(
            db=db,
            ultravox=ultravox,
            rules=load_rules(settings.qualification_rules_path),
        ),
        settings=settings,
    )

    loop = asyncio.get_running_loop()

    def shutdown_handler() -> None:
        logger.info("shutdown_signal_received")
        asyncio.ensure_future(worker.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.start()
    except KeyboardInterrupt:
        await worker.stop()
    finally:
        await ultravox.close()


if __name__ == "__main__":
    asyncio.run(main())
