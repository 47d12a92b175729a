"""
CLI tool to place or hang up an outbound lead call.

Usage:
    python scripts/make_call.py --phone 9876543210 [--lead-id ID] [--agent-id ID]
    python scripts/make_call.py --end 9876543210

Examples:
    # Call a lead using an agent persona from the DB
    python scripts/make_call.py --phone 9876543210 --lead-id ld-123 --agent-id ag-456

    # Quick test call with an explicit prompt and an ElevenLabs voice id
    python scripts/make_call.py --phone +15551234567 --prompt "Say hello" --voice V9LCAAi4tTlqe9

    # Hang up whatever call is live for a number
    python scripts/make_call.py --end 9876543210
"""

import argparse
import asyncio
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from leadcall.config import get_settings
from leadcall.db import get_db
from leadcall.exceptions import LeadCallError
from leadcall.logging_config import setup_logging, get_logger
from leadcall.services.call_orchestrator import CallOrchestrator
from leadcall.services.telephony import TelephonyClient
from leadcall.services.ultravox import UltravoxClient

setup_logging()
logger = get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    ultravox = UltravoxClient(api_key=settings.ultravox_api_key, base_url=settings.ultravox_base_url)
    orchestrator = CallOrchestrator(
        db=get_db(),
        ultravox=ultravox,
        telephony=TelephonyClient(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
        ),
        settings=settings,
    )

    try:
        if args.end:
            result, _ = await orchestrator.end_call(phone_number=args.end)
            if result.success:
                print(f"Call {result.call_sid} terminated (was {result.status}).")
                return 0
            print(f"Could not end call: {result.error}")
            return 1

        result = await orchestrator.dispatch_call(
            phone_number=args.phone,
            lead_id=args.lead_id,
            agent_id=args.agent_id,
            system_prompt=args.prompt,
            voice=args.voice,
            language_hint=args.language,
            metadata={"source": "cli"},
        )
        print(f"Call placed: {result.ultravox_call_id}")
        print(f"Local record: {result.db_call_id}")
        if not settings.webhooks_enabled:
            print("BACKEND_URL is not set; run the call reconciler to finalise this call.")
        return 0

    except LeadCallError as e:
        print(f"Error: {e}")
        return 1
    finally:
        await ultravox.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Place or hang up an outbound lead call")
    parser.add_argument("--phone", help="Number to call")
    parser.add_argument("--lead-id", help="Lead UUID from DB")
    parser.add_argument("--agent-id", help="Agent persona UUID from DB")
    parser.add_argument("--prompt", help="Explicit system prompt (overrides the persona script)")
    parser.add_argument("--voice", help="Voice id (UUID = Ultravox voice, short id = ElevenLabs)")
    parser.add_argument("--language", help="Language hint, e.g. en-US or ta-IN")
    parser.add_argument("--end", metavar="PHONE", help="Hang up the live call for this number")

    args = parser.parse_args()

    if not args.phone and not args.end:
        parser.error("Provide either --phone or --end")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
