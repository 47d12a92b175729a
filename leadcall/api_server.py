"""
FastAPI API Server.

REST API for placing outbound lead calls, hanging them up, and
receiving Ultravox's call-ended webhook.

Start with:
    uvicorn leadcall.api_server:app --reload --port 5050
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from dotenv import load_dotenv
load_dotenv(".env.local")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadcall.api.calls import router as calls_router
from leadcall.api.middleware import RateLimitMiddleware, RequestIdMiddleware
from leadcall.api.webhooks import router as webhooks_router
from leadcall.config import Settings, get_settings
from leadcall.db import DatabaseClient, get_db
from leadcall.exceptions import (
    DispatchError,
    InvalidPhoneNumberError,
    PersistenceError,
    ProviderError,
)
from leadcall.logging_config import get_logger, mask_phone, setup_logging
from leadcall.services.call_completion import CallCompletionHandler
from leadcall.services.call_orchestrator import CallOrchestrator
from leadcall.services.qualification import load_rules
from leadcall.services.telephony import TelephonyClient
from leadcall.services.ultravox import UltravoxClient

setup_logging()
logger = get_logger(__name__)


def init_services(
    app: FastAPI,
    settings: Settings,
    *,
    db: Optional[DatabaseClient] = None,
    ultravox: Optional[UltravoxClient] = None,
    telephony: Optional[TelephonyClient] = None,
) -> None:
    """Build the shared clients once and attach them to ``app.state``."""
    db = db or get_db()
    ultravox = ultravox or UltravoxClient(
        api_key=settings.ultravox_api_key,
        base_url=settings.ultravox_base_url,
    )
    telephony = telephony or TelephonyClient(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
    )

    app.state.settings = settings
    app.state.db = db
    app.state.ultravox = ultravox
    app.state.telephony = telephony
    app.state.orchestrator = CallOrchestrator(
        db=db,
        ultravox=ultravox,
        telephony=telephony,
        settings=settings,
    )
    app.state.completion = CallCompletionHandler(
        db=db,
        ultravox=ultravox,
        rules=load_rules(settings.qualification_rules_path),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle hooks."""
    settings = get_settings()
    if not getattr(app.state, "orchestrator", None):
        init_services(app, settings)

    logger.info(
        "api_server_starting",
        ultravox_key=bool(settings.ultravox_api_key),
        twilio_phone=mask_phone(settings.twilio_phone_number) or "missing",
        supabase=bool(settings.supabase_url),
        callback_url=settings.call_ended_callback_url or "not set (webhooks disabled)",
    )
    yield
    await app.state.ultravox.close()
    logger.info("api_server_stopping")


app = FastAPI(
    title="LeadCall API",
    description="Outbound AI-voice calls to leads with transcript-based qualification",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters: outermost first)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(calls_router)
app.include_router(webhooks_router)


# -- Error translation --

@app.exception_handler(InvalidPhoneNumberError)
async def invalid_phone_handler(request: Request, exc: InvalidPhoneNumberError) -> JSONResponse:
    logger.warning("invalid_phone_number", path=request.url.path, phone=mask_phone(exc.raw))
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error(
        "provider_error",
        path=request.url.path,
        provider=exc.provider,
        status=exc.status_code,
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc), "providerStatus": exc.status_code},
    )


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    logger.error("dispatch_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("persistence_error", path=request.url.path, ultravox_call_id=exc.external_call_id)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc), "ultravoxCallId": exc.external_call_id},
    )


@app.get("/health", tags=["System"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "leadcall"}


@app.get("/", tags=["System"])
async def root() -> dict[str, str]:
    """API root."""
    return {
        "service": "LeadCall",
        "version": "0.1.0",
        "docs": "/docs",
    }
