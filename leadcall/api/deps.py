"""
FastAPI dependencies.

Shared clients are built once in the app lifespan and parked on
``app.state``; routes receive them through ``Depends``.
"""

from __future__ import annotations

from fastapi import Request

from leadcall.config import Settings
from leadcall.services.call_completion import CallCompletionHandler
from leadcall.services.call_orchestrator import CallOrchestrator
from leadcall.services.ultravox import UltravoxClient


def get_orchestrator(request: Request) -> CallOrchestrator:
    return request.app.state.orchestrator


def get_completion_handler(request: Request) -> CallCompletionHandler:
    return request.app.state.completion


def get_ultravox(request: Request) -> UltravoxClient:
    return request.app.state.ultravox


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
