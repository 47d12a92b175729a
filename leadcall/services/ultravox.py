"""
Ultravox API client.

Thin async wrapper over the voice-call provider's REST API. One client
is created at process start and shared by every request handler.
Non-success responses are raised as ``ProviderError`` with the
provider's status code and body; 404s on read endpoints are treated as
"already gone" and return empty results. Timeouts and connection
failures surface as ``ProviderUnavailableError``.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from leadcall.exceptions import DispatchError, ProviderError, ProviderUnavailableError
from leadcall.logging_config import get_logger

logger = get_logger(__name__)

PROVIDER = "Ultravox"
# Upper bound on transcript pages followed for a single call
MAX_MESSAGE_PAGES = 50


class UltravoxClient:
    """HTTP client for the Ultravox calls API."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.ultravox.ai/api",
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            return await self._http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error("ultravox_unreachable", method=method, path=path, error=repr(e))
            raise ProviderUnavailableError(PROVIDER, e) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        raise ProviderError(PROVIDER, response.status_code, response.text)

    # -- Calls --

    async def create_call(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an outbound call. Returns the provider's call object."""
        if not self.api_key:
            raise DispatchError("ULTRAVOX_API_KEY is not configured")

        response = await self._request("POST", "/calls", json=payload)
        if not response.is_success:
            logger.error(
                "ultravox_create_call_failed",
                status=response.status_code,
                body=response.text[:500],
            )
        self._raise_for_status(response)
        return response.json()

    async def get_call(self, call_id: str) -> dict[str, Any]:
        """Fetch a call. A missing call yields ``{"status": "unknown"}``."""
        response = await self._request("GET", f"/calls/{call_id}")
        if response.status_code == 404:
            logger.warning("ultravox_call_not_found", call_id=call_id)
            return {"status": "unknown", "error": "Call not found"}
        self._raise_for_status(response)
        return response.json()

    async def get_call_messages(self, call_id: Optional[str]) -> dict[str, Any]:
        """
        Fetch every transcript message of a call.

        Follows the provider's ``next`` cursor and returns all pages merged
        into a single ``{"results": [...]}``. A missing call yields an
        empty transcript.
        """
        if not call_id:
            return {"results": []}

        results: list[dict[str, Any]] = []
        url: Optional[str] = f"/calls/{call_id}/messages"
        for _ in range(MAX_MESSAGE_PAGES):
            if not url:
                break
            response = await self._request("GET", url)
            if response.status_code == 404:
                logger.warning("ultravox_messages_not_found", call_id=call_id)
                return {"results": []}
            self._raise_for_status(response)
            page = response.json()
            results.extend(page.get("results") or [])
            url = page.get("next")
        else:
            logger.warning("ultravox_messages_truncated", call_id=call_id, pages=MAX_MESSAGE_PAGES)

        return {"results": results}

    async def get_recording(self, call_id: str) -> dict[str, Any]:
        """Recording URL and duration of a finished call, if one exists."""
        call = await self._request("GET", f"/calls/{call_id}")
        self._raise_for_status(call)
        data = call.json()

        if data.get("recordingUrl"):
            return {
                "success": True,
                "recordingUrl": data["recordingUrl"],
                "duration": data.get("duration"),
            }
        return {
            "success": False,
            "error": "Recording not available yet or recording was not enabled",
        }

    # -- Voices --

    async def list_voices(self) -> dict[str, Any]:
        response = await self._request("GET", "/voices")
        self._raise_for_status(response)
        return response.json()
