"""
Client for the Daily video/recording REST API.
"""

from __future__ import annotations

import re
import secrets
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from relay_shared.errors import UpstreamFailureError
from relay_shared.logging import get_logger
from relay_shared.metrics import MetricsCollector

PROVIDER = "daily"
ROOM_PREFIX = "mi"
ROOM_SLUG_MAX = 32


def room_slug(sid: str) -> str:
    """Reduce a CMS session id to characters Daily accepts in room names."""
    slug = re.sub(r"[^a-z0-9-]+", "-", sid.lower()).strip("-")
    return slug[:ROOM_SLUG_MAX] or "session"


class DailyClient:
    """Thin async wrapper over the Daily endpoints the interview flow needs."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.daily.co/v1",
        *,
        timeout: float = 25.0,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("relay.daily.client")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

        if not api_key:
            self.logger.warning("Daily API key not configured")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def create_room(self, sid: str, minutes: int, candidate_name: str, grace_minutes: int = 5) -> Dict[str, Any]:
        """Create a private, recordable room plus a candidate meeting token."""
        expires_at = int(self.clock()) + (minutes + grace_minutes) * 60
        name = f"{ROOM_PREFIX}-{room_slug(sid)}-{secrets.token_hex(3)}"

        room = await self._request(
            "create_room",
            "POST",
            "/rooms",
            json={
                "name": name,
                "privacy": "private",
                "properties": {
                    "exp": expires_at,
                    "eject_at_room_exp": True,
                    "enable_recording": "cloud",
                    "max_participants": 2,
                },
            },
        )

        room_name = room.get("name") or name
        room_url = room.get("url")
        if not room_url:
            raise UpstreamFailureError(PROVIDER, "Room response missing url", details={"room_name": room_name})

        token_body = await self._request(
            "create_meeting_token",
            "POST",
            "/meeting-tokens",
            json={
                "properties": {
                    "room_name": room_name,
                    "user_name": candidate_name,
                    "exp": expires_at,
                    "is_owner": False,
                    "start_cloud_recording": True,
                }
            },
        )

        meeting_token = token_body.get("token")
        if not meeting_token:
            raise UpstreamFailureError(PROVIDER, "Meeting token response missing token", details={"room_name": room_name})

        self.logger.info("Interview room created", room_name=room_name, sid=sid, minutes=minutes)
        return {
            "room_name": room_name,
            "room_url": room_url,
            "join_url": f"{room_url}?t={meeting_token}",
            "expires_at": expires_at,
        }

    async def start_recording(self, room_name: str) -> Dict[str, Any]:
        return await self._request("start_recording", "POST", f"/rooms/{quote(room_name, safe='')}/recordings/start", json={})

    async def stop_recording(self, room_name: str) -> Dict[str, Any]:
        return await self._request("stop_recording", "POST", f"/rooms/{quote(room_name, safe='')}/recordings/stop", json={})

    async def latest_recording(self, room_name: str) -> Optional[Dict[str, Any]]:
        """Return the most recent recording of ``room_name``, or None if there is none yet."""
        body = await self._request(
            "list_recordings",
            "GET",
            "/recordings",
            params={"room_name": room_name, "limit": 1},
        )
        recordings = body.get("data") or []
        return recordings[0] if recordings else None

    async def recording_link(self, recording_id: str) -> Dict[str, Any]:
        return await self._request("recording_access_link", "GET", f"/recordings/{quote(recording_id, safe='')}/access-link")

    async def open_recording_stream(self, recording_id: str, range_header: Optional[str] = None) -> httpx.Response:
        """Open a streamed download of a recording. The caller must ``aclose`` the response."""
        link = await self.recording_link(recording_id)
        download_url = link.get("download_link")
        if not download_url:
            raise UpstreamFailureError(PROVIDER, "Recording download link not ready", details={"recording_id": recording_id})

        headers = {"Range": range_header} if range_header else {}
        request = self._client.build_request("GET", download_url, headers=headers)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as exc:
            self._record("recording_download", "error")
            raise UpstreamFailureError(PROVIDER, "Recording download failed", details={"recording_id": recording_id}) from exc

        if response.status_code >= 400:
            await response.aclose()
            self._record("recording_download", "error")
            raise UpstreamFailureError(
                PROVIDER,
                "Recording download failed",
                details={"recording_id": recording_id, "status_code": response.status_code},
            )

        self._record("recording_download", "ok")
        return response

    async def check_health(self) -> str:
        """Return 'ok' if the Daily API accepts our key, otherwise 'error'."""
        if not self.api_key:
            return "unconfigured"
        try:
            response = await self._client.get("/", headers=self._headers(), timeout=5.0)
        except httpx.RequestError:
            return "error"
        return "ok" if response.status_code == 200 else "error"

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as exc:
            self._record(operation, "timeout")
            self.logger.error("Daily API timeout", operation=operation)
            raise UpstreamFailureError(PROVIDER, "Request timed out", details={"operation": operation}) from exc
        except httpx.RequestError as exc:
            self._record(operation, "error")
            self.logger.error("Daily API request error", operation=operation, error=str(exc))
            raise UpstreamFailureError(PROVIDER, "Service unavailable", details={"operation": operation}) from exc

        if response.status_code >= 400:
            self._record(operation, "error")
            self.logger.warning(
                "Daily API call failed",
                operation=operation,
                status_code=response.status_code,
                response=response.text[:500]
            )
            raise UpstreamFailureError(
                PROVIDER,
                f"HTTP {response.status_code}",
                details={"operation": operation, "status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as exc:
            self._record(operation, "error")
            raise UpstreamFailureError(PROVIDER, "Response was not JSON", details={"operation": operation}) from exc

        self._record(operation, "ok")
        return body

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    def _record(self, operation: str, status: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("provider_requests_total", operation=operation, status=status)
