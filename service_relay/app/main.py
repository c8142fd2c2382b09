"""
Interview relay service.

Issues single-use transcription relay tokens to the CMS, bridges browser audio
to the speech-to-text provider, and proxies the recording provider calls the
mock interview flow needs.
"""

import time
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from fastapi import Depends, Query, Request, WebSocket
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ValidationError
from starlette.background import BackgroundTask

from relay_shared.base_service import BaseService
from relay_shared.errors import InvalidArgumentError

from .auth.shared_secret import SharedSecretGuard
from .daily.client import DailyClient
from .relay.session import RelaySession
from .relay.upstream import UpstreamConnector
from .tokens.issuer import TokenIssuer, TokenRequest
from .tokens.store import TokenStore

ModelT = TypeVar("ModelT", bound=BaseModel)

STREAM_PASSTHROUGH_HEADERS = ("content-length", "content-range", "accept-ranges", "etag", "last-modified")


class CreateRoomRequest(BaseModel):
    sid: Optional[str] = None
    minutes: Optional[int] = None
    candidate_name: Optional[str] = None


class RoomRequest(BaseModel):
    room_name: Optional[str] = None


class RelayService(BaseService):
    """Relay service implementation."""

    def __init__(
        self,
        *,
        token_clock: Callable[[], float] = time.time,
        upstream_connector: Optional[UpstreamConnector] = None,
        daily_client: Optional[DailyClient] = None,
        **config_overrides: Any
    ):
        super().__init__("relay", 8080, **config_overrides)

        self.guard = SharedSecretGuard(
            self.config.shared_secret,
            header_name=self.config.shared_secret_header
        )
        self.token_store = TokenStore(clock=token_clock)
        self.token_issuer = TokenIssuer(
            self.token_store,
            ttl_seconds=self.config.token_ttl_seconds,
            metrics=self.metrics
        )
        self.upstream_connector = upstream_connector or UpstreamConnector(
            ws_url=self.config.stt_ws_url,
            api_key=self.config.stt_api_key,
            listen_params=self.config.stt_listen_params
        )
        self.daily_client = daily_client or DailyClient(
            self.config.daily_api_key,
            self.config.daily_api_base_url,
            timeout=self.config.http_timeout,
            metrics=self.metrics
        )

        self._setup_relay_routes()
        self.app.state.relay_service = self

    def _setup_relay_routes(self):
        """Set up token broker, relay and recording routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "relay",
                "message": "Interview Relay - Relay Service",
                "version": "1.0.0",
                "capabilities": ["stt_token", "stt_relay", "recordings"]
            }

        @self.app.post("/stt/token", dependencies=[Depends(self.guard)])
        async def issue_stt_token(request: Request):
            """Issue a single-use relay token for an interview session."""
            body = await self._read_model(request, TokenRequest)
            issued = self.token_issuer.issue_token(body.session_id)

            self.observability.log_business_event(
                "stt_token_issued",
                session_id=issued.session_id,
                store_size=len(self.token_store)
            )
            return issued.to_payload()

        @self.app.get("/stt/relay")
        async def relay_info():
            """Informational endpoint for the relay WebSocket route."""
            return {
                "message": "Relay endpoint available at /stt/relay?token=<token> (WebSocket handshake required)."
            }

        @self.app.websocket("/stt/relay")
        async def stt_relay(websocket: WebSocket, token: Optional[str] = Query(None)):
            """Bridge a browser audio stream to the transcription provider."""
            await websocket.accept()

            session = RelaySession(
                websocket,
                self.upstream_connector,
                self.token_store,
                connect_timeout=self.config.upstream_connect_timeout,
                metrics=self.metrics
            )
            await session.run(token)

            self.observability.log_business_event(
                "stt_relay_finished",
                session_id=session.session_id,
                outcome=session.outcome
            )

        @self.app.post("/create-room", dependencies=[Depends(self.guard)])
        async def create_room(request: Request):
            """Create an interview room and a join link for the candidate."""
            body = await self._read_model(request, CreateRoomRequest)
            sid = (body.sid or "").strip()
            if not sid:
                raise InvalidArgumentError("sid is required")

            minutes = body.minutes
            if minutes not in self.config.allowed_interview_minutes:
                minutes = self.config.default_interview_minutes
            candidate_name = (body.candidate_name or "").strip() or "Candidate"

            room = await self.daily_client.create_room(
                sid,
                minutes,
                candidate_name,
                grace_minutes=self.config.room_grace_minutes
            )
            self.observability.log_business_event("room_created", sid=sid, room_name=room["room_name"])

            return {
                "ok": True,
                "room_name": room["room_name"],
                "join_url": room["join_url"],
                "expires_at": room["expires_at"],
                "minutes": minutes
            }

        @self.app.post("/start-recording", dependencies=[Depends(self.guard)])
        async def start_recording(request: Request):
            """Start cloud recording of a room."""
            room_name = self._require((await self._read_model(request, RoomRequest)).room_name, "room_name")
            recording = await self.daily_client.start_recording(room_name)
            self.observability.log_business_event("recording_started", room_name=room_name)
            return {"ok": True, "room_name": room_name, "recording": recording}

        @self.app.post("/stop-recording", dependencies=[Depends(self.guard)])
        async def stop_recording(request: Request):
            """Stop cloud recording of a room."""
            room_name = self._require((await self._read_model(request, RoomRequest)).room_name, "room_name")
            recording = await self.daily_client.stop_recording(room_name)
            self.observability.log_business_event("recording_stopped", room_name=room_name)
            return {"ok": True, "room_name": room_name, "recording": recording}

        @self.app.get("/latest-recording", dependencies=[Depends(self.guard)])
        async def latest_recording(room_name: Optional[str] = Query(None)):
            """Look up the most recent recording of a room."""
            room_name = self._require(room_name, "room_name")
            recording = await self.daily_client.latest_recording(room_name)
            if not recording or not recording.get("id"):
                return {"ok": False, "status": "processing", "room_name": room_name}

            return {
                "ok": True,
                "room_name": room_name,
                "recording_id": recording["id"],
                "status": recording.get("status"),
                "duration": recording.get("duration")
            }

        @self.app.get("/recording-link", dependencies=[Depends(self.guard)])
        async def recording_link(recording_id: Optional[str] = Query(None)):
            """Fetch a time-limited download link for a recording."""
            recording_id = self._require(recording_id, "recording_id")
            link = await self.daily_client.recording_link(recording_id)
            mp4_url = link.get("download_link")
            if not mp4_url:
                return {"ok": False, "status": "processing", "recording_id": recording_id}

            return {
                "ok": True,
                "recording_id": recording_id,
                "mp4_url": mp4_url,
                "expires": link.get("expires")
            }

        @self.app.get("/recording-stream", dependencies=[Depends(self.guard)])
        async def recording_stream(request: Request, recording_id: Optional[str] = Query(None)):
            """Stream a recording through this service, honouring Range requests."""
            recording_id = self._require(recording_id, "recording_id")
            upstream = await self.daily_client.open_recording_stream(
                recording_id,
                range_header=request.headers.get("range")
            )

            headers = {
                name: upstream.headers[name]
                for name in STREAM_PASSTHROUGH_HEADERS
                if name in upstream.headers
            }
            return StreamingResponse(
                upstream.aiter_raw(),
                status_code=upstream.status_code,
                media_type=upstream.headers.get("content-type", "video/mp4"),
                headers=headers,
                background=BackgroundTask(upstream.aclose)
            )

        @self.app.get("/stats", dependencies=[Depends(self.guard)])
        async def get_stats():
            """Get relay statistics."""
            return {
                "token_store_size": len(self.token_store),
                "token_ttl_seconds": self.config.token_ttl_seconds,
                "periodic_sweep_seconds": self.config.token_sweep_interval_seconds
            }

    async def _read_model(self, request: Request, model: Type[ModelT]) -> ModelT:
        """Parse the JSON body into ``model``; failures are invalid_argument."""
        try:
            payload = await request.json()
        except ValueError:
            raise InvalidArgumentError("Request body must be JSON")

        if not isinstance(payload, dict):
            raise InvalidArgumentError("Request body must be a JSON object")

        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise InvalidArgumentError(
                "Request body failed validation",
                details={"errors": [err.get("msg") for err in exc.errors()]}
            )

    @staticmethod
    def _require(value: Optional[str], name: str) -> str:
        value = (value or "").strip()
        if not value:
            raise InvalidArgumentError(f"{name} is required")
        return value

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check relay dependencies."""
        return {
            "daily": await self.daily_client.check_health(),
            "stt": "configured" if self.config.stt_api_key else "unconfigured"
        }

    async def start(self):
        """Start relay background components."""
        self.token_store.start_periodic_sweep(self.config.token_sweep_interval_seconds)
        self.logger.info("Relay service components started")

    async def stop(self):
        """Stop relay background components."""
        await self.token_store.stop_periodic_sweep()
        await self.daily_client.close()
        self.logger.info("Relay service components stopped")


def create_app():
    """Create relay service application."""
    service = RelayService()
    return service.app


def main():
    service = RelayService()
    service.run()


if __name__ == "__main__":
    main()
