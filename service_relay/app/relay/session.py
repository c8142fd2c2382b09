"""
Bridges one browser WebSocket to one transcription provider connection.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Optional, Union

from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay_shared.logging import get_logger, session_context
from relay_shared.errors import RelayException, TokenInvalidError, UpstreamFailureError
from relay_shared.metrics import MetricsCollector

from ..tokens.store import TokenStore
from .envelope import (
    DataEnvelope,
    ErrorEnvelope,
    ReadyEnvelope,
    encode_envelope,
    wrap_upstream_frame,
)
from .upstream import UpstreamConnection, UpstreamConnector

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_INTERNAL_ERROR = 1011


class RelayState(str, Enum):
    AWAITING_TOKEN = "awaiting_token"
    UPSTREAM_CONNECTING = "upstream_connecting"
    BRIDGING = "bridging"
    CLOSED = "closed"


class RelaySession:
    """One relay connection from token check to teardown.

    ``downstream`` is an accepted Starlette WebSocket. Once bridging, one task
    pumps each direction; whichever finishes first cancels the other and both
    connections are closed before ``run`` returns.
    """

    def __init__(
        self,
        downstream: Any,
        connector: UpstreamConnector,
        token_store: TokenStore,
        connect_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None
    ):
        self.downstream = downstream
        self.connector = connector
        self.token_store = token_store
        self.connect_timeout = connect_timeout
        self.metrics = metrics
        self.logger = get_logger("relay.session")

        self.state = RelayState.AWAITING_TOKEN
        self.session_id: Optional[str] = None
        self.upstream: Optional[UpstreamConnection] = None
        self.outcome: Optional[str] = None
        self._bridged_at: Optional[float] = None

    async def run(self, token: Optional[str]) -> None:
        entry = self.token_store.consume(token)
        if entry is None:
            self._count("token_consumptions_total", result="rejected")
            self.logger.info("Relay token rejected")
            await self._fail(TokenInvalidError(), CLOSE_POLICY_VIOLATION)
            return

        self._count("token_consumptions_total", result="accepted")
        self._update_store_gauge()
        self.session_id = entry.session_id

        with session_context(self.session_id):
            await self._connect_and_bridge()

    async def _connect_and_bridge(self) -> None:
        self.state = RelayState.UPSTREAM_CONNECTING
        try:
            self.upstream = await asyncio.wait_for(
                self.connector.connect(session_id=self.session_id),
                timeout=self.connect_timeout
            )
        except (asyncio.TimeoutError, OSError, WebSocketException) as exc:
            reason = str(exc) or type(exc).__name__
            self.logger.error("Upstream connection failed", session_id=self.session_id, error=reason)
            await self._fail(UpstreamFailureError("stt", reason), CLOSE_INTERNAL_ERROR)
            return

        self.state = RelayState.BRIDGING
        self._bridged_at = time.monotonic()
        if self.metrics:
            self.metrics.adjust_gauge("active_relay_sessions", 1)
        self.logger.info("Relay session bridging", session_id=self.session_id)

        try:
            try:
                await self._send(ReadyEnvelope())
            except (RuntimeError, OSError, WebSocketDisconnect) as exc:
                self.outcome = "downstream_closed"
                self.logger.info("Client left before relay was ready", session_id=self.session_id, error=str(exc))
                return
            await self._bridge()
        finally:
            await self.close()

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        """Close both connections. Safe to call more than once."""
        if self.state is RelayState.CLOSED:
            return

        was_bridging = self.state is RelayState.BRIDGING
        self.state = RelayState.CLOSED

        if self.upstream is not None:
            try:
                await self.upstream.close()
            except (OSError, WebSocketException) as exc:
                self.logger.debug("Upstream close failed", session_id=self.session_id, error=str(exc))

        if self._downstream_open():
            try:
                await self.downstream.close(code=code)
            except (RuntimeError, OSError, WebSocketDisconnect) as exc:
                self.logger.debug("Downstream close failed", session_id=self.session_id, error=str(exc))

        if was_bridging and self.metrics:
            self.metrics.adjust_gauge("active_relay_sessions", -1)
            self.metrics.observe_histogram(
                "relay_session_duration_seconds",
                time.monotonic() - self._bridged_at
            )
        self._count("relay_sessions_total", outcome=self.outcome or "closed")

        self.logger.info("Relay session closed", session_id=self.session_id, outcome=self.outcome)

    async def _bridge(self) -> None:
        to_upstream = asyncio.create_task(self._pump_downstream())
        to_downstream = asyncio.create_task(self._pump_upstream())
        tasks = (to_upstream, to_downstream)

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, str) and self.outcome is None:
                    self.outcome = result
                elif isinstance(result, Exception):
                    self.outcome = self.outcome or "error"
                    self.logger.warning(
                        "Relay pump failed",
                        session_id=self.session_id,
                        error=str(result) or type(result).__name__
                    )
            await self.close()

    async def _pump_downstream(self) -> str:
        """Forward client frames to the provider, in order, until the client leaves."""
        while True:
            message = await self.downstream.receive()
            if message["type"] == "websocket.disconnect":
                return "downstream_closed"

            data: Optional[Union[bytes, str]] = message.get("bytes")
            if data is None:
                data = message.get("text")
            if data is None:
                continue

            await self.upstream.send(data)
            self._count("relay_frames_total", direction="to_upstream")

    async def _pump_upstream(self) -> str:
        """Forward provider frames to the client as data envelopes."""
        try:
            async for frame in self.upstream:
                envelope = wrap_upstream_frame(frame)
                if envelope is None:
                    self.logger.debug("Dropped non-JSON upstream frame", session_id=self.session_id)
                    continue
                await self._send(envelope)
                self._count("relay_frames_total", direction="to_downstream")
        except ConnectionClosed as exc:
            self.logger.info("Upstream connection dropped", session_id=self.session_id, error=str(exc))
            return "upstream_error"
        return "upstream_closed"

    async def _fail(self, exc: RelayException, code: int) -> None:
        """Report ``exc`` to the client as a single error frame, then close."""
        self.outcome = exc.code
        if self.metrics:
            self.metrics.record_error(exc)
        if self._downstream_open():
            try:
                await self._send(ErrorEnvelope(error=exc.code))
            except (RuntimeError, OSError, WebSocketDisconnect) as exc:
                self.logger.debug("Could not deliver error frame", error=str(exc))
        await self.close(code=code)

    async def _send(self, envelope: Union[ReadyEnvelope, DataEnvelope, ErrorEnvelope]) -> None:
        await self.downstream.send_text(encode_envelope(envelope))

    def _downstream_open(self) -> bool:
        return (
            self.downstream.client_state == WebSocketState.CONNECTED
            and self.downstream.application_state == WebSocketState.CONNECTED
        )

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    def _update_store_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("token_store_size", len(self.token_store))
