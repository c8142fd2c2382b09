"""
Outbound connection to the real-time transcription provider.
"""

from typing import AsyncIterator, Optional, Protocol, Union

from websockets.asyncio.client import connect

from relay_shared.logging import get_logger

Frame = Union[str, bytes]


class UpstreamConnection(Protocol):
    """The subset of a websockets client connection the relay relies on."""

    async def send(self, message: Frame) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[Frame]: ...


class UpstreamConnector:
    """Opens authenticated streaming connections to the provider."""

    def __init__(self, ws_url: str, api_key: str, listen_params: str = ""):
        self.ws_url = ws_url
        self.api_key = api_key
        self.listen_params = listen_params.lstrip("?")
        self.logger = get_logger("relay.upstream")

        if not api_key:
            self.logger.warning("Transcription provider API key not configured")

    def build_url(self) -> str:
        if not self.listen_params:
            return self.ws_url
        separator = "&" if "?" in self.ws_url else "?"
        return f"{self.ws_url}{separator}{self.listen_params}"

    async def connect(self, session_id: Optional[str] = None) -> UpstreamConnection:
        """Complete the provider handshake and return the open connection."""
        url = self.build_url()
        self.logger.info("Connecting to transcription provider", url=self.ws_url, session_id=session_id)
        # The caller bounds the handshake with its own timeout
        return await connect(
            url,
            additional_headers={"Authorization": f"Token {self.api_key}"},
            open_timeout=None,
            max_size=None,
        )
