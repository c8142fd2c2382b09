"""
Token issuer for the transcription relay.
"""

import secrets
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from relay_shared.errors import InvalidArgumentError
from relay_shared.logging import get_logger
from relay_shared.metrics import MetricsCollector

from .store import TokenStore

TOKEN_BYTES = 24


class TokenRequest(BaseModel):
    """Body of a token issuance request."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")


class IssuedToken(BaseModel):
    """Result of a successful issuance."""

    token: str
    session_id: str
    expires_in_sec: int

    def to_payload(self) -> Dict[str, Any]:
        return {"ok": True, "token": self.token, "expiresInSec": self.expires_in_sec}


class TokenIssuer:
    """Mints single-use relay tokens bound to an interview session id."""

    def __init__(
        self,
        store: TokenStore,
        ttl_seconds: int = 600,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("relay.tokens.issuer")

    def issue_token(self, session_id: Any) -> IssuedToken:
        """Issue a token for ``session_id`` valid for one relay connection."""
        if not isinstance(session_id, str) or not session_id.strip():
            raise InvalidArgumentError("sessionId must be a non-empty string")

        session_id = session_id.strip()
        token = secrets.token_urlsafe(TOKEN_BYTES)
        self.store.put(token, session_id, self.ttl_seconds)

        # Lazy sweep: expired tokens are only purged when a new one is issued
        self.store.sweep()

        if self.metrics:
            self.metrics.increment_counter("tokens_issued_total")
            self.metrics.set_gauge("token_store_size", len(self.store))

        self.logger.info("Relay token issued", session_id=session_id, ttl_seconds=self.ttl_seconds)

        return IssuedToken(
            token=token,
            session_id=session_id,
            expires_in_sec=self.ttl_seconds
        )
