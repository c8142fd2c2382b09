"""
Shared-secret authentication for server-to-server calls from the CMS.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Request

from relay_shared.errors import UnauthorizedError
from relay_shared.logging import get_logger


class SharedSecretGuard:
    """Rejects requests whose secret header does not match the configured secret.

    Usable directly as a FastAPI dependency. The header is compared in
    constant time; an empty configured secret rejects every request.
    """

    def __init__(self, secret: str, header_name: str = "x-shared-secret") -> None:
        self.header_name = header_name
        self._secret = secret.encode("utf-8")
        self.logger = get_logger("relay.auth.shared_secret")

        if not self._secret:
            self.logger.warning("Shared secret not configured; guarded endpoints will reject all requests")

    def verify(self, presented: Optional[str]) -> bool:
        """Return True when ``presented`` equals the configured secret."""
        if not self._secret or presented is None:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self._secret)

    async def authenticate(self, request: Request) -> None:
        """Raise ``UnauthorizedError`` unless the request carries the secret."""
        if not self.verify(request.headers.get(self.header_name)):
            self.logger.warning(
                "Shared secret rejected",
                path=request.url.path,
                header_present=self.header_name in request.headers,
            )
            raise UnauthorizedError("Missing or invalid shared secret")

    async def __call__(self, request: Request) -> None:
        await self.authenticate(request)
