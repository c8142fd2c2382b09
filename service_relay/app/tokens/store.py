"""
In-memory store of single-use relay tokens.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from relay_shared.logging import get_logger


@dataclass(frozen=True)
class TokenEntry:
    """A relay token bound to one interview session."""
    token: str
    session_id: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TokenStore:
    """Process-local mapping from relay token to its session binding.

    Every mutation runs to completion without awaiting, so callers on the
    event loop never observe a half-applied change and no lock is needed.
    Tokens do not survive a restart.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.logger = get_logger("relay.tokens.store")
        self._entries: Dict[str, TokenEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token: str) -> bool:
        return token in self._entries

    def put(self, token: str, session_id: str, ttl_seconds: float) -> TokenEntry:
        """Store a token; its expiry is fixed here and never extended."""
        entry = TokenEntry(
            token=token,
            session_id=session_id,
            expires_at=self.clock() + ttl_seconds
        )
        self._entries[token] = entry
        return entry

    def consume(self, token: Optional[str]) -> Optional[TokenEntry]:
        """Remove and return the entry for ``token`` if it is still valid.

        The entry is deleted whether or not it has expired, so a token can
        never be presented twice.
        """
        if not token:
            return None

        entry = self._entries.pop(token, None)
        if entry is None:
            return None

        if entry.is_expired(self.clock()):
            self.logger.info("Expired token presented", session_id=entry.session_id)
            return None

        return entry

    def sweep(self) -> int:
        """Delete every expired entry and return how many were removed."""
        now = self.clock()
        expired = [token for token, entry in self._entries.items() if entry.is_expired(now)]
        for token in expired:
            del self._entries[token]

        if expired:
            self.logger.debug("Swept expired tokens", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def start_periodic_sweep(self, interval_seconds: float):
        """Run ``sweep`` every ``interval_seconds`` independent of issuance traffic."""
        if interval_seconds <= 0 or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(interval_seconds))
        self.logger.info("Periodic token sweep started", interval_seconds=interval_seconds)

    async def stop_periodic_sweep(self):
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        self.logger.info("Periodic token sweep stopped")

    async def _sweep_loop(self, interval_seconds: float):
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()
