"""
Unit tests for the relay TokenStore.
"""

import asyncio

import pytest

from service_relay.app.tokens.store import TokenStore
from relay_shared.test_helpers import FakeClock


class TestTokenStore:
    """Test cases for TokenStore."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return TokenStore(clock=clock)

    def test_put_sets_fixed_expiry(self, store, clock):
        """Expiry is computed once at insertion."""
        entry = store.put("tok-1", "MIS-42", 600)

        assert entry.session_id == "MIS-42"
        assert entry.expires_at == clock.now + 600
        assert "tok-1" in store
        assert len(store) == 1

    def test_consume_returns_entry_once(self, store):
        """A token can be consumed exactly once."""
        store.put("tok-1", "MIS-42", 600)

        first = store.consume("tok-1")
        second = store.consume("tok-1")

        assert first is not None
        assert first.session_id == "MIS-42"
        assert second is None
        assert len(store) == 0

    def test_consume_unknown_token(self, store):
        """Unknown, empty and missing tokens are rejected."""
        assert store.consume("nope") is None
        assert store.consume("") is None
        assert store.consume(None) is None

    def test_consume_expired_token_removes_it(self, store, clock):
        """An expired token is rejected and deleted at the same time."""
        store.put("tok-1", "MIS-42", 600)
        clock.advance(600)

        assert store.consume("tok-1") is None
        assert "tok-1" not in store

    def test_consume_just_before_expiry(self, store, clock):
        """A token is valid for the whole TTL window."""
        store.put("tok-1", "MIS-42", 600)
        clock.advance(599.9)

        assert store.consume("tok-1") is not None

    def test_sweep_removes_only_expired(self, store, clock):
        """Sweep deletes expired entries and keeps live ones."""
        store.put("old-1", "s1", 10)
        store.put("old-2", "s2", 20)
        clock.advance(30)
        store.put("fresh", "s3", 600)

        removed = store.sweep()

        assert removed == 2
        assert len(store) == 1
        assert "fresh" in store

    def test_sweep_on_empty_store(self, store):
        assert store.sweep() == 0

    @pytest.mark.asyncio
    async def test_periodic_sweep(self, clock):
        """The optional background sweep purges tokens without new issuance."""
        store = TokenStore(clock=clock)
        store.put("tok-1", "MIS-42", 1)
        clock.advance(5)

        store.start_periodic_sweep(0.01)
        try:
            for _ in range(100):
                if len(store) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await store.stop_periodic_sweep()

        assert len(store) == 0
        assert store._sweep_task is None

    @pytest.mark.asyncio
    async def test_periodic_sweep_disabled(self, store):
        """A non-positive interval leaves the sweep off."""
        store.start_periodic_sweep(0)

        assert store._sweep_task is None
        await store.stop_periodic_sweep()
