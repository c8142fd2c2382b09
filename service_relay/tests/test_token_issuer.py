"""
Unit tests for the relay TokenIssuer.
"""

import pytest

from relay_shared.errors import InvalidArgumentError
from relay_shared.metrics import MetricsCollector
from relay_shared.test_helpers import FakeClock
from service_relay.app.tokens.issuer import TokenIssuer, TokenRequest
from service_relay.app.tokens.store import TokenStore


class TestTokenIssuer:
    """Test cases for TokenIssuer."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return TokenStore(clock=clock)

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("relay")

    @pytest.fixture
    def issuer(self, store, metrics):
        return TokenIssuer(store, ttl_seconds=600, metrics=metrics)

    def test_issue_token_success(self, issuer, store, clock):
        """Issued tokens are stored against the session id with the TTL."""
        issued = issuer.issue_token("MIS-42")

        assert issued.session_id == "MIS-42"
        assert issued.expires_in_sec == 600
        assert issued.token in store
        assert store.consume(issued.token).expires_at == clock.now + 600

    def test_issue_token_payload(self, issuer):
        payload = issuer.issue_token("MIS-42").to_payload()

        assert payload["ok"] is True
        assert payload["expiresInSec"] == 600
        assert isinstance(payload["token"], str) and payload["token"]

    def test_issue_token_trims_session_id(self, issuer):
        assert issuer.issue_token("  MIS-42 \n").session_id == "MIS-42"

    @pytest.mark.parametrize("session_id", ["", "   ", None, 42, ["MIS-42"]])
    def test_issue_token_invalid_session_id(self, issuer, store, session_id):
        """Empty or non-string session ids are rejected without touching the store."""
        with pytest.raises(InvalidArgumentError) as exc_info:
            issuer.issue_token(session_id)

        assert exc_info.value.code == "invalid_argument"
        assert len(store) == 0

    def test_issued_tokens_are_unique(self, issuer):
        """Tokens do not repeat across many issuances."""
        tokens = {issuer.issue_token(f"MIS-{i}").token for i in range(500)}

        assert len(tokens) == 500

    def test_issue_runs_lazy_sweep(self, issuer, store, clock):
        """Issuing a token purges tokens that expired since the last issuance."""
        stale = issuer.issue_token("MIS-1").token
        clock.advance(601)

        fresh = issuer.issue_token("MIS-2").token

        assert stale not in store
        assert fresh in store
        assert len(store) == 1

    def test_issue_records_metrics(self, issuer, metrics):
        issuer.issue_token("MIS-42")
        issuer.issue_token("MIS-43")

        assert metrics.registry.get_sample_value("tokens_issued_total") == 2
        assert metrics.registry.get_sample_value("token_store_size") == 2


class TestTokenRequest:
    """Test cases for the issuance request body."""

    def test_alias(self):
        assert TokenRequest.model_validate({"sessionId": "MIS-42"}).session_id == "MIS-42"

    def test_missing_session_id(self):
        assert TokenRequest.model_validate({}).session_id is None
