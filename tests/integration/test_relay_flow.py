"""
Integration tests for the token broker and transcription relay flow.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay_shared.test_helpers import FakeClock, FakeUpstreamConnector
from service_relay.app.main import RelayService

SECRET = "s3cret-value"


class TestRelayFlow:
    """Token issuance followed by a relay session, end to end in process."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def connector(self):
        # Reply to the first audio frame, then end the provider stream
        return FakeUpstreamConnector(script=[(1, '{"channel":0}'), (1, None)])

    @pytest.fixture
    def service(self, clock, connector):
        return RelayService(
            token_clock=clock,
            upstream_connector=connector,
            shared_secret=SECRET,
            token_ttl_seconds=600
        )

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def issue(self, client, session_id="MIS-42"):
        response = client.post(
            "/stt/token",
            json={"sessionId": session_id},
            headers={"x-shared-secret": SECRET}
        )
        assert response.status_code == 200
        return response.json()["token"]

    def test_interview_session_flow(self, client, connector):
        """Audio goes out verbatim and transcripts come back wrapped."""
        token = self.issue(client)

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "ready"}

            websocket.send_bytes(b"\x01\x02\x03")
            assert websocket.receive_json() == {"type": "data", "payload": {"channel": 0}}

            assert connector.session_ids == ["MIS-42"]
            assert connector.instances[0].sent == [b"\x01\x02\x03"]

            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 1000

    def test_unknown_token(self, client, connector):
        """An unknown token gets exactly one error frame and a closed socket."""
        with client.websocket_connect("/stt/relay?token=not-a-token") as websocket:
            assert websocket.receive_json() == {"type": "error", "error": "invalid_or_expired_token"}

            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 1008
        assert connector.connect_calls == 0

    def test_missing_token(self, client, connector):
        with client.websocket_connect("/stt/relay") as websocket:
            assert websocket.receive_json() == {"type": "error", "error": "invalid_or_expired_token"}

            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

        assert connector.connect_calls == 0

    def test_token_cannot_be_reused(self, clock):
        connector = FakeUpstreamConnector(script=[(0, None)])
        client = TestClient(RelayService(token_clock=clock, upstream_connector=connector, shared_secret=SECRET).app)
        token = self.issue(client)

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "ready"}
            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "error", "error": "invalid_or_expired_token"}
            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

        assert connector.connect_calls == 1

    def test_expired_token(self, client, clock, connector):
        """Tokens presented after their TTL are rejected."""
        token = self.issue(client)
        clock.advance(601)

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "error", "error": "invalid_or_expired_token"}
            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

        assert connector.connect_calls == 0

    def test_token_valid_just_before_expiry(self, client, clock):
        token = self.issue(client)
        clock.advance(599)

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "ready"}
            websocket.send_bytes(b"audio")
            assert websocket.receive_json() == {"type": "data", "payload": {"channel": 0}}

            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

    def test_provider_hang_up_closes_client(self, clock):
        connector = FakeUpstreamConnector(script=[(1, None)])
        client = TestClient(RelayService(token_clock=clock, upstream_connector=connector, shared_secret=SECRET).app)
        token = self.issue(client)

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "ready"}
            websocket.send_bytes(b"audio")

            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 1000

    def test_provider_unreachable(self, clock):
        connector = FakeUpstreamConnector(error=ConnectionRefusedError("refused"))
        service = RelayService(token_clock=clock, upstream_connector=connector, shared_secret=SECRET)
        client = TestClient(service.app)
        token = self.issue(client)

        with client.websocket_connect(f"/stt/relay?token={token}") as websocket:
            assert websocket.receive_json() == {"type": "error", "error": "upstream_failure"}
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 1011
        assert token not in service.token_store
