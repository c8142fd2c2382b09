"""
Unit tests for relay envelopes.
"""

import json

from service_relay.app.relay.envelope import (
    DataEnvelope,
    ErrorEnvelope,
    ReadyEnvelope,
    encode_envelope,
    parse_envelope,
    wrap_upstream_frame,
)


class TestEnvelopes:
    """Test cases for envelope encoding."""

    def test_ready_frame(self):
        assert json.loads(encode_envelope(ReadyEnvelope())) == {"type": "ready"}

    def test_error_frame(self):
        frame = json.loads(encode_envelope(ErrorEnvelope(error="invalid_or_expired_token")))

        assert frame == {"type": "error", "error": "invalid_or_expired_token"}

    def test_data_frame(self):
        frame = json.loads(encode_envelope(DataEnvelope(payload={"channel": 0})))

        assert frame == {"type": "data", "payload": {"channel": 0}}

    def test_parse_envelope_dispatches_on_type(self):
        assert isinstance(parse_envelope('{"type":"ready"}'), ReadyEnvelope)
        assert parse_envelope('{"type":"error","error":"upstream_failure"}').error == "upstream_failure"
        assert parse_envelope('{"type":"data","payload":[1,2]}').payload == [1, 2]


class TestWrapUpstreamFrame:
    """Test cases for provider frame wrapping."""

    def test_wraps_json_text(self):
        envelope = wrap_upstream_frame('{"channel": {"alternatives": [{"transcript": "hello"}]}}')

        assert envelope.payload["channel"]["alternatives"][0]["transcript"] == "hello"

    def test_wraps_json_bytes(self):
        assert wrap_upstream_frame(b'{"is_final": true}').payload == {"is_final": True}

    def test_non_object_json_is_kept(self):
        assert wrap_upstream_frame("3").payload == 3

    def test_drops_non_json(self):
        assert wrap_upstream_frame("not json") is None
        assert wrap_upstream_frame(b"\x00\x01\x02") is None
