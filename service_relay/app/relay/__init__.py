"""
Browser to transcription provider relay.
"""

from .envelope import ReadyEnvelope, DataEnvelope, ErrorEnvelope, encode_envelope, parse_envelope
from .session import RelaySession, RelayState
from .upstream import UpstreamConnector

__all__ = [
    "ReadyEnvelope",
    "DataEnvelope",
    "ErrorEnvelope",
    "encode_envelope",
    "parse_envelope",
    "RelaySession",
    "RelayState",
    "UpstreamConnector",
]
