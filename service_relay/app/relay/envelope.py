"""
Frames sent from the relay to the browser client.
"""

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class ReadyEnvelope(BaseModel):
    """Upstream connection is open; audio may be sent."""
    type: Literal["ready"] = "ready"


class DataEnvelope(BaseModel):
    """One message received from the transcription provider."""
    type: Literal["data"] = "data"
    payload: Any = None


class ErrorEnvelope(BaseModel):
    """Terminal error; the relay closes the connection after sending it."""
    type: Literal["error"] = "error"
    error: str


Envelope = Annotated[
    Union[ReadyEnvelope, DataEnvelope, ErrorEnvelope],
    Field(discriminator="type")
]

_envelope_adapter: TypeAdapter = TypeAdapter(Envelope)


def encode_envelope(envelope: Union[ReadyEnvelope, DataEnvelope, ErrorEnvelope]) -> str:
    return envelope.model_dump_json()


def parse_envelope(raw: Union[str, bytes]) -> Union[ReadyEnvelope, DataEnvelope, ErrorEnvelope]:
    return _envelope_adapter.validate_json(raw)


def wrap_upstream_frame(frame: Union[str, bytes]) -> Optional[DataEnvelope]:
    """Wrap a provider frame in a data envelope.

    Frames that are not valid JSON yield None and are dropped by the caller.
    This mirrors what existing browser clients expect and is not a general
    protocol guarantee.
    """
    try:
        payload = json.loads(frame)
    except (TypeError, ValueError):
        return None
    return DataEnvelope(payload=payload)
