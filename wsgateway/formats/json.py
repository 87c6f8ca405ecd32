"""JSON message format strategy for WebSocket communication."""

import json
from typing import Any

from pydantic import BaseModel

from wsgateway.formats.protocol import InboundPayload
from wsgateway.schemas.message import MessageModel


def dump_payload(payload: Any) -> str | bytes:
    """
    Encode an outbound payload into a frame.

    Bytes are sent as a binary frame, strings as-is, pydantic models and
    any other JSON-serializable value as a JSON text frame.
    """
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(exclude_none=True)
    return json.dumps(payload, default=str)


class JSONFormatStrategy:
    """
    JSON message format strategy (default).

    Every text frame must hold one JSON object matching `MessageModel`.
    Binary frames are passed through as raw bytes.
    """

    @property
    def format_name(self) -> str:
        """Format identifier for logging."""
        return "json"

    def deserialize(self, frame: str | bytes) -> InboundPayload:
        """
        Parse a text frame into a MessageModel.

        Raises:
            ValueError: If the text is not valid JSON.
            ValidationError: If the JSON does not match MessageModel.
        """
        if isinstance(frame, bytes):
            return frame

        data = json.loads(frame)
        if not isinstance(data, dict):
            raise ValueError("JSON frame must hold an object")

        return MessageModel(**data)

    def serialize(self, payload: Any) -> str | bytes:
        return dump_payload(payload)
