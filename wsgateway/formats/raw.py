"""Raw message format strategy: frames are passed through untouched."""

from typing import Any

from wsgateway.formats.json import dump_payload
from wsgateway.formats.protocol import InboundPayload


class RawFormatStrategy:
    """
    Raw message format strategy.

    Text frames reach handlers as `str`, binary frames as `bytes`; no
    envelope validation is performed.
    """

    @property
    def format_name(self) -> str:
        return "raw"

    def deserialize(self, frame: str | bytes) -> InboundPayload:
        return frame

    def serialize(self, payload: Any) -> str | bytes:
        return dump_payload(payload)
