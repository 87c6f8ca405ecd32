"""WebSocket message format strategies."""

from wsgateway.formats.factory import select_message_format_strategy
from wsgateway.formats.json import JSONFormatStrategy, dump_payload
from wsgateway.formats.protocol import InboundPayload, MessageFormatStrategy
from wsgateway.formats.raw import RawFormatStrategy

__all__ = [
    "InboundPayload",
    "JSONFormatStrategy",
    "MessageFormatStrategy",
    "RawFormatStrategy",
    "dump_payload",
    "select_message_format_strategy",
]
