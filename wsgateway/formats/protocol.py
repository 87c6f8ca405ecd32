"""
Protocol for WebSocket message format strategies.

Defines the interface for handling different wire formats using structural
subtyping (Protocol). Any class implementing these methods is compatible
without explicit inheritance.
"""

from typing import Any, Protocol

from wsgateway.schemas.message import MessageModel

# What handlers receive for one inbound frame
InboundPayload = MessageModel | str | bytes


class MessageFormatStrategy(Protocol):
    """
    Protocol for WebSocket message format handling.

    Example:
        ```python
        from wsgateway.formats import select_message_format_strategy


        strategy = select_message_format_strategy("json")
        payload = strategy.deserialize('{"type": "chat", "data": "hi"}')
        frame = strategy.serialize(payload)
        ```
    """

    def deserialize(self, frame: str | bytes) -> InboundPayload:
        """
        Convert one inbound frame to the payload handed to handlers.

        Raises:
            ValueError: If the frame is malformed for this format
                (pydantic's ValidationError is a ValueError).
        """
        ...

    def serialize(self, payload: Any) -> str | bytes:
        """
        Convert an outbound payload to a frame.

        Returns:
            `str` for a text frame, `bytes` for a binary frame.
        """
        ...

    @property
    def format_name(self) -> str:
        """Human-readable format name for logging (e.g., 'json', 'raw')."""
        ...
