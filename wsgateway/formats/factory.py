"""Factory for selecting WebSocket message format strategies."""

from wsgateway.formats.json import JSONFormatStrategy
from wsgateway.formats.protocol import MessageFormatStrategy
from wsgateway.formats.raw import RawFormatStrategy


def select_message_format_strategy(format_name: str) -> MessageFormatStrategy:
    """
    Select message format strategy based on format name.

    Args:
        format_name: Format identifier (e.g., 'json', 'raw')

    Returns:
        Appropriate MessageFormatStrategy implementation

    Note:
        Defaults to JSONFormatStrategy for unknown formats
    """
    if format_name == "raw":
        return RawFormatStrategy()
    return JSONFormatStrategy()  # Default format
