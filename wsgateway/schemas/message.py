from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageModel(BaseModel):
    """
    Envelope for JSON text frames.

    Attributes:
        type: Application-defined message type (e.g. "chat", "ping").
        id: Optional client-chosen message identifier, echoed in replies.
        data: Optional message payload.
    """

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    id: Optional[str] = None
    data: Any = None
