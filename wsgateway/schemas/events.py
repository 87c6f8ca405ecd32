from pydantic import BaseModel, ConfigDict, Field

from wsgateway.constants import GatewayEventKind


class GatewayEvent(BaseModel):
    """
    Notification delivered to gateway observers.

    Attributes:
        kind: What happened.
        connection_id: Connection the event belongs to, if any.
        close_code: WebSocket close code for `closed` events.
        error: The isolated per-connection error, if any.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: GatewayEventKind
    connection_id: str | None = None
    close_code: int | None = None
    error: Exception | None = None


class BroadcastResult(BaseModel):
    """Outcome of a broadcast: recipients reached and recipients that failed."""

    delivered: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.delivered) + len(self.failed)
