from wsgateway.schemas.events import BroadcastResult, GatewayEvent
from wsgateway.schemas.message import MessageModel

__all__ = ["BroadcastResult", "GatewayEvent", "MessageModel"]
