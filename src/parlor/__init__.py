"""parlor: Real-time chat session layer.

A single room with presence, typing indicators and ordered broadcast.
"""

from parlor.config import ChatConfig, ServerConfig
from parlor.errors import (
    ChatError,
    DeliveryError,
    DuplicateUsernameError,
    InvalidPayloadError,
    TransportClosedError,
)
from parlor.hub import BroadcastHub
from parlor.metrics import SessionMetrics
from parlor.models import (
    ChatMessage,
    ClientEvent,
    ConnectionState,
    Join,
    Joined,
    JoinRejected,
    Leave,
    MessageKind,
    RosterUpdate,
    SendText,
    ServerEvent,
    TypingSignal,
    TypingUpdate,
)
from parlor.registry import Connection, ConnectionRegistry
from parlor.roster import PresenceRoster
from parlor.session import ChatSession
from parlor.transport import (
    MemoryClient,
    MemoryTransport,
    Transport,
    WebSocketTransport,
)
from parlor.typing_state import TypingTracker

__all__ = [
    # config
    "ChatConfig",
    "ServerConfig",
    # errors
    "ChatError",
    "DeliveryError",
    "DuplicateUsernameError",
    "InvalidPayloadError",
    "TransportClosedError",
    # models
    "ChatMessage",
    "ClientEvent",
    "ConnectionState",
    "Join",
    "JoinRejected",
    "Joined",
    "Leave",
    "MessageKind",
    "RosterUpdate",
    "SendText",
    "ServerEvent",
    "TypingSignal",
    "TypingUpdate",
    # session
    "BroadcastHub",
    "ChatSession",
    "Connection",
    "ConnectionRegistry",
    "PresenceRoster",
    "SessionMetrics",
    "TypingTracker",
    # transport
    "MemoryClient",
    "MemoryTransport",
    "Transport",
    "WebSocketTransport",
]
