"""Chat domain models - client commands and server events."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

JOIN_REJECTED_DUPLICATE = "duplicate-username"


class MessageKind(StrEnum):
    USER = "user-message"
    SYSTEM = "system-notice"


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


# Client -> server
class Join(BaseModel):
    """Request to join the room under a username."""

    type: Literal["join"] = "join"
    username: str


class SendText(BaseModel):
    """Chat text authored by the connection's user."""

    type: Literal["chatMessage"] = "chatMessage"
    text: str


class TypingSignal(BaseModel):
    """Client typing state change."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["typing"] = "typing"
    is_typing: bool = Field(alias="isTyping")


class Leave(BaseModel):
    """Explicit request to leave the room."""

    type: Literal["leave"] = "leave"


ClientEvent = Annotated[
    Join | SendText | TypingSignal | Leave,
    Field(discriminator="type"),
]


# Server -> client
class Joined(BaseModel):
    """Acknowledges a successful join to the joining connection only."""

    model_config = ConfigDict(frozen=True)

    type: Literal["joined"] = "joined"
    username: str


class JoinRejected(BaseModel):
    """Join refused; the client should retry with a different username."""

    model_config = ConfigDict(frozen=True)

    type: Literal["joinRejected"] = "joinRejected"
    reason: str = JOIN_REJECTED_DUPLICATE


class ChatMessage(BaseModel):
    """A broadcast chat line: user text or a system notice.

    The timestamp is assigned by the hub when the message is accepted, never
    taken from the client.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["message"] = "message"
    id: UUID = Field(default_factory=uuid4)
    kind: MessageKind
    username: str | None = None
    text: str
    timestamp: datetime

    @property
    def is_system(self) -> bool:
        return self.kind is MessageKind.SYSTEM


class RosterUpdate(BaseModel):
    """Full snapshot of online usernames in join order."""

    model_config = ConfigDict(frozen=True)

    type: Literal["roster"] = "roster"
    usernames: list[str]


class TypingUpdate(BaseModel):
    """Full snapshot of usernames currently typing."""

    model_config = ConfigDict(frozen=True)

    type: Literal["typing"] = "typing"
    usernames: list[str]


ServerEvent = Annotated[
    Joined | JoinRejected | ChatMessage | RosterUpdate | TypingUpdate,
    Field(discriminator="type"),
]
