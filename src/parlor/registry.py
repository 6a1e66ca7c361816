"""Connection registry - the single owner of live connection records."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import BaseModel

from parlor.config import DEFAULT_OUTBOX_SIZE
from parlor.errors import DeliveryError, DuplicateUsernameError
from parlor.models import ConnectionState

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One live transport link.

    Events bound for the client are queued on ``outbox`` and read from
    ``events`` by whatever drives the transport. The username is bound once,
    at join, and never changes afterwards.
    """

    id: str
    outbox: MemoryObjectSendStream[BaseModel] = field(repr=False)
    events: MemoryObjectReceiveStream[BaseModel] = field(repr=False)
    state: ConnectionState = ConnectionState.CONNECTING
    username: str | None = None
    joined_at: datetime | None = None
    typing: bool = False
    typing_timer: anyio.CancelScope | None = field(default=None, repr=False)

    @classmethod
    def open(
        cls,
        connection_id: str | None = None,
        buffer_size: int = DEFAULT_OUTBOX_SIZE,
    ) -> "Connection":
        send, receive = anyio.create_memory_object_stream[BaseModel](buffer_size)
        return cls(id=connection_id or uuid4().hex, outbox=send, events=receive)

    @property
    def is_active(self) -> bool:
        return self.state is ConnectionState.ACTIVE

    def deliver(self, event: BaseModel) -> None:
        """Queue an event without waiting.

        Raises:
            DeliveryError: The outbox is full or already closed.
        """
        try:
            self.outbox.send_nowait(event)
        except anyio.WouldBlock as e:
            raise DeliveryError(self.id, "outbox full") from e
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise DeliveryError(self.id, "outbox closed") from e

    def close_outbox(self) -> None:
        # Buffered events stay readable from ``events`` until drained.
        self.outbox.close()


class ConnectionRegistry:
    """Joined connections in registration order."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def register(self, connection: Connection, username: str) -> None:
        """Bind ``username`` to ``connection`` and record the join time.

        Raises:
            DuplicateUsernameError: Another live connection holds the name
                (case-sensitive). The registry is left untouched.
        """
        for other in self._connections.values():
            if other.id != connection.id and other.username == username:
                raise DuplicateUsernameError(username)

        connection.username = username
        connection.joined_at = datetime.now(UTC)
        self._connections[connection.id] = connection
        logger.debug("Registered %s as connection %s", username, connection.id)

    def unregister(self, connection_id: str) -> Connection | None:
        """Remove a connection. Unknown ids are ignored."""
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def username_of(self, connection_id: str) -> str | None:
        connection = self._connections.get(connection_id)
        return connection.username if connection else None

    def all(self) -> list[Connection]:
        return list(self._connections.values())

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
