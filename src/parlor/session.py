"""Chat session - connection lifecycle for a single room.

Every state change and every broadcast runs under one lock, so all
recipients observe events in the order they were accepted and duplicate
username checks cannot race.
"""

import logging

import anyio
from anyio.abc import TaskStatus

from parlor.config import ChatConfig
from parlor.errors import (
    DuplicateUsernameError,
    InvalidPayloadError,
    TransportClosedError,
)
from parlor.hub import BroadcastHub
from parlor.metrics import SessionMetrics
from parlor.models import (
    ClientEvent,
    ConnectionState,
    Join,
    Joined,
    JoinRejected,
    Leave,
    RosterUpdate,
    SendText,
    TypingSignal,
    TypingUpdate,
)
from parlor.registry import Connection, ConnectionRegistry
from parlor.roster import PresenceRoster
from parlor.transport import Transport
from parlor.typing_state import TypingTracker

logger = logging.getLogger(__name__)


def _clean(value: str, max_length: int, what: str) -> str:
    text = value.strip()
    if not text:
        msg = f"{what} is empty"
        raise InvalidPayloadError(msg)
    if len(text) > max_length:
        msg = f"{what} exceeds {max_length} characters"
        raise InvalidPayloadError(msg)
    return text


class ChatSession:
    """One chat room: registry, roster, typing state and broadcast hub.

    The session must be running for typing timers to work:

        session = ChatSession()
        async with anyio.create_task_group() as tg:
            await tg.start(session.run)
            tg.start_soon(session.serve, transport)
            ...
            await session.close()

    Connections move ``connecting -> active -> closed``. Events other than
    ``join`` from a connection that has not joined are dropped, as is any
    event from a closed connection.
    """

    def __init__(
        self,
        config: ChatConfig | None = None,
        metrics: SessionMetrics | None = None,
    ) -> None:
        self.config = config or ChatConfig()
        self._metrics = metrics or SessionMetrics()
        self.registry = ConnectionRegistry()
        self.roster = PresenceRoster(self.registry)
        self.hub = BroadcastHub(self.registry, self._metrics)
        self.typing = TypingTracker(
            self.registry,
            self._on_typing_expired,
            self.config.typing_timeout,
        )
        self._connections: dict[str, Connection] = {}
        self._lock = anyio.Lock()
        self._running = False
        self._cancel_scope: anyio.CancelScope | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def run(
        self,
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Run the session until closed."""
        if self._running:
            msg = "ChatSession is already running"
            raise RuntimeError(msg)

        self._running = True
        try:
            async with anyio.create_task_group() as tg:
                self._cancel_scope = tg.cancel_scope
                self.typing.bind(tg)
                logger.info("Chat session started")
                task_status.started()
                await anyio.sleep_forever()
        finally:
            self.typing.unbind()
            self._running = False
            self._cancel_scope = None
            # No farewells on shutdown: drop everyone without broadcasting.
            for connection in self._connections.values():
                connection.state = ConnectionState.CLOSED
                connection.close_outbox()
                self.registry.unregister(connection.id)
            self._connections.clear()
            logger.info("Chat session stopped")

    async def close(self) -> None:
        """Stop the session. Served connections are released."""
        if self._cancel_scope:
            self._cancel_scope.cancel()

    def online(self) -> list[str]:
        return self.roster.snapshot()

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def accept(self, connection_id: str | None = None) -> Connection:
        """Create a connection in the ``connecting`` state."""
        connection = Connection.open(connection_id, self.config.outbox_size)
        if connection.id in self._connections:
            msg = f"Connection {connection.id} already exists"
            raise ValueError(msg)
        self._connections[connection.id] = connection
        self._metrics.connection_accepted()
        logger.debug("Accepted connection %s", connection.id)
        return connection

    async def join(self, connection_id: str, username: str) -> bool:
        """Move a connecting connection to active under ``username``.

        On a duplicate name the connection receives JoinRejected and stays
        connecting. Returns True if the join succeeded.
        """
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or connection.state is not ConnectionState.CONNECTING:
                logger.debug("Dropping join from connection %s", connection_id)
                return False

            try:
                name = _clean(username, self.config.max_username_length, "Username")
                self.registry.register(connection, name)
            except InvalidPayloadError as e:
                logger.info("Dropping join from connection %s: %s", connection_id, e)
                return False
            except DuplicateUsernameError as e:
                logger.info("Join rejected for connection %s: %s", connection_id, e)
                self._metrics.join_rejected()
                self.hub.send(connection, JoinRejected())
                self._reap()
                return False

            connection.state = ConnectionState.ACTIVE
            self._metrics.join_accepted()
            logger.info("%s joined (connection %s)", name, connection_id)

            self.hub.send(connection, Joined(username=name))
            self.hub.announce(f"{name} joined")
            self.hub.broadcast(RosterUpdate(usernames=self.roster.snapshot()))
            self._reap()
            return True

    async def send_text(self, connection_id: str, text: str) -> bool:
        """Broadcast chat text from an active connection."""
        async with self._lock:
            connection = self._active(connection_id)
            if connection is None or connection.username is None:
                return False
            try:
                body = _clean(text, self.config.max_message_length, "Message")
            except InvalidPayloadError as e:
                logger.debug("Dropping message from %s: %s", connection.username, e)
                return False

            self.hub.post(connection.username, body)
            self._reap()
            return True

    async def set_typing(self, connection_id: str, is_typing: bool) -> bool:
        """Update typing state and broadcast the typing set."""
        async with self._lock:
            if self._active(connection_id) is None:
                return False
            self.typing.set_typing(connection_id, is_typing)
            self.hub.broadcast(TypingUpdate(usernames=self.typing.snapshot()))
            self._reap()
            return True

    async def leave(self, connection_id: str) -> bool:
        """Explicit leave. Returns False if the connection was already closed."""
        async with self._lock:
            closed = self._close(connection_id, "left")
            self._reap()
            return closed

    async def disconnect(self, connection_id: str) -> bool:
        """Transport loss. Same cleanup as :meth:`leave`, and equally idempotent."""
        async with self._lock:
            closed = self._close(connection_id, "disconnected")
            self._reap()
            return closed

    async def dispatch(self, connection_id: str, event: ClientEvent) -> None:
        """Route one client event to the matching operation."""
        if isinstance(event, Join):
            await self.join(connection_id, event.username)
        elif isinstance(event, SendText):
            await self.send_text(connection_id, event.text)
        elif isinstance(event, TypingSignal):
            await self.set_typing(connection_id, event.is_typing)
        elif isinstance(event, Leave):
            await self.leave(connection_id)

    async def serve(self, transport: Transport) -> None:
        """Drive one transport link from accept to close.

        Returns when the client leaves, the link drops, delivery to the
        client fails, or the session stops. The transport is closed on return.
        """
        if not self._running:
            logger.warning("Refusing connection, chat session is not running")
            await transport.close()
            return

        connection = self.accept()
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._pump, connection, transport, tg.cancel_scope)
                if await self._read(connection, transport):
                    # Closed by the session: the outbox is closed, so the pump
                    # ends once it has flushed what is already queued.
                    tg.cancel_scope.deadline = (
                        anyio.current_time() + self.config.drain_timeout
                    )
                else:
                    tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await self.disconnect(connection.id)
                await transport.close()

    async def _read(self, connection: Connection, transport: Transport) -> bool:
        """Dispatch inbound events until the connection or the link closes.

        Returns True if the session closed the connection, False if the link
        went away first.
        """
        while connection.state is not ConnectionState.CLOSED:
            try:
                event = await transport.receive()
            except TransportClosedError:
                logger.debug("Transport for connection %s closed", connection.id)
                return False
            except InvalidPayloadError as e:
                logger.warning(
                    "Dropping frame from connection %s: %s", connection.id, e
                )
                continue
            await self.dispatch(connection.id, event)
        return True

    async def _pump(
        self,
        connection: Connection,
        transport: Transport,
        scope: anyio.CancelScope,
    ) -> None:
        try:
            async for event in connection.events:
                await transport.send(event)
        except TransportClosedError:
            logger.debug("Send to connection %s failed, link is gone", connection.id)
        finally:
            # Outbox closed or link gone: stop reading as well.
            scope.cancel()

    def _active(self, connection_id: str) -> Connection | None:
        connection = self._connections.get(connection_id)
        if connection is None or not connection.is_active:
            logger.debug("Dropping event from inactive connection %s", connection_id)
            return None
        return connection

    def _close(self, connection_id: str, reason: str) -> bool:
        # Caller holds the lock.
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return False

        was_active = connection.is_active
        was_typing = connection.typing
        connection.state = ConnectionState.CLOSED
        connection.close_outbox()
        if not was_active:
            logger.debug("Discarded connection %s before join", connection_id)
            return True

        self.typing.clear(connection_id)
        self.registry.unregister(connection_id)
        self._metrics.user_left()
        logger.info("%s %s (connection %s)", connection.username, reason, connection_id)

        self.hub.announce(f"{connection.username} left")
        self.hub.broadcast(RosterUpdate(usernames=self.roster.snapshot()))
        if was_typing:
            self.hub.broadcast(TypingUpdate(usernames=self.typing.snapshot()))
        return True

    def _reap(self) -> None:
        # Caller holds the lock. Closing a failed recipient broadcasts again,
        # which may fail further recipients.
        while failed := self.hub.take_failures():
            for connection_id in failed:
                self._close(connection_id, "dropped")

    async def _on_typing_expired(
        self,
        connection_id: str,
        timer: anyio.CancelScope,
    ) -> None:
        async with self._lock:
            if not self.typing.expire(connection_id, timer):
                return
            logger.debug("Typing expired for connection %s", connection_id)
            self.hub.broadcast(TypingUpdate(usernames=self.typing.snapshot()))
            self._reap()
