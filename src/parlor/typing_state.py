"""Typing tracker - per-connection typing flags with server-side expiry."""

import logging
from collections.abc import Awaitable, Callable

import anyio
from anyio.abc import TaskGroup

from parlor.config import DEFAULT_TYPING_TIMEOUT
from parlor.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str, anyio.CancelScope], Awaitable[None]]


class TypingTracker:
    """Tracks which connections are typing.

    Setting a flag arms a timer; if no refreshing signal arrives within
    ``timeout`` seconds the timer calls ``on_expire(connection_id, timer)``.
    The callback must confirm with :meth:`expire` before acting, since the
    timer may have been superseded while it waited.

    Timers run in the task group given to :meth:`bind`.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        on_expire: ExpireCallback,
        timeout: float = DEFAULT_TYPING_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._on_expire = on_expire
        self._timeout = timeout
        self._task_group: TaskGroup | None = None

    @property
    def timeout(self) -> float:
        return self._timeout

    def bind(self, task_group: TaskGroup) -> None:
        self._task_group = task_group

    def unbind(self) -> None:
        self._task_group = None

    def set_typing(self, connection_id: str, is_typing: bool) -> bool:
        """Update a connection's flag. Returns False for unknown connections.

        ``True`` (re)arms the expiry timer, ``False`` disarms it.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            return False

        self._disarm(connection)
        connection.typing = is_typing
        if is_typing:
            self._arm(connection)
        return True

    def clear(self, connection_id: str) -> None:
        """Disarm and reset without emitting anything."""
        connection = self._registry.get(connection_id)
        if connection is None:
            return
        self._disarm(connection)
        connection.typing = False

    def expire(self, connection_id: str, timer: anyio.CancelScope) -> bool:
        """Force the flag off if ``timer`` is still the connection's live timer."""
        connection = self._registry.get(connection_id)
        if connection is None or connection.typing_timer is not timer:
            return False
        connection.typing_timer = None
        connection.typing = False
        return True

    def snapshot(self) -> list[str]:
        """Usernames currently typing, in join order."""
        return [
            connection.username
            for connection in self._registry.all()
            if connection.typing and connection.username is not None
        ]

    def _arm(self, connection: Connection) -> None:
        if self._task_group is None:
            msg = "TypingTracker is not bound to a running task group"
            raise RuntimeError(msg)
        timer = anyio.CancelScope()
        connection.typing_timer = timer
        self._task_group.start_soon(self._expire_after, connection.id, timer)

    def _disarm(self, connection: Connection) -> None:
        if connection.typing_timer is not None:
            connection.typing_timer.cancel()
            connection.typing_timer = None

    async def _expire_after(self, connection_id: str, timer: anyio.CancelScope) -> None:
        with timer:
            await anyio.sleep(self._timeout)
            logger.debug("Typing timer elapsed for connection %s", connection_id)
            await self._on_expire(connection_id, timer)
