"""Broadcast hub - fans accepted events out to every registered connection."""

import logging
from datetime import UTC, datetime

from pydantic import BaseModel

from parlor.errors import DeliveryError
from parlor.metrics import SessionMetrics
from parlor.models import ChatMessage, MessageKind
from parlor.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class BroadcastHub:
    """Delivers events to registered connections in registration order.

    Delivery never waits on a recipient: each event is queued on the
    recipient's outbox, so every recipient sees events in acceptance order
    and a stalled one cannot hold up the rest. Recipients that cannot take
    an event are recorded and handed back through :meth:`take_failures`;
    the caller decides how to close them.

    There are no receipts and no retries.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        metrics: SessionMetrics | None = None,
    ) -> None:
        self._registry = registry
        self._metrics = metrics or SessionMetrics()
        self._failed: list[str] = []
        self._last_timestamp: datetime | None = None

    def broadcast(self, event: BaseModel) -> None:
        for connection in self._registry.all():
            self._deliver(connection, event)

    def send(self, connection: Connection, event: BaseModel) -> None:
        """Deliver to a single connection, registered or not."""
        self._deliver(connection, event)

    def post(self, username: str, text: str) -> ChatMessage:
        """Accept and broadcast a user message."""
        return self._publish(MessageKind.USER, text, username)

    def announce(self, text: str) -> ChatMessage:
        """Accept and broadcast a system notice."""
        return self._publish(MessageKind.SYSTEM, text, None)

    def take_failures(self) -> list[str]:
        """Connection ids that failed delivery since the last call."""
        failed, self._failed = self._failed, []
        return failed

    def _publish(
        self,
        kind: MessageKind,
        text: str,
        username: str | None,
    ) -> ChatMessage:
        message = ChatMessage(
            kind=kind,
            username=username,
            text=text,
            timestamp=self._stamp(),
        )
        self.broadcast(message)
        self._metrics.message_broadcast(kind)
        return message

    def _stamp(self) -> datetime:
        # Wall clock, but never earlier than the previous message.
        now = datetime.now(UTC)
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def _deliver(self, connection: Connection, event: BaseModel) -> None:
        try:
            connection.deliver(event)
        except DeliveryError as e:
            logger.warning("%s", e)
            self._metrics.delivery_failed()
            if connection.id not in self._failed:
                self._failed.append(connection.id)
