"""OpenTelemetry instruments for a chat session."""

from opentelemetry import metrics
from opentelemetry.metrics import MeterProvider

from parlor.models import MessageKind

METER_NAME = "parlor"


class SessionMetrics:
    """Counters for connection lifecycle and broadcast traffic.

    Tracks:
    - parlor.connections.accepted: Transport links accepted
    - parlor.joins: Join attempts, by ``outcome`` (accepted / duplicate)
    - parlor.users.online: Currently joined users
    - parlor.messages.broadcast: Chat messages fanned out, by ``kind``
    - parlor.delivery.failures: Recipients dropped during fan-out

    Uses the global meter provider when none is given, which is a no-op
    until the application installs an SDK provider.
    """

    def __init__(self, meter_provider: MeterProvider | None = None) -> None:
        provider = meter_provider or metrics.get_meter_provider()
        meter = provider.get_meter(METER_NAME)

        self._accepted = meter.create_counter(
            "parlor.connections.accepted",
            unit="{connection}",
            description="Number of transport links accepted",
        )
        self._joins = meter.create_counter(
            "parlor.joins",
            unit="{join}",
            description="Number of join attempts",
        )
        self._online = meter.create_up_down_counter(
            "parlor.users.online",
            unit="{user}",
            description="Number of users currently in the room",
        )
        self._messages = meter.create_counter(
            "parlor.messages.broadcast",
            unit="{message}",
            description="Number of chat messages broadcast",
        )
        self._failures = meter.create_counter(
            "parlor.delivery.failures",
            unit="{event}",
            description="Number of events that could not be delivered",
        )

    def connection_accepted(self) -> None:
        self._accepted.add(1)

    def join_accepted(self) -> None:
        self._joins.add(1, {"outcome": "accepted"})
        self._online.add(1)

    def join_rejected(self) -> None:
        self._joins.add(1, {"outcome": "duplicate"})

    def user_left(self) -> None:
        self._online.add(-1)

    def message_broadcast(self, kind: MessageKind) -> None:
        self._messages.add(1, {"kind": kind.value})

    def delivery_failed(self) -> None:
        self._failures.add(1)
