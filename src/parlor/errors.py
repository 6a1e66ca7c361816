"""Chat layer exceptions.

None of these propagate out of a running session: each is handled where the
chat layer meets the offending connection.
"""


class ChatError(Exception):
    """Base class for chat layer errors."""


class DuplicateUsernameError(ChatError):
    """Username is already bound to another live connection.

    The join is rejected and the connection stays in ``connecting``; the client
    may retry with a different name.
    """

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Username {username!r} is already taken")


class InvalidPayloadError(ChatError):
    """Event was empty, oversized or malformed. The event is dropped."""


class DeliveryError(ChatError):
    """An event could not be handed to a recipient connection."""

    def __init__(self, connection_id: str, reason: str = "") -> None:
        self.connection_id = connection_id
        self.reason = reason
        message = f"Delivery to connection {connection_id} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TransportClosedError(ChatError):
    """The underlying transport link is gone."""
