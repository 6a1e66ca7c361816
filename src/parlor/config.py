"""Configuration dataclasses for the chat session and server."""

import os
from dataclasses import dataclass

DEFAULT_TYPING_TIMEOUT = 1.0
DEFAULT_MAX_USERNAME_LENGTH = 30
DEFAULT_MAX_MESSAGE_LENGTH = 500
DEFAULT_OUTBOX_SIZE = 100
DEFAULT_DRAIN_TIMEOUT = 1.0
DEFAULT_ENV_PREFIX = "PARLOR_"


@dataclass
class ChatConfig:
    """Configuration for a ChatSession."""

    typing_timeout: float = DEFAULT_TYPING_TIMEOUT
    """Seconds of inactivity before a typing flag is cleared by the server."""

    max_username_length: int = DEFAULT_MAX_USERNAME_LENGTH
    """Maximum username length after trimming."""

    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    """Maximum chat text length after trimming."""

    outbox_size: int = DEFAULT_OUTBOX_SIZE
    """Events buffered per connection before it counts as a failed recipient."""

    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    """Seconds a closing connection gets to flush events already queued for it."""

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if self.typing_timeout <= 0:
            msg = f"typing_timeout must be > 0, got {self.typing_timeout}"
            raise ValueError(msg)
        if self.max_username_length < 1:
            msg = f"max_username_length must be >= 1, got {self.max_username_length}"
            raise ValueError(msg)
        if self.max_message_length < 1:
            msg = f"max_message_length must be >= 1, got {self.max_message_length}"
            raise ValueError(msg)
        if self.outbox_size < 1:
            msg = f"outbox_size must be >= 1, got {self.outbox_size}"
            raise ValueError(msg)
        if self.drain_timeout < 0:
            msg = f"drain_timeout must be >= 0, got {self.drain_timeout}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> "ChatConfig":
        """Build a config from ``<prefix>TYPING_TIMEOUT`` and friends.

        Unset variables keep their defaults.
        """
        env = os.environ
        return cls(
            typing_timeout=float(
                env.get(f"{prefix}TYPING_TIMEOUT", DEFAULT_TYPING_TIMEOUT)
            ),
            max_username_length=int(
                env.get(f"{prefix}MAX_USERNAME_LENGTH", DEFAULT_MAX_USERNAME_LENGTH)
            ),
            max_message_length=int(
                env.get(f"{prefix}MAX_MESSAGE_LENGTH", DEFAULT_MAX_MESSAGE_LENGTH)
            ),
            outbox_size=int(env.get(f"{prefix}OUTBOX_SIZE", DEFAULT_OUTBOX_SIZE)),
            drain_timeout=float(
                env.get(f"{prefix}DRAIN_TIMEOUT", DEFAULT_DRAIN_TIMEOUT)
            ),
        )


@dataclass
class ServerConfig:
    """Configuration for the HTTP/WebSocket server.

    Attributes:
        host: Interface to bind to.
        port: TCP port to listen on.
        log_level: Root logging level name.
    """

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> "ServerConfig":
        """Build a config from ``<prefix>HOST``, ``PORT`` and ``LOG_LEVEL``."""
        defaults = cls()
        return cls(
            host=os.environ.get(f"{prefix}HOST", defaults.host),
            port=int(os.environ.get(f"{prefix}PORT", defaults.port)),
            log_level=os.environ.get(f"{prefix}LOG_LEVEL", defaults.log_level).upper(),
        )
