"""JSON wire codec for chat events."""

from pydantic import BaseModel, TypeAdapter, ValidationError

from parlor.errors import InvalidPayloadError
from parlor.models import ClientEvent, ServerEvent

_client_events: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)
_server_events: TypeAdapter[ServerEvent] = TypeAdapter(ServerEvent)


def decode_client_event(data: str | bytes) -> ClientEvent:
    """Parse one inbound frame.

    Raises:
        InvalidPayloadError: Malformed JSON, unknown ``type`` or bad fields.
    """
    try:
        return _client_events.validate_json(data)
    except ValidationError as e:
        msg = f"Invalid client event: {e.error_count()} error(s)"
        raise InvalidPayloadError(msg) from e


def encode_server_event(event: BaseModel) -> str:
    """Serialize a server event using wire field names."""
    return event.model_dump_json(by_alias=True)


def decode_server_event(data: str | bytes) -> ServerEvent:
    """Parse one outbound frame; used by Python clients and tests."""
    try:
        return _server_events.validate_json(data)
    except ValidationError as e:
        msg = f"Invalid server event: {e.error_count()} error(s)"
        raise InvalidPayloadError(msg) from e


def encode_client_event(event: BaseModel) -> str:
    """Serialize a client event using wire field names."""
    return event.model_dump_json(by_alias=True)
