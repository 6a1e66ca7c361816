"""Transports - the persistent bidirectional links a session serves."""

import logging
from typing import Protocol, runtime_checkable

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import BaseModel
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from parlor.errors import InvalidPayloadError, TransportClosedError
from parlor.marshaling import decode_client_event, encode_server_event
from parlor.models import ClientEvent, Join, Leave, SendText, TypingSignal

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 100


@runtime_checkable
class Transport(Protocol):
    """Server side of one client link.

    ``send`` and ``receive`` raise TransportClosedError once the link is
    gone. ``receive`` may raise InvalidPayloadError for a frame that could
    not be decoded; the link stays usable.
    """

    async def send(self, event: BaseModel) -> None: ...

    async def receive(self) -> ClientEvent: ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """Transport over a Starlette/FastAPI WebSocket carrying JSON frames.

    The socket must already be accepted.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send(self, event: BaseModel) -> None:
        try:
            await self._websocket.send_text(encode_server_event(event))
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise TransportClosedError(str(e)) from e

    async def receive(self) -> ClientEvent:
        """Read one frame; text and binary frames are both decoded as JSON."""
        try:
            message = await self._websocket.receive()
        except (WebSocketDisconnect, RuntimeError) as e:
            raise TransportClosedError(str(e)) from e

        if message["type"] == "websocket.disconnect":
            msg = f"WebSocket closed with code {message.get('code')}"
            raise TransportClosedError(msg)

        data = message.get("text")
        if data is None:
            data = message.get("bytes")
        if data is None:
            msg = f"Empty WebSocket frame: {message['type']}"
            raise InvalidPayloadError(msg)
        return decode_client_event(data)

    async def close(self) -> None:
        if (
            self._websocket.application_state is WebSocketState.DISCONNECTED
            or self._websocket.client_state is WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self._websocket.close()
        except (RuntimeError, OSError):
            logger.debug("WebSocket already closed", exc_info=True)


class MemoryTransport:
    """In-process transport backed by anyio memory object streams.

    Usage:
        transport, client = MemoryTransport.pair()
        tg.start_soon(session.serve, transport)
        await client.join("alice")
    """

    def __init__(
        self,
        inbound: MemoryObjectReceiveStream[ClientEvent],
        outbound: MemoryObjectSendStream[BaseModel],
    ) -> None:
        self._inbound = inbound
        self._outbound = outbound

    @classmethod
    def pair(
        cls,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> tuple["MemoryTransport", "MemoryClient"]:
        """Create a connected (server transport, client) pair."""
        to_server, from_client = anyio.create_memory_object_stream[ClientEvent](
            buffer_size
        )
        to_client, from_server = anyio.create_memory_object_stream[BaseModel](
            buffer_size
        )
        return cls(from_client, to_client), MemoryClient(to_server, from_server)

    async def send(self, event: BaseModel) -> None:
        try:
            await self._outbound.send(event)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportClosedError("client side is gone") from e

    async def receive(self) -> ClientEvent:
        try:
            return await self._inbound.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError) as e:
            raise TransportClosedError("client side is gone") from e

    async def close(self) -> None:
        await self._inbound.aclose()
        await self._outbound.aclose()


class MemoryClient:
    """Client end of a MemoryTransport pair."""

    def __init__(
        self,
        outbound: MemoryObjectSendStream[ClientEvent],
        inbound: MemoryObjectReceiveStream[BaseModel],
    ) -> None:
        self._outbound = outbound
        self._inbound = inbound

    async def join(self, username: str) -> None:
        await self.send(Join(username=username))

    async def send_text(self, text: str) -> None:
        await self.send(SendText(text=text))

    async def set_typing(self, is_typing: bool) -> None:
        await self.send(TypingSignal(is_typing=is_typing))

    async def leave(self) -> None:
        await self.send(Leave())

    async def send(self, event: ClientEvent) -> None:
        try:
            await self._outbound.send(event)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportClosedError("server side is gone") from e

    async def receive(self) -> BaseModel:
        try:
            return await self._inbound.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError) as e:
            raise TransportClosedError("server side is gone") from e

    async def drop(self) -> None:
        """Abruptly close both directions, as a lost network link would."""
        await self._outbound.aclose()
        await self._inbound.aclose()
