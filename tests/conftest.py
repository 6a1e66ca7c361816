"""Shared fixtures for parlor tests."""

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import anyio
import pytest
from pydantic import BaseModel

from parlor import ChatConfig, ChatSession, Connection, SessionMetrics

FAST_TYPING_TIMEOUT = 0.05

SessionFactory = Callable[..., AbstractAsyncContextManager[ChatSession]]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def chat_config() -> ChatConfig:
    """Config with a short typing window so expiry tests stay fast."""
    return ChatConfig(typing_timeout=FAST_TYPING_TIMEOUT)


@pytest.fixture
def run_session(chat_config: ChatConfig) -> SessionFactory:
    """Factory for a running session, torn down on exit.

    Usage:
        async with run_session() as session:
            ...
    """

    @asynccontextmanager
    async def factory(
        config: ChatConfig | None = None,
        metrics: SessionMetrics | None = None,
    ) -> AsyncIterator[ChatSession]:
        session = ChatSession(config or chat_config, metrics)
        async with anyio.create_task_group() as tg:
            await tg.start(session.run)
            try:
                yield session
            finally:
                await session.close()

    return factory


@pytest.fixture
def drain() -> Callable[[Connection], list[BaseModel]]:
    """Return everything queued on a connection's outbox without waiting."""

    def take(connection: Connection) -> list[BaseModel]:
        events: list[BaseModel] = []
        while True:
            try:
                events.append(connection.events.receive_nowait())
            except (anyio.WouldBlock, anyio.EndOfStream):
                return events

    return take
