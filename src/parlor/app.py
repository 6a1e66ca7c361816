"""FastAPI application exposing a chat session over WebSocket."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

import anyio
from fastapi import Depends, FastAPI, WebSocket
from pydantic import BaseModel

from parlor.config import ChatConfig
from parlor.dependencies import get_session
from parlor.metrics import SessionMetrics
from parlor.session import ChatSession
from parlor.transport import WebSocketTransport

logger = logging.getLogger(__name__)


class OnlineUsers(BaseModel):
    usernames: list[str]
    count: int


class Health(BaseModel):
    status: str = "ok"
    running: bool


SessionDep = Annotated[ChatSession, Depends(get_session)]


def create_app(
    config: ChatConfig | None = None,
    metrics: SessionMetrics | None = None,
) -> FastAPI:
    """Build the app. Each app owns exactly one ChatSession."""
    session = ChatSession(config or ChatConfig.from_env(), metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start and stop the chat session."""
        logger.info("Starting chat session...")
        async with anyio.create_task_group() as tg:
            await tg.start(session.run)

            yield

            logger.info("Shutting down chat session...")
            await session.close()

    app = FastAPI(title="Parlor Chat", lifespan=lifespan)
    app.state.session = session

    @app.websocket("/ws")
    async def chat_socket(websocket: WebSocket, chat: SessionDep) -> None:
        """Chat transport: JSON text frames, one client per socket."""
        await websocket.accept()
        await chat.serve(WebSocketTransport(websocket))

    @app.get("/users")
    async def get_users(chat: SessionDep) -> OnlineUsers:
        """Usernames currently in the room, in join order."""
        return OnlineUsers(usernames=chat.online(), count=len(chat.roster))

    @app.get("/health")
    async def health(chat: SessionDep) -> Health:
        return Health(running=chat.running)

    return app
