"""FastAPI dependencies for the chat application."""

from fastapi.requests import HTTPConnection

from parlor.session import ChatSession


def get_session(connection: HTTPConnection) -> ChatSession:
    """Get the chat session owned by the running application."""
    return connection.app.state.session
