"""In-memory registry of operator sessions. Nothing is written to disk."""

from __future__ import annotations

from typing import Callable, Optional

from ..services.routing.service import create_session
from ..services.routing.session import RouteSession


class SessionStore:
    def __init__(self, factory: Optional[Callable[[], RouteSession]] = None) -> None:
        self._factory = factory or create_session
        self._sessions: dict[str, RouteSession] = {}

    def create(self) -> RouteSession:
        session = self._factory()
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> RouteSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Session '{session_id}' not found") from None

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


store = SessionStore()
