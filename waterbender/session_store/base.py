"""Shared protocol and types for session storage backends."""

from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field


class AuthSession(BaseModel):
    """Authenticated user attached to a session id."""
    username: str
    display_name: Optional[str] = None
    user: Any = None  # `User` object returned by the login endpoint
    token: Optional[str] = None
    logged_in_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionStore(Protocol):
    """Protocol for session storage backends."""
    def create_session(self, auth: AuthSession) -> str:
        """Persist a new session and return its id."""

    def get_session(self, session_id: str) -> Optional[AuthSession]:
        """Fetch a session by id, returning None if missing or expired."""

    def has_session(self, session_id: str) -> bool:
        """Return True if the session exists, without refreshing its TTL."""

    def delete_session(self, session_id: str) -> None:
        """Delete a session without raising if it is absent."""

    def clear(self) -> None:
        """Clear all stored sessions."""
