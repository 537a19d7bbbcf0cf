"""Session manager facade over pluggable backends."""
from typing import Any, Optional

import redis

from waterbender.config import settings
from waterbender.session_store import AuthSession, InMemorySessionStore, RedisSessionStore, SessionStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="session_manager")


def _init_store() -> SessionStore:
    """Initialize the backing session store based on configuration."""
    logger.debug(f"Initializing session store: redis_url='{settings.session_redis_url or 'None'}'")
    if settings.session_redis_url:
        try:
            client = redis.Redis.from_url(settings.session_redis_url)
            client.ping()
            logger.info("Using RedisSessionStore", extra={"redis_url": settings.session_redis_url})
            return RedisSessionStore(client, ttl_seconds=settings.session_ttl_seconds)
        except redis.RedisError as exc:
            logger.warning("Falling back to InMemorySessionStore (Redis unavailable)", extra={"error": str(exc)})
    return InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)


_store: SessionStore = _init_store()


def use_in_memory_store_for_tests(ttl_seconds: int = 3600) -> None:
    """Override store for tests to ensure isolation and determinism."""
    global _store
    _store = InMemorySessionStore(ttl_seconds=ttl_seconds)


def create_session(auth: AuthSession) -> str:
    """Persist an authenticated session, returning its ID."""
    return _store.create_session(auth)


def get_session(session_id: Optional[str]) -> Optional[AuthSession]:
    """Fetch a session by ID, refreshing TTL if applicable."""
    if not session_id:
        return None
    return _store.get_session(session_id)


def session_exists(session_id: Optional[str]) -> bool:
    """Check a session ID is still live without extending its TTL."""
    if not session_id:
        return False
    return _store.has_session(session_id)


def delete_session(session_id: str):
    """Delete a session by ID."""
    return _store.delete_session(session_id)


def clear_sessions():
    """Clear all sessions from the backing store (dev/testing)."""
    return _store.clear()


class SessionContext:
    """Answer "who is logged in" for one session id."""

    def __init__(self, session_id: Optional[str]) -> None:
        self.session_id = session_id

    def _session(self) -> Optional[AuthSession]:
        return get_session(self.session_id)

    def is_authenticated(self) -> bool:
        return self._session() is not None

    def current_user(self) -> Optional[Any]:
        session = self._session()
        if session is None:
            return None
        return session.user or session.username
