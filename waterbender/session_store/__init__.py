"""Session storage backends."""

from .base import AuthSession, SessionStore
from .memory import InMemorySessionStore
from .redis import RedisSessionStore

__all__ = [
    "AuthSession",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
]
