"""Redis-backed session store with TTL."""

import json
import time
import uuid
from typing import Optional

from waterbender.session_store.base import AuthSession, SessionStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="session_store/redis_session_store")


class RedisSessionStore(SessionStore):
    """Redis-backed sessions with TTL. Stores the payload as JSON."""

    def __init__(
        self,
        client,
        ttl_seconds: int = 3600,
        max_age_seconds: int | None = None,
        prefix: str = "waterbender:session:",
    ) -> None:
        """Initialize with a Redis client, TTL, and optional absolute max age."""
        logger.debug("Initializing RedisSessionStore")
        self.client = client
        self.ttl = ttl_seconds
        self.max_age = max_age_seconds
        self.prefix = prefix

    def _key(self, session_id: str) -> str:
        """Return the Redis key for a session id."""
        return f"{self.prefix}{session_id}"

    @staticmethod
    def _dump(auth: AuthSession, *, created_at: float) -> bytes:
        """Serialize a session to JSON bytes."""
        data = {"auth": auth.model_dump(mode="json"), "created_at": created_at}
        return json.dumps(data).encode("utf-8")

    @staticmethod
    def _load(raw: bytes) -> Optional[tuple[AuthSession, float]]:
        """Deserialize JSON bytes into a session and its created_at."""
        try:
            data = json.loads(raw.decode("utf-8"))
            auth = AuthSession.model_validate(data.get("auth") or {})
            created_at = float(data.get("created_at") or time.time())
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("Failed to deserialize session payload: %s", exc)
            return None
        return auth, created_at

    def _is_expired(self, created_at: float) -> bool:
        """Return True if the session exceeds absolute max age."""
        if self.max_age is None:
            return False
        return (time.time() - created_at) > self.max_age

    def _ttl_remaining(self, created_at: float) -> int:
        """Return TTL seconds capped by absolute max age."""
        if self.max_age is None:
            return self.ttl
        remaining = int(max(0.0, (created_at + self.max_age) - time.time()))
        return min(self.ttl, remaining)

    def create_session(self, auth: AuthSession) -> str:
        """Create and persist a new session, returning its id."""
        sid = str(uuid.uuid4())
        created_at = time.time()
        ttl = self._ttl_remaining(created_at)
        if ttl <= 0:
            raise RuntimeError("Session max age expired before storage")
        self.client.setex(self._key(sid), ttl, self._dump(auth, created_at=created_at))
        return sid

    def get_session(self, session_id: str) -> Optional[AuthSession]:
        """Fetch a session, refreshing TTL, or None if missing/invalid."""
        raw = self.client.get(self._key(session_id))
        if not raw:
            return None
        loaded = self._load(raw)
        if not loaded:
            return None
        auth, created_at = loaded
        if self._is_expired(created_at):
            self.delete_session(session_id)
            return None
        ttl = self._ttl_remaining(created_at)
        if ttl > 0:
            self.client.expire(self._key(session_id), ttl)
        return auth

    def has_session(self, session_id: str) -> bool:
        """Return True if the key still exists; Redis expiry already enforces TTL and max age."""
        return bool(self.client.exists(self._key(session_id)))

    def delete_session(self, session_id: str) -> None:
        """Delete a session if present."""
        self.client.delete(self._key(session_id))

    def clear(self) -> None:
        """Delete every session under the configured prefix."""
        for key in self.client.scan_iter(f"{self.prefix}*"):
            self.client.delete(key)
