"""Session backend glue: expose backend implementations.

This module keeps the runtime API stable while reusing the shared
`InMemorySessionBackend` implementation from `backend_base`.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import redis

from .backend_base import InMemorySessionBackend, _decode, _encode
from .errors import SessionBackendError

logger = logging.getLogger(__name__)


class RedisSessionBackend:
    """A simple Redis-backed session backend storing one JSON blob per session."""

    def __init__(self, redis_url: str, prefix: str = "websession:"):
        try:
            self.client = redis.from_url(redis_url, decode_responses=True)
            # test connection
            self.client.ping()
        except redis.RedisError as e:
            logger.exception("Failed to connect to Redis at %s: %s", redis_url, e)
            raise

        self.prefix = prefix
        self.set_key = f"{prefix}ids"

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}data:{session_id}"

    def read(self, session_id: str) -> Optional[Dict[Any, Any]]:
        """Return the stored mapping for `session_id`, or None if missing/expired."""
        try:
            raw = self.client.get(self._key(session_id))
        except redis.RedisError as e:
            raise SessionBackendError(f"failed reading session {session_id}") from e
        if not raw:
            return None
        return _decode(session_id, raw)

    def write(self, session_id: str, data: Dict[Any, Any], ttl: Optional[int] = None) -> None:
        payload = _encode(session_id, data)
        key = self._key(session_id)
        try:
            if ttl:
                self.client.setex(key, ttl, payload)
            else:
                self.client.set(key, payload)
            self.client.sadd(self.set_key, session_id)
        except redis.RedisError as e:
            raise SessionBackendError(f"failed writing session {session_id}") from e

    def exists(self, session_id: str) -> bool:
        try:
            return bool(self.client.exists(self._key(session_id)))
        except redis.RedisError as e:
            raise SessionBackendError(f"failed checking session {session_id}") from e

    def delete(self, session_id: str) -> bool:
        """Remove a session and return True when it existed and was deleted."""
        try:
            existed = self.client.delete(self._key(session_id))
            self.client.srem(self.set_key, session_id)
        except redis.RedisError as e:
            raise SessionBackendError(f"failed deleting session {session_id}") from e
        return existed == 1

    def list_ids(self) -> List[str]:
        """Return ids of sessions still present in Redis (best-effort)."""
        ids = self.client.smembers(self.set_key) or []
        out = []
        for sid in ids:
            if not self.client.exists(self._key(sid)):
                # expired through TTL; cleanup
                self.client.srem(self.set_key, sid)
                continue
            out.append(sid)
        return sorted(out)


# Factory to pick backend (Redis or in-memory)
def create_default_backend(redis_url: Optional[str] = None):
    redis_url = redis_url or os.getenv("REDIS_URL")
    if redis_url:
        try:
            return RedisSessionBackend(redis_url)
        except (redis.RedisError, OSError, ValueError) as e:
            logger.warning("Falling back to in-memory session backend: %s", e)
    return InMemorySessionBackend()
