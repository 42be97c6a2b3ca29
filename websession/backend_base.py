"""Shared session backend implementations.

This module provides the canonical in-memory backend used by tests and
development setups, plus the JSON helpers `websession.backend` reuses for
the Redis backend.
"""

import json
import threading
import time
from typing import Any, Dict, List, Optional

from .errors import SessionBackendError


def _encode(session_id: str, data: Dict[Any, Any]) -> str:
    """Serialize session data as `[key, value]` pairs, wrapping encoder failures.

    Pairs keep top-level key types: `5` and `"5"` are distinct entries.
    """
    try:
        return json.dumps([[key, value] for key, value in data.items()])
    except (TypeError, ValueError) as e:
        raise SessionBackendError(f"session {session_id} holds data that cannot be stored: {e}") from e


def _decode(session_id: str, payload: str) -> Dict[Any, Any]:
    """Deserialize a stored payload back into a session mapping."""
    try:
        raw = json.loads(payload)
    except (json.JSONDecodeError, ValueError) as e:
        raise SessionBackendError(f"stored data for session {session_id} is corrupt") from e
    if not isinstance(raw, list):
        raise SessionBackendError(f"stored data for session {session_id} is not a list of entries")
    out: Dict[Any, Any] = {}
    for entry in raw:
        if not (isinstance(entry, list) and len(entry) == 2):
            raise SessionBackendError(f"stored data for session {session_id} has a malformed entry")
        key, value = entry
        if isinstance(key, bool) or not isinstance(key, (str, int)):
            raise SessionBackendError(f"stored data for session {session_id} has an invalid key {key!r}")
        out[key] = value
    return out


class InMemorySessionBackend:
    """Lightweight in-memory session backend for development and tests.

    Entries expire lazily: an expired entry is dropped the next time it is
    read or listed. Not shared between processes.
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _now(self) -> float:
        return time.time()

    def _live(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self.sessions.get(session_id)
        if entry is None:
            return None
        expires_at = entry.get("expires_at")
        if expires_at is not None and self._now() >= expires_at:
            del self.sessions[session_id]
            return None
        return entry

    def read(self, session_id: str) -> Optional[Dict[Any, Any]]:
        """Return the stored mapping for `session_id`, or None if missing/expired."""
        with self._lock:
            entry = self._live(session_id)
        if entry is None:
            return None
        return _decode(session_id, entry["payload"])

    def write(self, session_id: str, data: Dict[Any, Any], ttl: Optional[int] = None) -> None:
        """Store `data` under `session_id`; `ttl` seconds of lifetime, None keeps it forever."""
        payload = _encode(session_id, data)
        expires_at = self._now() + ttl if ttl else None
        with self._lock:
            self.sessions[session_id] = {"payload": payload, "expires_at": expires_at}

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return self._live(session_id) is not None

    def delete(self, session_id: str) -> bool:
        """Delete the session identified by `session_id` and return True when removed."""
        with self._lock:
            if session_id in self.sessions:
                del self.sessions[session_id]
                return True
        return False

    def list_ids(self) -> List[str]:
        """Return ids of all live sessions."""
        with self._lock:
            return [sid for sid in list(self.sessions) if self._live(sid) is not None]
