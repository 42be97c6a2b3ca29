"""Per-request session runtime.

`SessionRuntime` owns the session mapping for one request and implements
the primitives a session handle is built on: start, regenerate, write-close,
reset, unset and destroy, plus id/name management and cookie emission.
Data lives in a backend between requests; cookies are handed to an optional
callback so the web layer can turn them into `Set-Cookie` headers.
"""

import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Callable, Dict, List, Mapping, Optional

from prometheus_client import Counter

from .config import SessionConfig, cookie_param_names
from .errors import (
    InvalidCookieOptionError,
    InvalidSessionIdError,
    InvalidSessionNameError,
    SessionBackendError,
)

logger = logging.getLogger(__name__)

MET_SESSIONS_STARTED = Counter("websession_started_total", "Sessions started")
MET_SESSION_START_FAILURES = Counter("websession_start_failures_total", "Session start failures")
MET_SESSIONS_REGENERATED = Counter("websession_regenerated_total", "Session id regenerations")
MET_SESSIONS_WRITTEN = Counter("websession_written_total", "Session writes")
MET_SESSION_WRITE_FAILURES = Counter("websession_write_failures_total", "Failed session writes")
MET_SESSIONS_DESTROYED = Counter("websession_destroyed_total", "Sessions destroyed")

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9,-]{1,256}$")

# An empty cookie value is sent as a deletion: this literal value with an
# expiry one year and one second in the past.
DELETED_COOKIE_VALUE = "deleted"
DELETED_COOKIE_AGE = 31536001


class SessionStatus(IntEnum):
    DISABLED = 0
    NONE = 1
    ACTIVE = 2


@dataclass
class Cookie:
    """A cookie queued for the response."""
    name: str
    value: str = ""
    expire: int = 0
    path: Optional[str] = None
    domain: Optional[str] = None
    secure: bool = False
    httponly: bool = False
    samesite: Optional[str] = None

    def expires_at(self) -> Optional[datetime]:
        """Absolute expiry as an aware UTC datetime, None for a browser-session cookie."""
        if not self.expire:
            return None
        return datetime.fromtimestamp(self.expire, tz=timezone.utc)

    @property
    def is_deletion(self) -> bool:
        return bool(self.expire) and self.expire < time.time()


def generate_session_id() -> str:
    return secrets.token_hex(16)


def is_valid_session_id(session_id: Any) -> bool:
    return isinstance(session_id, str) and bool(SESSION_ID_PATTERN.match(session_id))


class SessionRuntime:
    """Session primitives bound to one request's cookies and one backend."""

    def __init__(
        self,
        config: SessionConfig,
        backend,
        request_cookies: Optional[Mapping[str, str]] = None,
        on_cookie: Optional[Callable[[Cookie], None]] = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.request_cookies = dict(request_cookies or {})
        self.on_cookie = on_cookie
        self.cookie_params = config.cookie.copy()
        self.cookies: List[Cookie] = []
        self.data: Dict[Any, Any] = {}
        self._name = config.name
        self._id = ""
        self._status = SessionStatus.NONE if config.enabled else SessionStatus.DISABLED

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def active(self) -> bool:
        return self._status == SessionStatus.ACTIVE

    def _replace_data(self, values: Mapping[Any, Any]) -> None:
        # keep the same dict object so outstanding references stay valid
        self.data.clear()
        self.data.update(values)

    def session_name(self, name: Optional[str] = None) -> str:
        """Return the current session name, renaming first when `name` is given.

        The return value is the name in effect before the call. Renaming is
        ignored while a session is active.
        """
        previous = self._name
        if name is None:
            return previous
        if not isinstance(name, str) or not name or name.isdigit():
            raise InvalidSessionNameError(f"invalid session name {name!r}: must be a non-numeric string")
        if self.active:
            logger.warning("Session name cannot be changed while a session is active")
            return previous
        self._name = name
        return previous

    def session_id(self, session_id: Optional[str] = None) -> str:
        """Return the current id, pinning `session_id` for the next start when given."""
        previous = self._id
        if session_id is None:
            return previous
        if not is_valid_session_id(session_id):
            raise InvalidSessionIdError(f"invalid session id {session_id!r}")
        if self.active:
            logger.warning("Session id cannot be changed while a session is active")
            return previous
        self._id = session_id
        return previous

    def _id_from_cookie(self) -> str:
        candidate = self.request_cookies.get(self._name)
        if candidate is None:
            return ""
        if not is_valid_session_id(candidate):
            logger.debug("Discarding malformed session cookie %s", self._name)
            return ""
        return candidate

    def start(self) -> bool:
        """Start or resume the session, loading its stored data."""
        if self._status == SessionStatus.DISABLED:
            logger.warning("Sessions are disabled; cannot start session %s", self._name)
            MET_SESSION_START_FAILURES.inc()
            return False
        if self.active:
            logger.debug("Session %s already active", self._id)
            return True

        session_id = self._id
        from_cookie = False
        if not session_id:
            session_id = self._id_from_cookie()
            from_cookie = bool(session_id)

        try:
            if session_id and self.config.use_strict_mode and not self.backend.exists(session_id):
                logger.debug("Rejecting uninitialized session id under strict mode")
                session_id = ""
                from_cookie = False
            if not session_id:
                session_id = generate_session_id()
            stored = self.backend.read(session_id)
        except SessionBackendError as e:
            logger.exception("Failed to start session: %s", e)
            MET_SESSION_START_FAILURES.inc()
            return False

        self._id = session_id
        self._replace_data(stored or {})
        self._status = SessionStatus.ACTIVE
        MET_SESSIONS_STARTED.inc()
        if not from_cookie:
            self._emit_session_cookie()
        return True

    def _emit_session_cookie(self) -> None:
        params = self.cookie_params
        expire = int(time.time()) + params.lifetime if params.lifetime > 0 else 0
        self.set_cookie(
            self._name,
            self._id,
            expire=expire,
            path=params.path,
            domain=params.domain,
            secure=params.secure,
            httponly=params.httponly,
            samesite=params.samesite,
        )

    def regenerate_id(self, delete_old: bool = False) -> bool:
        """Move the active session to a fresh id."""
        if not self.active:
            logger.warning("Cannot regenerate session id when session is not active")
            return False
        old_id = self._id
        try:
            if delete_old:
                self.backend.delete(old_id)
            else:
                self.backend.write(old_id, self.data, self.config.gc_maxlifetime)
        except SessionBackendError as e:
            logger.exception("Failed to regenerate session id: %s", e)
            return False
        self._id = generate_session_id()
        MET_SESSIONS_REGENERATED.inc()
        self._emit_session_cookie()
        return True

    def write_close(self) -> bool:
        """Persist the session data and end the session."""
        if not self.active:
            return False
        self._status = SessionStatus.NONE
        try:
            self.backend.write(self._id, self.data, self.config.gc_maxlifetime)
        except SessionBackendError as e:
            logger.exception("Failed to write session %s: %s", self._id, e)
            MET_SESSION_WRITE_FAILURES.inc()
            return False
        MET_SESSIONS_WRITTEN.inc()
        return True

    def reset(self) -> bool:
        """Discard unsaved changes by reloading the stored data."""
        if not self.active:
            return False
        try:
            stored = self.backend.read(self._id)
        except SessionBackendError as e:
            logger.exception("Failed to reset session %s: %s", self._id, e)
            return False
        self._replace_data(stored or {})
        return True

    def unset(self) -> bool:
        if not self.active:
            return False
        self.data.clear()
        return True

    def destroy(self) -> bool:
        """Delete the stored session data and end the session."""
        if not self.active:
            logger.warning("Trying to destroy uninitialized session")
            return False
        self._status = SessionStatus.NONE
        session_id, self._id = self._id, ""
        try:
            self.backend.delete(session_id)
        except SessionBackendError as e:
            logger.exception("Failed to destroy session %s: %s", session_id, e)
            return False
        MET_SESSIONS_DESTROYED.inc()
        return True

    def set_cookie(
        self,
        name: str,
        value: Optional[str] = None,
        expire: Optional[int] = 0,
        path: Optional[str] = None,
        domain: Optional[str] = None,
        secure: Optional[bool] = False,
        httponly: Optional[bool] = False,
        samesite: Optional[str] = None,
    ) -> bool:
        """Queue a cookie for the response.

        An empty `value` turns the cookie into a deletion cookie that expires
        in the past.
        """
        if not name:
            logger.warning("Cookie names must not be empty")
            return False
        if value is None or value == "":
            value = DELETED_COOKIE_VALUE
            expire = int(time.time()) - DELETED_COOKIE_AGE
        cookie = Cookie(
            name=name,
            value=str(value),
            expire=int(expire or 0),
            path=path or None,
            domain=domain or None,
            secure=bool(secure),
            httponly=bool(httponly),
            samesite=samesite or None,
        )
        self.cookies.append(cookie)
        if self.on_cookie is not None:
            self.on_cookie(cookie)
        return True

    def get_cookie_params(self) -> Dict[str, Any]:
        return self.cookie_params.to_dict()

    def set_cookie_params(self, **params: Any) -> bool:
        """Update the session cookie attributes.

        The already emitted cookie of an active session is not touched; the
        new values apply to the next start or id regeneration.
        """
        known = cookie_param_names()
        unknown = sorted(k for k in params if k not in known)
        if unknown:
            raise InvalidCookieOptionError(f"unknown cookie parameter(s): {', '.join(unknown)}")
        if self.active:
            logger.debug("Cookie parameters changed while session %s is active", self._id)
        for key, value in params.items():
            if value is None:
                continue
            if key == "lifetime":
                value = int(value)
            elif key in ("secure", "httponly"):
                value = bool(value)
            else:
                value = str(value)
            setattr(self.cookie_params, key, value)
        return True
