"""Object-oriented handle over a request's session runtime.

A `SessionHandle` starts the session on construction and proxies reads and
writes to the runtime's mapping until it is closed or destroyed:

    with factory.new_session(runtime) as session:
        session.set("user", {"id": 1}).set("theme", "dark")
        session.push("visited /cart")

Leaving the `with` block closes the handle, which persists the data.
Every data operation raises `InactiveSessionError` once the handle is no
longer active.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .config import normalize_options
from .errors import (
    InactiveSessionError,
    InvalidCookieOptionError,
    InvalidKeyError,
    MalformedInitDataError,
    SessionBackendError,
)
from .runtime import SessionRuntime, SessionStatus

logger = logging.getLogger(__name__)

COOKIE_OPTIONS = ("name", "value", "expire", "path", "domain", "secure", "httponly", "samesite")


class HandleState(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"
    DESTROYED = "destroyed"


def _is_valid_key(key: Any) -> bool:
    return isinstance(key, (str, int)) and not isinstance(key, bool)


def _renumber(items):
    """Reassign integer keys from 0 in order, keeping string keys as they are."""
    out = {}
    counter = 0
    for key, value in items:
        if isinstance(key, int):
            out[counter] = value
            counter += 1
        else:
            out[key] = value
    return out


class SessionHandle:
    """Lifecycle-guarded proxy over one session.

    Args:
        runtime: the request's `SessionRuntime`.
        name: session (cookie) name to use instead of the configured one.
            Applied before the session starts.
        session_id: id to resume instead of the one from the request cookie.
            Applied before the session starts.
        regenerate: issue a fresh id right after starting, discarding the
            data stored under the old one.
    """

    def __init__(
        self,
        runtime: SessionRuntime,
        name: Optional[str] = None,
        session_id: Optional[str] = None,
        regenerate: bool = False,
    ) -> None:
        self._runtime = runtime
        self._state = HandleState.UNINITIALIZED
        self._session_id = ""
        self._previous_session_name: Optional[str] = None

        # name and id only apply to a session that has not started yet
        if name is not None:
            self.set_session_name(name)
        if session_id is not None:
            self.set_session_id(session_id)

        if not runtime.start():
            logger.warning("Session %s could not be started", runtime.session_name())
            return
        self._state = HandleState.ACTIVE
        self.get_session_id()

        if regenerate:
            self.regenerate_id(True)

    def __enter__(self) -> "SessionHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.close()
            return False
        # keep the in-flight exception; a failed write is only logged here
        try:
            self.close()
        except SessionBackendError as e:
            logger.error("Session write failed while handling %s: %s", exc_type.__name__, e)
        return False

    def __str__(self) -> str:
        if not self.is_active():
            return f"<SessionHandle {self._state.value}>"
        return self.to_json()

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def session_id(self) -> str:
        """Id cached by the last `get_session_id`/`regenerate_id` call."""
        return self._session_id

    def is_active(self) -> bool:
        return self._state == HandleState.ACTIVE

    def _verify(self) -> None:
        if not self.is_active():
            raise InactiveSessionError(
                f"Session not started ({self._state.value}); cannot perform session methods."
            )

    @property
    def _data(self) -> Dict[Any, Any]:
        return self._runtime.data

    # -- naming ----------------------------------------------------------

    def set_session_name(self, name: str) -> "SessionHandle":
        self._previous_session_name = self._runtime.session_name(name)
        return self

    def get_session_name(self) -> str:
        return self._runtime.session_name()

    def get_previous_session_name(self) -> Optional[str]:
        return self._previous_session_name

    # -- sequence operations ----------------------------------------------

    def push(self, value: Any) -> int:
        """Append `value` under the next integer key; returns the new length."""
        self._verify()
        int_keys = [k for k in self._data if isinstance(k, int) and not isinstance(k, bool)]
        next_key = max(max(int_keys) + 1, 0) if int_keys else 0
        self._data[next_key] = value
        return len(self._data)

    def pop(self) -> Any:
        """Remove and return the last entry, or None when empty."""
        self._verify()
        if not self._data:
            return None
        return self._data.pop(next(reversed(self._data)))

    def unshift(self, value: Any) -> int:
        """Prepend `value`, renumbering integer keys; returns the new length."""
        self._verify()
        items = [(0, value)] + list(self._data.items())
        renumbered = _renumber(items)
        self._data.clear()
        self._data.update(renumbered)
        return len(self._data)

    def shift(self) -> Any:
        """Remove and return the first entry, or None when empty."""
        self._verify()
        if not self._data:
            return None
        value = self._data.pop(next(iter(self._data)))
        renumbered = _renumber(list(self._data.items()))
        self._data.clear()
        self._data.update(renumbered)
        return value

    # -- key/value operations ---------------------------------------------

    def set(self, key, value: Any) -> "SessionHandle":
        self._verify()
        if not _is_valid_key(key):
            raise InvalidKeyError(f"session keys must be str or int, got {type(key).__name__}")
        self._data[key] = value
        return self

    def get(self, key=None, default: Any = None) -> Any:
        """Return the value stored at `key`.

        With no key (or an empty string) the whole mapping is returned. A
        missing key yields `default`.
        """
        self._verify()
        if key is None or key == "":
            return self._data
        if not _is_valid_key(key):
            raise InvalidKeyError(f"session keys must be str or int, got {type(key).__name__}")
        return self._data.get(key, default)

    def get_all(self) -> Dict[Any, Any]:
        self._verify()
        return self._data

    def at(self, index: int = 0, default: Any = None) -> Any:
        """Return the value stored under integer key `index`, or `default`."""
        self._verify()
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidKeyError(f"session index must be an int, got {type(index).__name__}")
        return self._data.get(index, default)

    def initialize(self, data: Optional[Mapping[Any, Any]] = None) -> "SessionHandle":
        """Drop every entry and install `data` as the new content."""
        self._verify()
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise MalformedInitDataError(
                f"session data must be a mapping, got {type(data).__name__}"
            )
        bad = [k for k in data if not _is_valid_key(k)]
        if bad:
            raise MalformedInitDataError(f"session keys must be str or int, got {bad[0]!r}")
        self._runtime.unset()
        self._data.update(data)
        return self

    def delete(self) -> "SessionHandle":
        """Delete all session variables; the session stays active."""
        self._verify()
        self._runtime.unset()
        return self

    def remove(self, key) -> "SessionHandle":
        self._verify()
        self._data.pop(key, None)
        return self

    def reset(self) -> "SessionHandle":
        """Discard unsaved changes, reloading the values last persisted."""
        self._verify()
        self._runtime.reset()
        return self

    # -- identity ---------------------------------------------------------

    def get_session_id(self) -> str:
        self._verify()
        self._session_id = self._runtime.session_id()
        return self._session_id

    def set_session_id(self, session_id: str) -> str:
        """Pin the id used when the session starts; returns the previous id."""
        previous = self._runtime.session_id(session_id)
        self._session_id = self._runtime.session_id()
        return previous

    def regenerate_id(self, delete_old: bool = False) -> bool:
        self._verify()
        ok = self._runtime.regenerate_id(delete_old)
        self._session_id = self._runtime.session_id()
        return ok

    # -- cookies ----------------------------------------------------------

    def set_cookie(self, options: Any = None, **kwargs: Any) -> bool:
        """Emit a cookie.

        Options: name, value, expire, path, domain, secure, httpOnly (or
        httponly) and samesite. `name` defaults to the session name, the
        rest to None. A missing value emits a deletion cookie.
        """
        self._verify()
        merged = normalize_options(options)
        merged.update(normalize_options(kwargs))
        unknown = sorted(k for k in merged if k not in COOKIE_OPTIONS)
        if unknown:
            raise InvalidCookieOptionError(f"unknown cookie option(s): {', '.join(unknown)}")
        params = dict.fromkeys(COOKIE_OPTIONS)
        params["name"] = self.get_session_name()
        params.update(merged)
        return self._runtime.set_cookie(**params)

    def get_cookie_params(self) -> Dict[str, Any]:
        return self._runtime.get_cookie_params()

    def set_cookie_params(self, options: Any = None, **kwargs: Any) -> bool:
        merged = normalize_options(options)
        merged.update(normalize_options(kwargs))
        return self._runtime.set_cookie_params(**merged)

    def set_cookie_lifetime(self, lifetime: int) -> bool:
        return self.set_cookie_params(lifetime=lifetime)

    def set_cookie_path(self, path: str) -> bool:
        return self.set_cookie_params(path=path)

    def set_cookie_domain(self, domain: str) -> bool:
        return self.set_cookie_params(domain=domain)

    def set_cookie_secure(self, secure: bool) -> bool:
        return self.set_cookie_params(secure=secure)

    def set_cookie_httponly(self, httponly: bool) -> bool:
        return self.set_cookie_params(httponly=httponly)

    def get_status(self) -> SessionStatus:
        return self._runtime.status

    # -- termination ------------------------------------------------------

    def close(self) -> "SessionHandle":
        """Save the session variables and close the session. Repeat calls do nothing.

        Raises `SessionBackendError` when the data could not be persisted; the
        handle is closed either way.
        """
        if not self.is_active():
            return self
        written = self._runtime.write_close()
        self._state = HandleState.CLOSED
        if not written:
            raise SessionBackendError(
                f"session {self._session_id} was closed without persisting its data"
            )
        logger.debug("Session %s closed", self._session_id)
        return self

    def destroy(self) -> bool:
        """Destroy the session and expire the client's session cookie."""
        self._verify()
        params = self._runtime.cookie_params
        self._runtime.set_cookie(
            self.get_session_name(), None, path=params.path, domain=params.domain
        )
        ok = self._runtime.destroy()
        self._state = HandleState.DESTROYED
        logger.debug("Session %s destroyed", self._session_id)
        self._session_id = ""
        return ok

    # -- export -----------------------------------------------------------

    def to_dict(self) -> Dict[Any, Any]:
        """All session entries plus `sessionId` and `sessionName`."""
        out = dict(self.get_all())
        out["sessionId"] = self.get_session_id()
        out["sessionName"] = self.get_session_name()
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
