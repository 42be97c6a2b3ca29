"""Exception types raised by the session handle, runtime and backends."""


class SessionError(Exception):
    """Base class for session errors."""


class InactiveSessionError(SessionError):
    """Raised when a data operation is attempted without an active session.

    The handle is unusable once this is raised for a closed or destroyed
    session; construct a new handle instead.
    """


class InvalidKeyError(SessionError, KeyError):
    """Raised when a key or index has a type the session mapping cannot hold."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class MalformedInitDataError(SessionError, ValueError):
    """Raised by `initialize` when the replacement data is not a mapping."""


class InvalidCookieOptionError(SessionError, ValueError):
    """Raised for unknown cookie option names."""


class SessionBackendError(SessionError, RuntimeError):
    """Raised when a backend cannot read, write or delete session data."""


class InvalidSessionIdError(SessionError, ValueError):
    """Raised for session ids outside `[A-Za-z0-9,-]{1,256}`."""


class InvalidSessionNameError(SessionError, ValueError):
    """Raised for empty or purely numeric session names."""
