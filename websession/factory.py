"""Factory binding a startup `SessionConfig` and backend to per-request handles."""

from typing import Callable, Mapping, Optional

from .backend import create_default_backend
from .config import SessionConfig, load_config
from .handle import SessionHandle
from .runtime import Cookie, SessionRuntime


class SessionFactory:
    """Builds runtimes and handles from one shared configuration.

    The configured name is the default session name for every handle built
    through `new_session`, so callers never repeat it.
    """

    def __init__(self, config: Optional[SessionConfig] = None, backend=None) -> None:
        self.config = config or load_config()
        self.backend = backend if backend is not None else create_default_backend(self.config.redis_url)

    def runtime(
        self,
        request_cookies: Optional[Mapping[str, str]] = None,
        on_cookie: Optional[Callable[[Cookie], None]] = None,
    ) -> SessionRuntime:
        return SessionRuntime(self.config, self.backend, request_cookies, on_cookie)

    def new_session(
        self,
        runtime: Optional[SessionRuntime] = None,
        session_id: Optional[str] = None,
        regenerate: bool = False,
        name: Optional[str] = None,
    ) -> SessionHandle:
        """Start a handle on `runtime` (a fresh cookie-less runtime when omitted)."""
        if runtime is None:
            runtime = self.runtime()
        return SessionHandle(
            runtime,
            name=name,
            session_id=session_id,
            regenerate=regenerate,
        )
