"""Session configuration: cookie parameters, defaults and env loading.

The values here replace the process-wide session settings a host runtime
keeps in global state. A `SessionConfig` is built once at startup (usually
with `load_config`) and handed to a `SessionFactory`.
"""

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidCookieOptionError

DEFAULT_SESSION_NAME = "SESSID"
DEFAULT_GC_MAXLIFETIME = 1440

_TRUE_VALUES = ("1", "true", "yes", "on")

# Alternative spellings accepted for cookie options
_OPTION_ALIASES = {
    "httpOnly": "httponly",
    "http_only": "httponly",
    "sameSite": "samesite",
    "same_site": "samesite",
}


@dataclass
class CookieParams:
    """Attributes applied whenever the session cookie is emitted."""
    lifetime: int = 0
    path: str = "/"
    domain: str = ""
    secure: bool = False
    httponly: bool = False
    samesite: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def copy(self) -> "CookieParams":
        return CookieParams(**asdict(self))


@dataclass
class SessionConfig:
    """Startup configuration shared by every session built from a factory."""
    name: str = DEFAULT_SESSION_NAME
    enabled: bool = True
    gc_maxlifetime: int = DEFAULT_GC_MAXLIFETIME
    use_strict_mode: bool = False
    cookie: CookieParams = field(default_factory=CookieParams)
    redis_url: Optional[str] = None


def normalize_options(options: Any) -> Dict[str, Any]:
    """Normalize cookie options into a plain kwargs dict.

    Accepts a dict, a Pydantic model instance or any object with attributes.
    Keys are folded onto their snake_case spelling (`httpOnly` -> `httponly`).
    Attribute-style objects only contribute the attributes they define.
    """
    if options is None:
        return {}
    if isinstance(options, Mapping):
        raw = dict(options)
    elif hasattr(options, "model_dump"):
        raw = {k: v for k, v in options.model_dump().items() if v is not None}
    elif hasattr(options, "dict"):
        try:
            raw = {k: v for k, v in options.dict().items() if v is not None}
        except (AttributeError, TypeError):
            raw = vars(options).copy()
    else:
        try:
            raw = {k: v for k, v in vars(options).items() if not k.startswith("_")}
        except TypeError as e:
            raise InvalidCookieOptionError(
                f"cookie options must be a mapping or object, got {type(options).__name__}"
            ) from e
    return {_OPTION_ALIASES.get(k, k): v for k, v in raw.items()}


def cookie_param_names():
    return tuple(f.name for f in fields(CookieParams))


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def load_config(environ: Optional[Mapping[str, str]] = None) -> SessionConfig:
    """Build a `SessionConfig` from environment variables.

    Recognised variables: `SESSION_NAME`, `SESSION_ENABLED`,
    `SESSION_GC_MAXLIFETIME`, `SESSION_USE_STRICT_MODE`,
    `SESSION_COOKIE_LIFETIME`, `SESSION_COOKIE_PATH`, `SESSION_COOKIE_DOMAIN`,
    `SESSION_COOKIE_SECURE`, `SESSION_COOKIE_HTTPONLY`,
    `SESSION_COOKIE_SAMESITE` and `REDIS_URL`.
    """
    env = os.environ if environ is None else environ
    cookie = CookieParams(
        lifetime=_env_int(env, "SESSION_COOKIE_LIFETIME", 0),
        path=env.get("SESSION_COOKIE_PATH") or "/",
        domain=env.get("SESSION_COOKIE_DOMAIN", ""),
        secure=_env_bool(env, "SESSION_COOKIE_SECURE", False),
        httponly=_env_bool(env, "SESSION_COOKIE_HTTPONLY", False),
        samesite=env.get("SESSION_COOKIE_SAMESITE", ""),
    )
    return SessionConfig(
        name=env.get("SESSION_NAME") or DEFAULT_SESSION_NAME,
        enabled=_env_bool(env, "SESSION_ENABLED", True),
        gc_maxlifetime=_env_int(env, "SESSION_GC_MAXLIFETIME", DEFAULT_GC_MAXLIFETIME),
        use_strict_mode=_env_bool(env, "SESSION_USE_STRICT_MODE", False),
        cookie=cookie,
        redis_url=env.get("REDIS_URL") or None,
    )
