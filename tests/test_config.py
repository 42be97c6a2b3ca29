import pytest
from pydantic import BaseModel

from websession.config import CookieParams, SessionConfig, load_config, normalize_options


def test_defaults():
    cfg = load_config({})
    assert cfg == SessionConfig()
    assert cfg.name == "SESSID"
    assert cfg.gc_maxlifetime == 1440
    assert cfg.cookie == CookieParams()


def test_load_config_from_env(monkeypatch):
    monkeypatch.setenv("SESSION_NAME", "SHOP")
    monkeypatch.setenv("SESSION_GC_MAXLIFETIME", "600")
    monkeypatch.setenv("SESSION_USE_STRICT_MODE", "true")
    monkeypatch.setenv("SESSION_COOKIE_LIFETIME", "3600")
    monkeypatch.setenv("SESSION_COOKIE_PATH", "/shop")
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "1")
    monkeypatch.setenv("SESSION_COOKIE_HTTPONLY", "yes")
    monkeypatch.setenv("SESSION_COOKIE_SAMESITE", "Lax")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

    cfg = load_config()
    assert cfg.name == "SHOP"
    assert cfg.gc_maxlifetime == 600
    assert cfg.use_strict_mode is True
    assert cfg.cookie.lifetime == 3600
    assert cfg.cookie.path == "/shop"
    assert cfg.cookie.secure is True
    assert cfg.cookie.httponly is True
    assert cfg.cookie.samesite == "Lax"
    assert cfg.redis_url == "redis://localhost:6379/0"


def test_disabled_flag():
    assert load_config({"SESSION_ENABLED": "0"}).enabled is False


def test_bad_integer_names_variable():
    with pytest.raises(ValueError, match="SESSION_GC_MAXLIFETIME"):
        load_config({"SESSION_GC_MAXLIFETIME": "soon"})


def test_cookie_params_copy_is_independent():
    params = CookieParams(path="/a")
    clone = params.copy()
    clone.path = "/b"
    assert params.path == "/a"


def test_normalize_options_dict_aliases():
    assert normalize_options({"httpOnly": True, "sameSite": "Lax"}) == {
        "httponly": True,
        "samesite": "Lax",
    }
    assert normalize_options(None) == {}


def test_normalize_options_pydantic_model():
    class Options(BaseModel):
        path: str | None = None
        secure: bool | None = None

    assert normalize_options(Options(secure=True)) == {"secure": True}


def test_normalize_options_plain_object():
    class Options:
        def __init__(self):
            self.domain = "example.com"
            self._private = "skip"

    assert normalize_options(Options()) == {"domain": "example.com"}
