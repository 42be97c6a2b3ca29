import time
from datetime import datetime, timezone

import pytest

from websession.backend_base import InMemorySessionBackend
from websession.config import SessionConfig
from websession.errors import (
    InvalidCookieOptionError,
    InvalidSessionIdError,
    InvalidSessionNameError,
    SessionBackendError,
    SessionError,
)
from websession.runtime import (
    DELETED_COOKIE_VALUE,
    Cookie,
    SessionRuntime,
    SessionStatus,
    is_valid_session_id,
)


def _runtime(cookies=None, **config):
    return SessionRuntime(SessionConfig(**config), InMemorySessionBackend(), cookies)


def test_start_generates_id_and_emits_cookie():
    emitted = []
    rt = SessionRuntime(SessionConfig(), InMemorySessionBackend(), on_cookie=emitted.append)
    assert rt.status == SessionStatus.NONE
    assert rt.start() is True
    assert rt.status == SessionStatus.ACTIVE
    assert is_valid_session_id(rt.session_id())
    assert emitted == rt.cookies
    assert emitted[0].name == "SESSID"
    assert emitted[0].value == rt.session_id()
    assert emitted[0].expire == 0


def test_start_resumes_id_from_request_cookie():
    backend = InMemorySessionBackend()
    backend.write("fromcookie", {"a": 1})
    rt = SessionRuntime(SessionConfig(), backend, {"SESSID": "fromcookie"})
    assert rt.start()
    assert rt.session_id() == "fromcookie"
    assert rt.data == {"a": 1}
    # the client already holds the cookie
    assert rt.cookies == []


def test_malformed_cookie_is_ignored():
    rt = _runtime({"SESSID": "../../etc/passwd"})
    assert rt.start()
    assert rt.session_id() != "../../etc/passwd"


def test_strict_mode_rejects_unknown_ids():
    rt = _runtime({"SESSID": "attackerchosen"}, use_strict_mode=True)
    assert rt.start()
    assert rt.session_id() != "attackerchosen"
    assert rt.cookies[0].value == rt.session_id()


def test_start_twice_is_harmless():
    rt = _runtime()
    rt.start()
    sid = rt.session_id()
    assert rt.start() is True
    assert rt.session_id() == sid


def test_disabled_runtime_cannot_start():
    rt = _runtime(enabled=False)
    assert rt.status == SessionStatus.DISABLED
    assert rt.start() is False


def test_backend_failure_fails_start():
    class BrokenBackend(InMemorySessionBackend):
        def read(self, session_id):
            raise SessionBackendError("down")

    rt = SessionRuntime(SessionConfig(), BrokenBackend())
    assert rt.start() is False
    assert rt.status == SessionStatus.NONE


def test_name_changes_only_before_start():
    rt = _runtime()
    assert rt.session_name("FIRST") == "SESSID"
    assert rt.session_name() == "FIRST"
    rt.start()
    assert rt.session_name("SECOND") == "FIRST"
    assert rt.session_name() == "FIRST"


@pytest.mark.parametrize("name", ["", "12345"])
def test_invalid_names_rejected(name):
    with pytest.raises(InvalidSessionNameError):
        _runtime().session_name(name)


@pytest.mark.parametrize("session_id", ["has spaces", "", "x" * 257])
def test_invalid_ids_rejected(session_id):
    with pytest.raises(InvalidSessionIdError) as excinfo:
        _runtime().session_id(session_id)
    assert isinstance(excinfo.value, SessionError)


def test_write_close_persists_with_ttl():
    backend = InMemorySessionBackend()
    rt = SessionRuntime(SessionConfig(gc_maxlifetime=60), backend)
    rt.start()
    rt.data["k"] = "v"
    assert rt.write_close() is True
    assert rt.status == SessionStatus.NONE
    entry = backend.sessions[rt.session_id()]
    assert entry["expires_at"] == pytest.approx(time.time() + 60, abs=5)
    assert rt.write_close() is False


def test_write_close_reports_unserializable_data():
    rt = _runtime()
    rt.start()
    rt.data["bad"] = object()
    assert rt.write_close() is False
    assert rt.status == SessionStatus.NONE


def test_unset_and_reset():
    backend = InMemorySessionBackend()
    backend.write("keep", {"a": 1})
    rt = SessionRuntime(SessionConfig(), backend, {"SESSID": "keep"})
    rt.start()
    ref = rt.data
    assert rt.unset()
    assert rt.data == {}
    assert rt.reset()
    assert rt.data == {"a": 1}
    assert rt.data is ref


def test_destroy_removes_stored_data():
    backend = InMemorySessionBackend()
    backend.write("gone", {"a": 1})
    rt = SessionRuntime(SessionConfig(), backend, {"SESSID": "gone"})
    rt.start()
    assert rt.destroy() is True
    assert rt.session_id() == ""
    assert rt.status == SessionStatus.NONE
    assert backend.read("gone") is None
    assert rt.destroy() is False


def test_empty_cookie_value_becomes_deletion():
    rt = _runtime()
    assert rt.set_cookie("SESSID") is True
    cookie = rt.cookies[-1]
    assert cookie.value == DELETED_COOKIE_VALUE
    assert cookie.is_deletion
    assert cookie.expires_at() < datetime.now(timezone.utc)


def test_empty_cookie_name_refused():
    rt = _runtime()
    assert rt.set_cookie("", "x") is False
    assert rt.cookies == []


def test_cookie_expiry_conversion():
    assert Cookie("a", "b").expires_at() is None
    assert Cookie("a", "b", expire=0).is_deletion is False
    assert Cookie("a", "b", expire=86400).expires_at() == datetime(1970, 1, 2, tzinfo=timezone.utc)


def test_set_cookie_params_validates_names():
    rt = _runtime()
    with pytest.raises(InvalidCookieOptionError):
        rt.set_cookie_params(maxage=10)
    assert rt.set_cookie_params(lifetime="30", secure=1, path=None)
    assert rt.get_cookie_params()["lifetime"] == 30
    assert rt.get_cookie_params()["secure"] is True
    assert rt.get_cookie_params()["path"] == "/"


def test_cookie_params_apply_at_start():
    rt = _runtime()
    rt.set_cookie_params(lifetime=120, samesite="Strict", httponly=True)
    rt.start()
    cookie = rt.cookies[0]
    assert cookie.samesite == "Strict"
    assert cookie.httponly is True
    assert cookie.expire == pytest.approx(time.time() + 120, abs=5)
