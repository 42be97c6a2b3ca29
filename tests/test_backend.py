import os

import pytest

from websession.backend import create_default_backend
from websession.backend_base import InMemorySessionBackend
from websession.errors import SessionBackendError


def test_memory_backend_lifecycle():
    backend = InMemorySessionBackend()
    backend.write("s1", {"user": "ann", 0: "first"})
    assert backend.exists("s1")
    # integer keys survive the JSON round trip
    assert backend.read("s1") == {"user": "ann", 0: "first"}
    assert backend.list_ids() == ["s1"]
    assert backend.delete("s1") is True
    assert backend.delete("s1") is False
    assert backend.read("s1") is None


def test_memory_backend_expiry(monkeypatch):
    backend = InMemorySessionBackend()
    backend.write("short", {"a": 1}, ttl=10)
    now = backend._now()
    monkeypatch.setattr(backend, "_now", lambda: now + 11)
    assert backend.read("short") is None
    assert backend.list_ids() == []
    assert "short" not in backend.sessions


def test_memory_backend_refuses_unserializable():
    backend = InMemorySessionBackend()
    with pytest.raises(SessionBackendError):
        backend.write("bad", {"a": {1, 2}})
    assert not backend.exists("bad")


def test_memory_backend_reports_corrupt_payload():
    backend = InMemorySessionBackend()
    backend.sessions["broken"] = {"payload": "{not json", "expires_at": None}
    with pytest.raises(SessionBackendError):
        backend.read("broken")


def test_memory_backend_keeps_key_types():
    backend = InMemorySessionBackend()
    backend.write("k", {"5": "str", 5: "int", "07": "padded"})
    stored = backend.read("k")
    assert stored == {"5": "str", 5: "int", "07": "padded"}
    assert [type(k) for k in stored] == [str, int, str]


@pytest.mark.parametrize("payload", [
    '{"a": 1}',
    '[["a", 1, 2]]',
    '[[null, 1]]',
    '[[true, 1]]',
])
def test_memory_backend_rejects_malformed_entries(payload):
    backend = InMemorySessionBackend()
    backend.sessions["odd"] = {"payload": payload, "expires_at": None}
    with pytest.raises(SessionBackendError):
        backend.read("odd")


def test_default_backend_without_redis(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    assert isinstance(create_default_backend(), InMemorySessionBackend)


def test_default_backend_falls_back_on_bad_url():
    assert isinstance(create_default_backend("notaurl://nowhere"), InMemorySessionBackend)


@pytest.mark.skipif(not os.getenv("REDIS_URL"), reason="REDIS_URL not set")
def test_redis_backend_lifecycle():
    from websession.backend import RedisSessionBackend

    backend = RedisSessionBackend(os.environ["REDIS_URL"], prefix="websession-test:")
    backend.write("int-test", {"user": "int", 0: "x"}, ttl=60)
    assert backend.exists("int-test")
    assert backend.read("int-test") == {"user": "int", 0: "x"}
    assert "int-test" in backend.list_ids()

    assert backend.delete("int-test") is True
    assert backend.read("int-test") is None
    assert "int-test" not in backend.list_ids()
