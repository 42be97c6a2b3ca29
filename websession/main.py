"""HTTP surface: a session handle per request plus admin/ops routes."""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

import jwt
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from pydantic import BaseModel

from .audit import read_audit, record_audit
from .auth import admin_auth_configured, is_admin
from .errors import (
    InactiveSessionError,
    InvalidCookieOptionError,
    InvalidKeyError,
    MalformedInitDataError,
    SessionBackendError,
)
from .factory import SessionFactory
from .handle import SessionHandle
from .runtime import Cookie

logger = logging.getLogger(__name__)

# Metrics
MET_TERMINATE_ATTEMPTS = Counter("websession_terminate_attempts_total", "Admin terminate attempts")
MET_TERMINATE_SUCCESS = Counter("websession_terminate_success_total", "Admin terminate success")
MET_TERMINATE_DENIED = Counter("websession_terminate_denied_total", "Admin terminate denied")

app = FastAPI(title="websession")

factory = SessionFactory()

# Development CORS: cookie sessions need credentials. Lock this down in production.
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ItemValue(BaseModel):
    value: Any = None


def apply_cookie(response: Response, cookie: Cookie) -> None:
    """Translate a queued session cookie into a `Set-Cookie` header."""
    response.set_cookie(
        cookie.name,
        cookie.value,
        expires=cookie.expires_at(),
        path=cookie.path or "/",
        domain=cookie.domain,
        secure=cookie.secure,
        httponly=cookie.httponly,
        samesite=cookie.samesite,
    )


def get_session(request: Request, response: Response) -> Iterator[SessionHandle]:
    """Dependency: open a handle for the request and close it afterwards."""
    runtime = factory.runtime(request.cookies, on_cookie=lambda c: apply_cookie(response, c))
    with factory.new_session(runtime) as session:
        if not session.is_active():
            raise HTTPException(status_code=503, detail="session unavailable")
        yield session


def _coerce_key(key: str):
    # integer keys come from push/unshift
    return int(key) if key.isdigit() else key


def _require_admin(authorization, x_admin_token) -> None:
    # session ids are bearer credentials: ops routes stay closed without an admin mechanism
    if not admin_auth_configured():
        raise HTTPException(status_code=403, detail="admin access not configured")
    if not is_admin(authorization, x_admin_token):
        raise HTTPException(status_code=403, detail="admin credentials required")


@app.exception_handler(InactiveSessionError)
async def inactive_session_handler(request: Request, exc: InactiveSessionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvalidKeyError)
@app.exception_handler(MalformedInitDataError)
@app.exception_handler(InvalidCookieOptionError)
async def bad_session_input_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SessionBackendError)
async def session_backend_handler(request: Request, exc: SessionBackendError):
    logger.error("Session storage failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "session storage failure"})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/session")
def read_session(session: SessionHandle = Depends(get_session)):
    return session.to_dict()


@app.put("/api/session")
def initialize_session(data: dict, session: SessionHandle = Depends(get_session)):
    return session.initialize(data).to_dict()


@app.get("/api/session/items/{key}")
def read_item(key: str, session: SessionHandle = Depends(get_session)):
    k = _coerce_key(key)
    if k not in session.get_all():
        raise HTTPException(status_code=404, detail="key not found")
    return {"key": key, "value": session.get(k)}


@app.put("/api/session/items/{key}")
def write_item(key: str, item: ItemValue, session: SessionHandle = Depends(get_session)):
    session.set(_coerce_key(key), item.value)
    return {"key": key, "value": item.value}


@app.delete("/api/session/items/{key}")
def delete_item(key: str, session: SessionHandle = Depends(get_session)):
    session.remove(_coerce_key(key))
    return {"key": key, "removed": True}


@app.post("/api/session/push")
def push_item(item: ItemValue, session: SessionHandle = Depends(get_session)):
    return {"length": session.push(item.value)}


@app.post("/api/session/pop")
def pop_item(session: SessionHandle = Depends(get_session)):
    return {"value": session.pop()}


@app.post("/api/session/regenerate")
def regenerate_session(delete_old: bool = False, session: SessionHandle = Depends(get_session)):
    old_id = session.get_session_id()
    ok = session.regenerate_id(delete_old)
    if not ok:
        raise HTTPException(status_code=500, detail="session id regeneration failed")
    new_id = session.get_session_id()
    record_audit({
        "action": "regenerate_session",
        "old_session_id": old_id,
        "session_id": new_id,
        "delete_old": delete_old,
    })
    return {"session_id": new_id}


@app.post("/api/session/destroy")
def destroy_session(session: SessionHandle = Depends(get_session)):
    session_id = session.get_session_id()
    session.destroy()
    record_audit({"action": "destroy_session", "session_id": session_id})
    return {"status": "destroyed", "session_id": session_id}


@app.get("/api/ops/sessions")
def list_sessions(authorization: str | None = Header(None), x_admin_token: str | None = Header(None)):
    _require_admin(authorization, x_admin_token)
    ids = factory.backend.list_ids()
    return {"total": len(ids), "sessions": ids}


@app.post("/api/ops/sessions/{session_id}/terminate")
def terminate_session(
    session_id: str,
    authorization: str | None = Header(None),
    x_admin_token: str | None = Header(None),
):
    MET_TERMINATE_ATTEMPTS.inc()
    try:
        _require_admin(authorization, x_admin_token)
    except HTTPException:
        MET_TERMINATE_DENIED.inc()
        raise

    if not factory.backend.delete(session_id):
        raise HTTPException(status_code=404, detail="session not found")
    MET_TERMINATE_SUCCESS.inc()

    record_audit({"action": "terminate_session", "session_id": session_id, "by": "admin"})
    return {"status": "terminated", "session_id": session_id}


@app.get("/api/ops/audit")
def get_audit(
    limit: int = 100,
    authorization: str | None = Header(None),
    x_admin_token: str | None = Header(None),
):
    """Return recent audit events from `logs/audit.log`."""
    _require_admin(authorization, x_admin_token)
    try:
        events = read_audit(limit)
    except OSError as e:
        logger.debug("Failed reading audit log: %s", e)
        events = []
    return {"events": events}


@app.post("/api/ops/token")
def mint_admin_token(x_admin_token: str | None = Header(None)):
    """Mint a short-lived admin JWT in exchange for the legacy `ADMIN_TOKEN`.

    Requires `ADMIN_JWT_SECRET` to be set.
    """
    admin_token = os.getenv("ADMIN_TOKEN")
    jwt_secret = os.getenv("ADMIN_JWT_SECRET")

    if not jwt_secret:
        raise HTTPException(status_code=400, detail="ADMIN_JWT_SECRET not configured")

    if not admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=403, detail="invalid admin token")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": "admin",
        "role": "admin",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=30)).timestamp()),
    }
    token = jwt.encode(payload, jwt_secret, algorithm="HS256")
    return {"access_token": token, "token_type": "bearer"}
