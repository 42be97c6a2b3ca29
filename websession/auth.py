"""Admin credential checks for the session ops routes.

Credentials are read from the environment on every call so they can be
rotated without restarting the process.
"""

import logging
import os
from typing import Optional

import jwt

logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    """Raised when a JWT token cannot be verified."""


def _verify_jwt(token: str, secret: str) -> dict:
    """Verify and return a JWT payload."""
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as exc:
        raise InvalidTokenError("Invalid JWT token") from exc


def admin_auth_configured() -> bool:
    return bool(os.getenv("ADMIN_TOKEN") or os.getenv("ADMIN_JWT_SECRET"))


def is_admin(authorization: Optional[str], x_admin_token: Optional[str]) -> bool:
    """Return True if provided credentials authorize an admin action.

    Accepts either:
    - `x_admin_token` matching the `ADMIN_TOKEN` env var, or
    - `Authorization: Bearer <jwt>` where the JWT verifies with
        `ADMIN_JWT_SECRET` and carries `role: admin` (or `is_admin: true`).
    """
    admin_token = os.getenv("ADMIN_TOKEN")
    if admin_token and x_admin_token and x_admin_token == admin_token:
        return True

    jwt_secret = os.getenv("ADMIN_JWT_SECRET")
    if not (jwt_secret and authorization and authorization.startswith("Bearer ")):
        return False

    token = authorization.split(" ", 1)[1]
    try:
        payload = _verify_jwt(token, jwt_secret)
    except InvalidTokenError as e:
        logger.debug("Rejected admin bearer token: %s", e)
        return False
    return payload.get("role") == "admin" or bool(payload.get("is_admin"))
