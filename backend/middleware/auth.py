"""
Token authentication helpers.

Customers and admins log in with email + password (routes/auth.py) and get a
short-lived HS256 JWT:

    sub   — user id (string)
    role  — "customer" | "admin"

Requests authenticate with `Authorization: Bearer <jwt>`. Role checks and the
database lookup of the user live in deps.py.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from config import settings

logger = logging.getLogger(__name__)

# werkzeug method string; stored hashes look like "scrypt:32768:8:1$<salt>$<hex>"
PASSWORD_HASH_METHOD = "scrypt"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Access token expired.")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid access token.")


def issue_access_token(*, user_id: int, role: str) -> str:
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


# ── Password hashing ────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return generate_password_hash(password, method=PASSWORD_HASH_METHOD)


def verify_password(password: str, stored: str | None) -> bool:
    """False for a wrong password and for a stored value that is not a werkzeug hash."""
    if not stored:
        return False
    try:
        return check_password_hash(stored, password)
    except ValueError:
        logger.warning("Stored password hash has an unknown format")
        return False
