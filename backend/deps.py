"""
Shared FastAPI dependencies.

Routers import their DB session, auth guards and pagination from here.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from fastapi import Depends, Header, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from domain.errors import PermissionDeniedError, UnauthorizedError
from middleware.auth import decode_access_token, parse_bearer_token


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """
    Best-effort authentication.

    Returns the User for a valid bearer token, None when no token is sent.
    An invalid or expired token is still a 401.
    """
    token = parse_bearer_token(authorization)
    if not token:
        return None
    payload = decode_access_token(token)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid access token subject.")

    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()
    if not user:
        raise UnauthorizedError("Account no longer exists.")
    if user.is_blocked:
        raise PermissionDeniedError("Account is blocked.")
    return user


async def require_user(user: User | None = Depends(get_current_user)) -> User:
    if user is None:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    if user.role != "admin":
        raise PermissionDeniedError("Admin role required for this endpoint.")
    return user
