"""
Auth endpoints — email/password accounts and JWT access tokens.

Flow:
  1) POST /auth/register  -> creates a customer account, returns a token
  2) POST /auth/login     -> verifies the password, returns a token
  3) GET  /auth/me        -> the account behind the bearer token
  4) PATCH /auth/me       -> edit name, email, phone
  5) POST /auth/password  -> change password (current password required)
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import require_user
from domain.responses import success_response
from middleware.auth import issue_access_token
from middleware.rate_limit import rate_limit
from models import UserOut, dump
from services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=120)
    phone: str | None = Field(default=None, max_length=20)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    email: str | None = Field(default=None, min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=20)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


def _token_payload(user: User) -> dict:
    return {
        "user": dump(UserOut, user),
        "access_token": issue_access_token(user_id=user.id, role=user.role),
        "token_type": "Bearer",
        "expires_in_seconds": settings.jwt_access_ttl_minutes * 60,
    }


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=5, window_seconds=300)),
):
    user = await auth_service.register_user(
        db,
        email=request.email,
        password=request.password,
        name=request.name,
        phone=request.phone,
    )
    await db.commit()
    return success_response(data=_token_payload(user))


@router.post("/login")
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=300)),
):
    user = await auth_service.authenticate(db, email=request.email, password=request.password)
    logger.info(f"User {user.id} logged in (role={user.role})")
    return success_response(data=_token_payload(user))


@router.get("/me")
async def me(user: User = Depends(require_user)):
    return success_response(data=dump(UserOut, user))


@router.patch("/me")
async def update_me(
    request: ProfileUpdateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.update_profile(
        db, user=user, name=request.name, email=request.email, phone=request.phone
    )
    await db.commit()
    return success_response(data=dump(UserOut, user))


@router.post("/password")
async def change_password(
    request: PasswordChangeRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=5, window_seconds=300)),
):
    await auth_service.change_password(
        db, user=user, current_password=request.current_password, new_password=request.new_password
    )
    await db.commit()
    return success_response(data={"message": "Password updated"})
