"""
Account service — registration, login, self-service profile edits and
admin user management.
"""
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, User
from domain.enums import UserRole
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, UnauthorizedError, ValidationError
from middleware.auth import hash_password, verify_password
from utils.validators import validate_email, validate_phone

logger = logging.getLogger(__name__)


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str,
    phone: str | None = None,
    role: str = UserRole.CUSTOMER.value,
) -> User:
    email = validate_email(email)
    if len(password) < 8:
        raise ValidationError("must be at least 8 characters", field="password")

    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ConflictError(f"An account already exists for {email}")

    user = User(
        email=email,
        name=name.strip(),
        phone=validate_phone(phone) if phone else None,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    await db.flush()
    logger.info(f"User registered: id={user.id} role={role}")
    return user


async def authenticate(db: AsyncSession, *, email: str, password: str) -> User:
    res = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = res.scalar_one_or_none()
    if not user or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password.")
    if user.is_blocked:
        raise PermissionDeniedError("Account is blocked.")
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()
    if not user:
        raise NotFoundError("User", str(user_id))
    return user


async def list_users(
    db: AsyncSession,
    *,
    search: str | None = None,
    role: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Users with their order counts, newest first."""
    conditions = []
    if role:
        conditions.append(User.role == role)
    if search:
        like = f"%{search.strip()}%"
        conditions.append(or_(User.email.ilike(like), User.name.ilike(like)))

    total = (await db.execute(select(func.count(User.id)).where(*conditions))).scalar() or 0

    order_counts = (
        select(Order.user_id, func.count(Order.id).label("order_count"))
        .group_by(Order.user_id)
        .subquery()
    )
    res = await db.execute(
        select(User, func.coalesce(order_counts.c.order_count, 0))
        .outerjoin(order_counts, order_counts.c.user_id == User.id)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = [{"user": u, "order_count": count} for u, count in res.all()]
    return rows, total


async def set_role(db: AsyncSession, *, user_id: int, role: str, actor: User) -> User:
    if role not in {r.value for r in UserRole}:
        raise ValidationError(f"unknown role '{role}'", field="role")
    user = await get_user(db, user_id)
    if user.id == actor.id and role != UserRole.ADMIN.value:
        raise ConflictError("Admins cannot remove their own admin role")
    user.role = role
    await db.flush()
    logger.info(f"User {user.id} role set to {role} by admin {actor.id}")
    return user


async def toggle_block(db: AsyncSession, *, user_id: int, actor: User) -> User:
    user = await get_user(db, user_id)
    if user.id == actor.id:
        raise ConflictError("Admins cannot block themselves")
    user.is_blocked = not user.is_blocked
    await db.flush()
    logger.info(f"User {user.id} {'blocked' if user.is_blocked else 'unblocked'} by admin {actor.id}")
    return user


async def update_profile(
    db: AsyncSession,
    *,
    user: User,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> User:
    """Customer-editable account fields; None leaves a field unchanged."""
    if email is not None:
        email = validate_email(email)
        if email != user.email:
            existing = await db.execute(select(User).where(User.email == email, User.id != user.id))
            if existing.scalar_one_or_none():
                raise ConflictError(f"An account already exists for {email}")
            user.email = email
    if name is not None:
        if not name.strip():
            raise ValidationError("cannot be empty", field="name")
        user.name = name.strip()
    if phone is not None:
        user.phone = validate_phone(phone) if phone.strip() else None
    await db.flush()
    logger.info(f"User {user.id} updated their profile")
    return user


async def change_password(db: AsyncSession, *, user: User, current_password: str, new_password: str) -> User:
    if not verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect.")
    if len(new_password) < 8:
        raise ValidationError("must be at least 8 characters", field="new_password")
    if new_password == current_password:
        raise ValidationError("must differ from the current password", field="new_password")
    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info(f"User {user.id} changed their password")
    return user
