"""
Address book service — saved delivery addresses per customer.

Invariant: a customer with any saved address has exactly one default. The
first address saved becomes the default, and deleting the default promotes
the most recently added remaining address.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Address
from domain.errors import NotFoundError, ValidationError
from utils.validators import validate_phone, validate_pincode

logger = logging.getLogger(__name__)

_FIELDS = ("name", "phone", "line1", "line2", "city", "state", "pincode", "country")
_REQUIRED = ("name", "phone", "line1", "city", "state", "pincode")


def _normalize(field: str, value):
    if value is None:
        return None
    if field == "phone":
        return validate_phone(value)
    if field == "pincode":
        return validate_pincode(value)
    return value.strip()


async def list_addresses(db: AsyncSession, *, user_id: int) -> list[Address]:
    """Default first, then newest."""
    res = await db.execute(
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
    )
    return list(res.scalars().all())


async def get_address(db: AsyncSession, *, user_id: int, address_id: int) -> Address:
    res = await db.execute(select(Address).where(Address.id == address_id, Address.user_id == user_id))
    address = res.scalar_one_or_none()
    if not address:
        raise NotFoundError("Address", str(address_id))
    return address


async def _unset_defaults(db: AsyncSession, user_id: int) -> None:
    await db.execute(
        update(Address).where(Address.user_id == user_id, Address.is_default == True).values(is_default=False)  # noqa: E712
    )


async def create_address(db: AsyncSession, *, user_id: int, data: dict) -> Address:
    missing = [f for f in _REQUIRED if not (data.get(f) or "").strip()]
    if missing:
        raise ValidationError("is required", field=missing[0], details={"missing": missing})

    existing = await list_addresses(db, user_id=user_id)
    make_default = bool(data.get("is_default")) or not existing
    if make_default and existing:
        await _unset_defaults(db, user_id)

    address = Address(user_id=user_id, is_default=make_default, country="India")
    for field in _FIELDS:
        value = _normalize(field, data.get(field))
        if value:
            setattr(address, field, value)
    db.add(address)
    await db.flush()
    logger.info(f"Address {address.id} saved for user {user_id} (default={make_default})")
    return address


async def update_address(db: AsyncSession, *, user_id: int, address_id: int, data: dict) -> Address:
    """Only keys present in `data` change; line2 may be cleared with None."""
    address = await get_address(db, user_id=user_id, address_id=address_id)
    for field in _FIELDS:
        if field not in data:
            continue
        value = _normalize(field, data[field])
        if not value and field != "line2":
            raise ValidationError("cannot be empty", field=field)
        setattr(address, field, value or None)
    if data.get("is_default") and not address.is_default:
        await _unset_defaults(db, user_id)
        address.is_default = True
    address.updated_at = datetime.utcnow()
    await db.flush()
    return address


async def set_default(db: AsyncSession, *, user_id: int, address_id: int) -> Address:
    address = await get_address(db, user_id=user_id, address_id=address_id)
    if not address.is_default:
        await _unset_defaults(db, user_id)
        address.is_default = True
        await db.flush()
    return address


async def delete_address(db: AsyncSession, *, user_id: int, address_id: int) -> None:
    address = await get_address(db, user_id=user_id, address_id=address_id)
    was_default = address.is_default
    await db.delete(address)
    await db.flush()

    if was_default:
        remaining = await list_addresses(db, user_id=user_id)
        if remaining:
            remaining[0].is_default = True
            await db.flush()


def as_shipping_address(address: Address) -> dict:
    """The checkout shipping_address shape for a saved address."""
    return {
        "name": address.name,
        "phone": address.phone,
        "line1": address.line1,
        "line2": address.line2,
        "city": address.city,
        "state": address.state,
        "pincode": address.pincode,
    }
