"""
Address book endpoints — saved delivery addresses for checkout.

A saved address id can be sent to POST /orders instead of a full
shipping_address.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_user
from domain.responses import success_response
from models import AddressOut, ShippingAddress, dump
from services import address_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/addresses", tags=["addresses"])


class AddressCreateRequest(ShippingAddress):
    country: str = Field("India", min_length=1, max_length=60)
    is_default: bool = False


class AddressUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    phone: str | None = Field(default=None, max_length=20)
    line1: str | None = Field(default=None, min_length=1, max_length=255)
    line2: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    state: str | None = Field(default=None, min_length=1, max_length=100)
    pincode: str | None = Field(default=None, max_length=6)
    country: str | None = Field(default=None, min_length=1, max_length=60)
    is_default: bool | None = None


async def _book(db: AsyncSession, user: User) -> list[dict]:
    return [dump(AddressOut, a) for a in await address_service.list_addresses(db, user_id=user.id)]


@router.get("")
async def list_addresses(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return success_response(data=await _book(db, user))


@router.post("", status_code=201)
async def create_address(
    request: AddressCreateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    address = await address_service.create_address(db, user_id=user.id, data=request.model_dump())
    await db.commit()
    return success_response(data=dump(AddressOut, address))


@router.patch("/{address_id}")
async def update_address(
    address_id: int,
    request: AddressUpdateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    address = await address_service.update_address(
        db, user_id=user.id, address_id=address_id, data=request.model_dump(exclude_unset=True)
    )
    await db.commit()
    return success_response(data=dump(AddressOut, address))


@router.patch("/{address_id}/default")
async def set_default(
    address_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await address_service.set_default(db, user_id=user.id, address_id=address_id)
    await db.commit()
    return success_response(data=await _book(db, user))


@router.delete("/{address_id}")
async def delete_address(
    address_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await address_service.delete_address(db, user_id=user.id, address_id=address_id)
    await db.commit()
    return success_response(data=await _book(db, user))
