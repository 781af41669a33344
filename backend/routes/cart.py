"""
Cart endpoints — the signed-in customer's server-side cart.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_user
from domain.responses import success_response
from services import cart_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cart", tags=["cart"])


class CartItemRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    size: str = Field(..., min_length=1, max_length=20)
    quantity: int = Field(1, ge=1, le=cart_service.MAX_QUANTITY_PER_LINE)


async def _cart(db: AsyncSession, user: User) -> dict:
    return cart_service.summarize(await cart_service.get_cart_items(db, user_id=user.id))


@router.get("")
async def get_cart(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return success_response(data=await _cart(db, user))


@router.post("/items")
async def set_item(
    request: CartItemRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Add a product/size to the cart, or set the quantity if it is already there."""
    await cart_service.set_item(
        db,
        user_id=user.id,
        product_id=request.product_id,
        size=request.size,
        quantity=request.quantity,
    )
    await db.commit()
    return success_response(data=await _cart(db, user))


@router.delete("/items/{product_id}/{size}")
async def remove_item(
    product_id: int,
    size: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.remove_item(db, user_id=user.id, product_id=product_id, size=size)
    await db.commit()
    return success_response(data=await _cart(db, user))


@router.delete("")
async def clear_cart(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    await cart_service.clear(db, user_id=user.id)
    await db.commit()
    return success_response(data=await _cart(db, user))
