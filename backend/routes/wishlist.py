"""
Wishlist endpoints — the signed-in customer's saved products.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_user
from domain.responses import success_response
from models import ProductOut, dump
from services import wishlist_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/wishlist", tags=["wishlist"])


class ToggleRequest(BaseModel):
    product_id: int = Field(..., gt=0)


async def _wishlist(db: AsyncSession, user: User) -> list[dict]:
    items = await wishlist_service.get_items(db, user_id=user.id)
    return [{**dump(ProductOut, i.product), "added_at": i.added_at.isoformat() if i.added_at else None} for i in items]


@router.get("")
async def get_wishlist(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    items = await _wishlist(db, user)
    return success_response(data=items, meta={"total": len(items)})


@router.post("/toggle")
async def toggle(
    request: ToggleRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    saved = await wishlist_service.toggle(db, user_id=user.id, product_id=request.product_id)
    await db.commit()
    return success_response(data={"product_id": request.product_id, "saved": saved, "items": await _wishlist(db, user)})


@router.delete("")
async def clear_wishlist(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    removed = await wishlist_service.clear(db, user_id=user.id)
    await db.commit()
    return success_response(data={"removed": removed})
