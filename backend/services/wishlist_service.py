"""
Wishlist service — products a customer saved for later.

The storefront heart icon maps onto toggle(): one call adds the product or
removes it if it is already saved.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Product, WishlistItem
from domain.errors import NotFoundError

logger = logging.getLogger(__name__)


async def get_items(db: AsyncSession, *, user_id: int) -> list[WishlistItem]:
    """Saved items, newest first. Products taken off the catalog are left out."""
    res = await db.execute(
        select(WishlistItem)
        .where(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.added_at.desc(), WishlistItem.id.desc())
    )
    return [item for item in res.scalars().all() if item.product and item.product.is_active]


async def product_ids(db: AsyncSession, *, user_id: int) -> list[int]:
    res = await db.execute(select(WishlistItem.product_id).where(WishlistItem.user_id == user_id))
    return [pid for (pid,) in res.all()]


async def toggle(db: AsyncSession, *, user_id: int, product_id: int) -> bool:
    """Add or remove a product. Returns True when the product is now saved."""
    res = await db.execute(
        select(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
    )
    existing = res.scalar_one_or_none()
    if existing:
        await db.delete(existing)
        await db.flush()
        return False

    res = await db.execute(select(Product).where(Product.id == product_id))
    product = res.scalar_one_or_none()
    if not product or not product.is_active:
        raise NotFoundError("Product", str(product_id))

    db.add(WishlistItem(user_id=user_id, product_id=product_id))
    await db.flush()
    return True


async def clear(db: AsyncSession, *, user_id: int) -> int:
    res = await db.execute(delete(WishlistItem).where(WishlistItem.user_id == user_id))
    await db.flush()
    return res.rowcount or 0
