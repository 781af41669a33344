"""
Cart service — one server-side cart per customer.

Adding an item that is already in the cart sets its quantity rather than
incrementing it, so the cart screen's quantity picker maps onto one call.
Products without size rows are stored under a single "free" size label,
whatever label the client sends.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import CartItem, Product
from domain.constants import UNSIZED_LABEL
from domain.errors import ConflictError, NotFoundError, ValidationError
from services.inventory_service import size_stock

logger = logging.getLogger(__name__)

MAX_QUANTITY_PER_LINE = 10


async def get_cart_items(db: AsyncSession, *, user_id: int) -> list[CartItem]:
    res = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.added_at.asc(), CartItem.id.asc())
    )
    return list(res.scalars().all())


def summarize(items: list[CartItem]) -> dict:
    lines = []
    total_amount = 0.0
    for item in items:
        p = item.product
        line_total = round(p.price * item.quantity, 2)
        total_amount += line_total
        primary = next((img["url"] for img in (p.images or []) if img.get("is_primary")), None)
        lines.append({
            "product_id": p.id,
            "slug": p.slug,
            "name": p.name,
            "category": p.category,
            "image": primary,
            "size": item.size,
            "quantity": item.quantity,
            "price": p.price,
            "line_total": line_total,
            "available": p.is_active and not p.is_out_of_stock and size_stock(p, item.size) >= item.quantity,
        })
    return {
        "items": lines,
        "total_items": sum(i.quantity for i in items),
        "total_amount": round(total_amount, 2),
    }


async def set_item(db: AsyncSession, *, user_id: int, product_id: int, size: str, quantity: int) -> CartItem:
    if quantity < 1 or quantity > MAX_QUANTITY_PER_LINE:
        raise ValidationError(f"must be between 1 and {MAX_QUANTITY_PER_LINE}", field="quantity")

    res = await db.execute(select(Product).where(Product.id == product_id))
    product = res.scalar_one_or_none()
    if not product or not product.is_active:
        raise NotFoundError("Product", str(product_id))
    if not product.sizes:
        size = UNSIZED_LABEL
    elif size not in [s.size for s in product.sizes]:
        raise ValidationError(f"size '{size}' is not offered for {product.name}", field="size")
    available = size_stock(product, size)
    if product.is_out_of_stock or available < quantity:
        raise ConflictError(
            f"Only {available} left of {product.name} (size {size})",
            details={"available": 0 if product.is_out_of_stock else available},
        )

    res = await db.execute(
        select(CartItem).where(
            CartItem.user_id == user_id,
            CartItem.product_id == product_id,
            CartItem.size == size,
        )
    )
    item = res.scalar_one_or_none()
    if item:
        item.quantity = quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, size=size, quantity=quantity, added_at=datetime.utcnow())
        item.product = product
        db.add(item)
    await db.flush()
    return item


async def remove_item(db: AsyncSession, *, user_id: int, product_id: int, size: str) -> None:
    res = await db.execute(
        delete(CartItem).where(
            CartItem.user_id == user_id,
            CartItem.product_id == product_id,
            CartItem.size == size,
        )
    )
    if res.rowcount == 0:
        raise NotFoundError("Cart item", f"{product_id}/{size}")


async def clear(db: AsyncSession, *, user_id: int) -> None:
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
