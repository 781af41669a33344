"""
Storefront filter facets (sidebar groups: size, colour, price range, ...).
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Filter
from domain.enums import FilterType
from domain.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _check(f: Filter) -> None:
    if f.type not in {t.value for t in FilterType}:
        raise ValidationError(f"unknown filter type '{f.type}'", field="type")
    if f.type == FilterType.PRICE_RANGE.value:
        if f.max_price is not None and f.min_price >= f.max_price:
            raise ValidationError("min_price must be lower than max_price", field="max_price")
        if f.min_price < 0:
            raise ValidationError("cannot be negative", field="min_price")


async def get_filter(db: AsyncSession, filter_id: int) -> Filter:
    res = await db.execute(select(Filter).where(Filter.id == filter_id))
    f = res.scalar_one_or_none()
    if not f:
        raise NotFoundError("Filter", str(filter_id))
    return f


async def create_filter(db: AsyncSession, *, data: dict) -> Filter:
    f = Filter(
        type=data["type"],
        name=data["name"].strip(),
        value=(data.get("value") or data["name"]).strip().lower(),
        display_order=data.get("display_order", 0),
        is_active=data.get("is_active", True),
        min_price=data.get("min_price") or 0.0,
        max_price=data.get("max_price"),
        created_at=datetime.utcnow(),
    )
    _check(f)
    db.add(f)
    await db.flush()
    return f


async def update_filter(db: AsyncSession, *, filter_id: int, data: dict) -> Filter:
    f = await get_filter(db, filter_id)
    for field in ("type", "name", "display_order", "is_active", "min_price"):
        if data.get(field) is not None:
            setattr(f, field, data[field])
    if data.get("value") is not None:
        f.value = data["value"].strip().lower()
    if "max_price" in data:
        f.max_price = data["max_price"]
    _check(f)
    await db.flush()
    return f


async def toggle_filter(db: AsyncSession, *, filter_id: int) -> Filter:
    f = await get_filter(db, filter_id)
    f.is_active = not f.is_active
    await db.flush()
    return f


async def delete_filter(db: AsyncSession, *, filter_id: int) -> None:
    f = await get_filter(db, filter_id)
    await db.delete(f)
    await db.flush()


async def list_filters(db: AsyncSession, *, filter_type: str | None = None) -> list[Filter]:
    q = select(Filter).order_by(Filter.type.asc(), Filter.display_order.asc(), Filter.id.asc())
    if filter_type:
        q = q.where(Filter.type == filter_type)
    res = await db.execute(q)
    return list(res.scalars().all())


async def public_filters(db: AsyncSession) -> dict[str, list[Filter]]:
    """Active filters grouped by type, each group in display order."""
    res = await db.execute(
        select(Filter)
        .where(Filter.is_active == True)  # noqa: E712
        .order_by(Filter.display_order.asc(), Filter.id.asc())
    )
    grouped: dict[str, list[Filter]] = {t.value: [] for t in FilterType}
    for f in res.scalars().all():
        grouped.setdefault(f.type, []).append(f)
    return grouped
