"""
Category service — the storefront's category navigation.

Products keep their category as a slug string (Product.category); this
table names those slugs and lets admins hide a category from the menu.
"""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Category, Product
from domain.errors import ConflictError, NotFoundError, ValidationError
from utils.validators import slugify, validate_slug

logger = logging.getLogger(__name__)


async def get_category(db: AsyncSession, category_id: int) -> Category:
    res = await db.execute(select(Category).where(Category.id == category_id))
    category = res.scalar_one_or_none()
    if not category:
        raise NotFoundError("Category", str(category_id))
    return category


async def _ensure_unique(db: AsyncSession, *, name: str, slug: str, exclude_id: int | None = None) -> None:
    q = select(Category).where(or_(func.lower(Category.name) == name.lower(), Category.slug == slug))
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    if (await db.execute(q)).scalars().first():
        raise ConflictError(f"A category named '{name}' or with slug '{slug}' already exists")


async def create_category(db: AsyncSession, *, name: str, slug: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("is required", field="name")
    slug = validate_slug(slug) if slug else slugify(name)
    await _ensure_unique(db, name=name, slug=slug)

    category = Category(name=name, slug=slug, is_active=True)
    db.add(category)
    await db.flush()
    logger.info(f"Category created: {slug}")
    return category


async def rename_category(db: AsyncSession, *, category_id: int, name: str) -> Category:
    """The slug stays put; products point at it."""
    category = await get_category(db, category_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("is required", field="name")
    await _ensure_unique(db, name=name, slug=category.slug, exclude_id=category.id)
    category.name = name
    await db.flush()
    return category


async def toggle_category(db: AsyncSession, *, category_id: int) -> Category:
    category = await get_category(db, category_id)
    category.is_active = not category.is_active
    await db.flush()
    logger.info(f"Category {category.slug} {'shown' if category.is_active else 'hidden'}")
    return category


async def list_categories(db: AsyncSession, *, active_only: bool = False) -> list[dict]:
    """Categories by name, each with its count of active products."""
    counts = (
        select(Product.category, func.count(Product.id).label("product_count"))
        .where(Product.is_active == True)  # noqa: E712
        .group_by(Product.category)
        .subquery()
    )
    q = (
        select(Category, func.coalesce(counts.c.product_count, 0))
        .outerjoin(counts, counts.c.category == Category.slug)
        .order_by(Category.name.asc())
    )
    if active_only:
        q = q.where(Category.is_active == True)  # noqa: E712
    res = await db.execute(q)
    return [
        {"id": c.id, "name": c.name, "slug": c.slug, "is_active": c.is_active, "product_count": n}
        for c, n in res.all()
    ]
