"""
Catalog service — admin product management and storefront queries.

Soft delete only: a deleted product is deactivated, never removed, because
order lines and stock movements keep pointing at it.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem, Product, ProductSize
from domain.enums import OrderStatus
from domain.errors import ConflictError, NotFoundError, ValidationError
from utils.validators import slugify, validate_slug

logger = logging.getLogger(__name__)

STOREFRONT_SORTS = {"newest", "price_asc", "price_desc", "name", "featured"}

# Plain text fields copied as-is on create/update
_TEXT_FIELDS = (
    "name",
    "description",
    "specifications",
    "material_and_care",
    "shipping_and_returns",
    "brand",
    "sku",
)


def _normalize_images(images: list[dict]) -> list[dict]:
    """Order images and make sure exactly one is primary."""
    normalized = [
        {
            "url": img["url"],
            "key": img.get("key", ""),
            "is_primary": bool(img.get("is_primary")),
            "order": int(img.get("order", idx)),
        }
        for idx, img in enumerate(images)
    ]
    normalized.sort(key=lambda i: i["order"])
    if normalized and not any(i["is_primary"] for i in normalized):
        normalized[0]["is_primary"] = True
    seen_primary = False
    for img in normalized:
        if img["is_primary"] and seen_primary:
            img["is_primary"] = False
        seen_primary = seen_primary or img["is_primary"]
    return normalized


async def _ensure_unique_slug(db: AsyncSession, slug: str, exclude_id: int | None = None) -> None:
    q = select(Product.id).where(Product.slug == slug)
    if exclude_id is not None:
        q = q.where(Product.id != exclude_id)
    if (await db.execute(q)).first():
        raise ConflictError(f"Slug '{slug}' is already used by another product")


async def create_product(db: AsyncSession, *, data: dict) -> Product:
    """
    data keys: name, slug?, category, price, compare_price?, stock?, sizes?,
    colors?, tags?, images?, is_active?, featured? and the text fields.
    """
    slug = validate_slug(data.get("slug") or slugify(data["name"]))
    await _ensure_unique_slug(db, slug)

    if data.get("compare_price") is not None and data["compare_price"] < data["price"]:
        raise ValidationError("must be greater than or equal to price", field="compare_price")

    product = Product(
        slug=slug,
        category=data["category"].strip().lower(),
        price=data["price"],
        compare_price=data.get("compare_price"),
        stock=data.get("stock") or 0,
        colors=data.get("colors") or [],
        tags=[t.strip().lower() for t in data.get("tags") or []],
        images=_normalize_images(data.get("images") or []),
        is_active=data.get("is_active", True),
        featured=data.get("featured", False),
        sizes=[ProductSize(size=s["size"], stock=s["stock"]) for s in data.get("sizes") or []],
    )
    for field in _TEXT_FIELDS:
        if data.get(field) is not None:
            setattr(product, field, data[field])
    if product.sizes:
        product.stock = sum(s.stock for s in product.sizes)

    db.add(product)
    await db.flush()
    logger.info(f"Product created: id={product.id} slug={slug}")
    return product


async def get_product(db: AsyncSession, product_id: int) -> Product:
    res = await db.execute(select(Product).where(Product.id == product_id))
    product = res.scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", str(product_id))
    return product


async def update_product(db: AsyncSession, *, product_id: int, data: dict) -> Product:
    """
    Update catalog fields. Only keys present in `data` change.

    Stock is not editable here: it moves through the inventory service so
    every change lands in the movement ledger.
    """
    product = await get_product(db, product_id)

    if "slug" in data and data["slug"]:
        slug = validate_slug(data["slug"])
        await _ensure_unique_slug(db, slug, exclude_id=product.id)
        product.slug = slug
    for field in _TEXT_FIELDS:
        if data.get(field) is not None:
            setattr(product, field, data[field])
    if data.get("category") is not None:
        product.category = data["category"].strip().lower()
    if data.get("price") is not None:
        product.price = data["price"]
    if "compare_price" in data:
        product.compare_price = data["compare_price"]
    if product.compare_price is not None and product.compare_price < product.price:
        raise ValidationError("must be greater than or equal to price", field="compare_price")
    if data.get("colors") is not None:
        product.colors = data["colors"]
    if data.get("tags") is not None:
        product.tags = [t.strip().lower() for t in data["tags"]]
    if data.get("images") is not None:
        product.images = _normalize_images(data["images"])
    for flag in ("is_active", "featured", "is_out_of_stock"):
        if data.get(flag) is not None:
            setattr(product, flag, data[flag])

    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


async def toggle_active(db: AsyncSession, *, product_id: int) -> Product:
    product = await get_product(db, product_id)
    product.is_active = not product.is_active
    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


async def toggle_featured(db: AsyncSession, *, product_id: int) -> Product:
    product = await get_product(db, product_id)
    product.featured = not product.featured
    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


async def update_status(
    db: AsyncSession,
    *,
    product_id: int,
    is_active: bool | None = None,
    is_out_of_stock: bool | None = None,
) -> Product:
    product = await get_product(db, product_id)
    if is_active is not None:
        product.is_active = is_active
    if is_out_of_stock is not None:
        product.is_out_of_stock = is_out_of_stock
    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


async def bulk_update_status(
    db: AsyncSession,
    *,
    product_ids: list[int],
    is_active: bool | None = None,
    is_out_of_stock: bool | None = None,
) -> int:
    res = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    products = res.scalars().all()
    now = datetime.utcnow()
    for p in products:
        if is_active is not None:
            p.is_active = is_active
        if is_out_of_stock is not None:
            p.is_out_of_stock = is_out_of_stock
        p.updated_at = now
    await db.flush()
    logger.info(f"Bulk status update on {len(products)} products")
    return len(products)


async def soft_delete_product(db: AsyncSession, *, product_id: int) -> Product:
    """Deactivate a product; refused while unpaid orders still reference it."""
    product = await get_product(db, product_id)

    pending = await db.execute(
        select(func.count(OrderItem.id))
        .join(Order, OrderItem.order_id == Order.id)
        .where(
            OrderItem.product_id == product_id,
            Order.status == OrderStatus.PENDING_PAYMENT.value,
        )
    )
    pending_count = pending.scalar() or 0
    if pending_count:
        raise ConflictError(
            f"Cannot delete product {product.slug}: {pending_count} pending order(s) exist"
        )

    product.is_active = False
    product.featured = False
    product.updated_at = datetime.utcnow()
    await db.flush()
    logger.info(f"Product soft-deleted: id={product.id} slug={product.slug}")
    return product


async def list_admin_products(
    db: AsyncSession,
    *,
    search: str | None = None,
    category: str | None = None,
    status: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Product], int]:
    """status: active | inactive | featured | out_of_stock"""
    conditions = []
    if search:
        like = f"%{search.strip()}%"
        conditions.append(or_(Product.name.ilike(like), Product.slug.ilike(like), Product.sku.ilike(like)))
    if category:
        conditions.append(Product.category == category.strip().lower())
    if status == "active":
        conditions.append(Product.is_active == True)  # noqa: E712
    elif status == "inactive":
        conditions.append(Product.is_active == False)  # noqa: E712
    elif status == "featured":
        conditions.append(Product.featured == True)  # noqa: E712
    elif status == "out_of_stock":
        conditions.append(or_(Product.is_out_of_stock == True, Product.stock <= 0))  # noqa: E712
    elif status:
        raise ValidationError(f"unknown status filter '{status}'", field="status")

    total = (await db.execute(select(func.count(Product.id)).where(*conditions))).scalar() or 0
    res = await db.execute(
        select(Product)
        .where(*conditions)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


# ── Storefront ──────────────────────────────────────────────────────

async def list_store_products(
    db: AsyncSession,
    *,
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    size: str | None = None,
    color: str | None = None,
    featured: bool | None = None,
    search: str | None = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Product], int]:
    if sort not in STOREFRONT_SORTS:
        raise ValidationError(f"must be one of {sorted(STOREFRONT_SORTS)}", field="sort")

    conditions = [Product.is_active == True]  # noqa: E712
    if category:
        conditions.append(Product.category == category.strip().lower())
    if min_price is not None:
        conditions.append(Product.price >= min_price)
    if max_price is not None:
        conditions.append(Product.price <= max_price)
    if featured is not None:
        conditions.append(Product.featured == featured)
    if size:
        conditions.append(
            Product.id.in_(
                select(ProductSize.product_id).where(ProductSize.size == size, ProductSize.stock > 0)
            )
        )
    if search:
        like = f"%{search.strip()}%"
        conditions.append(or_(Product.name.ilike(like), Product.description.ilike(like), Product.brand.ilike(like)))

    order_by = {
        "newest": (Product.created_at.desc(), Product.id.desc()),
        "price_asc": (Product.price.asc(),),
        "price_desc": (Product.price.desc(),),
        "name": (Product.name.asc(),),
        "featured": (Product.featured.desc(), Product.created_at.desc()),
    }[sort]

    res = await db.execute(select(Product).where(*conditions).order_by(*order_by))
    products = list(res.scalars().all())

    # JSON colour arrays are filtered in Python to stay portable across backends
    if color:
        wanted = color.strip().lower()
        products = [p for p in products if wanted in [c.lower() for c in (p.colors or [])]]

    total = len(products)
    return products[offset:offset + limit], total


async def get_store_product_by_slug(db: AsyncSession, slug: str) -> Product:
    res = await db.execute(
        select(Product).where(Product.slug == slug.strip().lower(), Product.is_active == True)  # noqa: E712
    )
    product = res.scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", slug)
    return product


async def list_categories(db: AsyncSession) -> list[dict]:
    res = await db.execute(
        select(Product.category, func.count(Product.id))
        .where(Product.is_active == True)  # noqa: E712
        .group_by(Product.category)
        .order_by(Product.category.asc())
    )
    return [{"category": c, "count": n} for c, n in res.all()]
