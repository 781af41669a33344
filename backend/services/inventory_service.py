"""
Inventory service — stock levels and the stock movement ledger.

Every change to a product's stock goes through this module and appends a
StockMovement whose quantity is the signed delta applied:

    sale               checkout took units          (negative)
    cancellation       cancelled order put back     (positive)
    payment_failed     failed online payment        (positive)
    return             refunded order put back      (positive)
    manual_adjustment  admin edit from the inventory screen

Products with size rows keep `stock` equal to the sum of their sizes.
Movements are never updated or deleted.
"""

import logging
from datetime import datetime

from collections import defaultdict

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, Product, ProductSize, StockMovement, User
from domain.enums import StockMovementType
from domain.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

STOCK_FILTERS = {"all", "out", "low", "healthy"}
INVENTORY_SORTS = {"stock_asc", "stock_desc", "name", "newest"}


def stock_status(product: Product) -> str:
    """out_of_stock | low_stock | in_stock as shown on the inventory screen."""
    if product.is_out_of_stock or product.stock <= 0:
        return "out_of_stock"
    if product.stock <= settings.low_stock_threshold:
        return "low_stock"
    return "in_stock"


def size_stock(product: Product, size: str | None) -> int:
    """Units available for a size; the aggregate when the product has no size rows."""
    if product.sizes:
        row = next((s for s in product.sizes if s.size == size), None)
        return row.stock if row else 0
    return product.stock


def check_availability(lines: list[tuple[Product, str | None, int]]) -> None:
    """
    Raise ConflictError unless every (product, size) can cover the units
    requested across all lines. Sizes are ignored for products without size
    rows, whose lines all draw on the aggregate.
    """
    wanted: dict[tuple[int, str | None], int] = defaultdict(int)
    products: dict[int, Product] = {}
    for product, size, quantity in lines:
        products[product.id] = product
        wanted[(product.id, size if product.sizes else None)] += quantity

    for (product_id, size), quantity in wanted.items():
        product = products[product_id]
        available = size_stock(product, size)
        if quantity > available:
            raise ConflictError(
                f"Only {available} left of {product.name} (size {size or 'any'})",
                details={"product_id": product.id, "size": size, "available": available, "requested": quantity},
            )


def _recompute_aggregate(product: Product) -> None:
    if product.sizes:
        product.stock = sum(s.stock for s in product.sizes)


def _stock_filter_clause(stock_filter: str):
    threshold = settings.low_stock_threshold
    if stock_filter == "out":
        return or_(Product.is_out_of_stock == True, Product.stock <= 0)  # noqa: E712
    if stock_filter == "low":
        return and_(Product.is_out_of_stock == False, Product.stock > 0, Product.stock <= threshold)  # noqa: E712
    if stock_filter == "healthy":
        return and_(Product.is_out_of_stock == False, Product.stock > threshold)  # noqa: E712
    return None


async def get_product(db: AsyncSession, product_id: int) -> Product:
    res = await db.execute(select(Product).where(Product.id == product_id))
    product = res.scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", str(product_id))
    return product


async def inventory_stats(db: AsyncSession) -> dict:
    threshold = settings.low_stock_threshold
    out_clause = or_(Product.is_out_of_stock == True, Product.stock <= 0)  # noqa: E712
    low_clause = and_(Product.is_out_of_stock == False, Product.stock > 0, Product.stock <= threshold)  # noqa: E712

    row = (
        await db.execute(
            select(
                func.count(Product.id),
                func.coalesce(func.sum(Product.stock), 0),
                func.coalesce(func.sum(Product.stock * Product.price), 0.0),
            )
        )
    ).one()
    out_count = (await db.execute(select(func.count(Product.id)).where(out_clause))).scalar() or 0
    low_count = (await db.execute(select(func.count(Product.id)).where(low_clause))).scalar() or 0

    total_products = row[0] or 0
    return {
        "total_products": total_products,
        "out_of_stock": out_count,
        "low_stock": low_count,
        "healthy": total_products - out_count - low_count,
        "total_units": int(row[1] or 0),
        "stock_value": round(float(row[2] or 0.0), 2),
        "low_stock_threshold": threshold,
    }


async def list_inventory(
    db: AsyncSession,
    *,
    stock_filter: str = "all",
    category: str | None = None,
    search: str | None = None,
    sort: str = "stock_asc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Product], int, dict]:
    if stock_filter not in STOCK_FILTERS:
        raise ValidationError(f"must be one of {sorted(STOCK_FILTERS)}", field="stock_filter")
    if sort not in INVENTORY_SORTS:
        raise ValidationError(f"must be one of {sorted(INVENTORY_SORTS)}", field="sort")

    conditions = []
    clause = _stock_filter_clause(stock_filter)
    if clause is not None:
        conditions.append(clause)
    if category:
        conditions.append(Product.category == category.strip().lower())
    if search:
        like = f"%{search.strip()}%"
        conditions.append(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.slug.ilike(like)))

    order_by = {
        "stock_asc": (Product.stock.asc(), Product.id.asc()),
        "stock_desc": (Product.stock.desc(), Product.id.asc()),
        "name": (Product.name.asc(),),
        "newest": (Product.created_at.desc(), Product.id.desc()),
    }[sort]

    total = (await db.execute(select(func.count(Product.id)).where(*conditions))).scalar() or 0
    res = await db.execute(
        select(Product).where(*conditions).order_by(*order_by).limit(limit).offset(offset)
    )
    products = list(res.scalars().all())
    stats = await inventory_stats(db)
    return products, total, stats


def _movement(
    product: Product,
    *,
    type: str,
    quantity: int,
    size: str | None = None,
    order: Order | None = None,
    performed_by: int | None = None,
    note: str = "",
) -> StockMovement:
    return StockMovement(
        product_id=product.id,
        type=type,
        quantity=quantity,
        size=size,
        order_id=order.id if order else None,
        order_code=order.display_order_id if order else None,
        performed_by=performed_by,
        note=note,
        created_at=datetime.utcnow(),
    )


async def update_stock(
    db: AsyncSession,
    *,
    product_id: int,
    actor: User,
    stock: int | None = None,
    sizes: list[dict] | None = None,
    note: str = "",
) -> tuple[Product, list[StockMovement]]:
    """
    Manual stock edit from the inventory screen.

    Either `sizes` ([{size, stock}], sizes not listed are left alone) or a
    plain aggregate `stock` for products without size rows. One
    manual_adjustment movement is written per figure that actually changed.
    """
    if stock is None and not sizes:
        raise ValidationError("provide stock or sizes", field="stock")

    product = await get_product(db, product_id)
    movements: list[StockMovement] = []

    if sizes:
        by_size = {s.size: s for s in product.sizes}
        if not by_size and product.stock:
            # the first size rows replace the unsized aggregate
            movements.append(
                _movement(
                    product,
                    type=StockMovementType.MANUAL_ADJUSTMENT.value,
                    quantity=-product.stock,
                    performed_by=actor.id,
                    note=note or "Converted to per-size stock",
                )
            )
        for entry in sizes:
            size = str(entry["size"]).strip()
            new_stock = int(entry["stock"])
            if new_stock < 0:
                raise ValidationError("stock cannot be negative", field=f"sizes.{size}")
            row = by_size.get(size)
            old_stock = row.stock if row else 0
            if row is None:
                row = ProductSize(size=size, stock=new_stock)
                product.sizes.append(row)
                by_size[size] = row
            else:
                row.stock = new_stock
            delta = new_stock - old_stock
            if delta:
                movements.append(
                    _movement(
                        product,
                        type=StockMovementType.MANUAL_ADJUSTMENT.value,
                        quantity=delta,
                        size=size,
                        performed_by=actor.id,
                        note=note,
                    )
                )
        _recompute_aggregate(product)
    else:
        if product.sizes:
            raise ValidationError("product has sizes; edit stock per size", field="stock")
        if stock < 0:
            raise ValidationError("stock cannot be negative", field="stock")
        delta = stock - product.stock
        product.stock = stock
        if delta:
            movements.append(
                _movement(
                    product,
                    type=StockMovementType.MANUAL_ADJUSTMENT.value,
                    quantity=delta,
                    performed_by=actor.id,
                    note=note,
                )
            )

    for m in movements:
        db.add(m)
    product.updated_at = datetime.utcnow()
    await db.flush()

    if movements:
        logger.info(
            f"📦 Stock adjusted for product {product.id} by admin {actor.id}: "
            + ", ".join(f"{m.size or 'all'} {m.quantity:+d}" for m in movements)
        )
    return product, movements


async def set_out_of_stock(db: AsyncSession, *, product_id: int, is_out_of_stock: bool) -> Product:
    """Manual sold-out override; stock figures are untouched."""
    product = await get_product(db, product_id)
    product.is_out_of_stock = is_out_of_stock
    product.updated_at = datetime.utcnow()
    await db.flush()
    logger.info(f"Product {product.id} out-of-stock override set to {is_out_of_stock}")
    return product


async def list_movements(
    db: AsyncSession,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    if movement_type and movement_type not in {t.value for t in StockMovementType}:
        raise ValidationError(f"unknown movement type '{movement_type}'", field="type")

    conditions = []
    if product_id is not None:
        conditions.append(StockMovement.product_id == product_id)
    if movement_type:
        conditions.append(StockMovement.type == movement_type)

    total = (await db.execute(select(func.count(StockMovement.id)).where(*conditions))).scalar() or 0
    res = await db.execute(
        select(StockMovement)
        .where(*conditions)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def _load_products(db: AsyncSession, product_ids: list[int]) -> dict[int, Product]:
    res = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    return {p.id: p for p in res.scalars().all()}


async def apply_sale(db: AsyncSession, *, order: Order) -> list[StockMovement]:
    """
    Take stock for every line of a newly placed order.

    Raises ConflictError when a size no longer has enough units; nothing is
    flushed in that case.
    """
    products = await _load_products(db, [i.product_id for i in order.items])
    for item in order.items:
        if item.product_id not in products:
            raise NotFoundError("Product", str(item.product_id))
    check_availability([(products[i.product_id], i.size, i.quantity) for i in order.items])

    movements = []
    for item in order.items:
        product = products[item.product_id]
        _apply_delta(product, item.size, -item.quantity)
        movements.append(
            _movement(
                product,
                type=StockMovementType.SALE.value,
                quantity=-item.quantity,
                size=item.size,
                order=order,
                note=f"Order {order.display_order_id}",
            )
        )
    for m in movements:
        db.add(m)
    await db.flush()
    return movements


async def restore_stock(
    db: AsyncSession,
    *,
    order: Order,
    movement_type: str,
    performed_by: int | None = None,
    note: str = "",
) -> list[StockMovement]:
    """
    Put an order's units back on the shelf.

    Skipped if the order's stock was already restored once (cancellation,
    payment failure and refund can all reach the same order).
    """
    already = await db.execute(
        select(func.count(StockMovement.id)).where(
            StockMovement.order_id == order.id,
            StockMovement.type.in_([
                StockMovementType.CANCELLATION.value,
                StockMovementType.PAYMENT_FAILED.value,
                StockMovementType.RETURN.value,
            ]),
        )
    )
    if (already.scalar() or 0) > 0:
        logger.info(f"Stock for order {order.display_order_id} already restored; skipping")
        return []

    sold = await db.execute(
        select(func.count(StockMovement.id)).where(
            StockMovement.order_id == order.id,
            StockMovement.type == StockMovementType.SALE.value,
        )
    )
    if (sold.scalar() or 0) == 0:
        return []

    products = await _load_products(db, [i.product_id for i in order.items])
    movements = []
    for item in order.items:
        product = products.get(item.product_id)
        if product is None:
            continue
        _apply_delta(product, item.size, item.quantity)
        movements.append(
            _movement(
                product,
                type=movement_type,
                quantity=item.quantity,
                size=item.size,
                order=order,
                performed_by=performed_by,
                note=note or f"Order {order.display_order_id}",
            )
        )
    for m in movements:
        db.add(m)
    await db.flush()
    logger.info(f"Stock restored for order {order.display_order_id} ({movement_type}, {len(movements)} lines)")
    return movements


def _apply_delta(product: Product, size: str | None, delta: int) -> None:
    if product.sizes:
        row = next((s for s in product.sizes if s.size == size), None)
        if row is None:
            row = ProductSize(size=size, stock=0)
            product.sizes.append(row)
        current = row.stock
    else:
        row = None
        current = product.stock
    if current + delta < 0:
        raise ConflictError(
            f"Only {current} left of {product.name} (size {size or 'any'})",
            details={"product_id": product.id, "size": size, "available": current},
        )
    if row is not None:
        row.stock = current + delta
        _recompute_aggregate(product)
    else:
        product.stock = current + delta
    product.updated_at = datetime.utcnow()
