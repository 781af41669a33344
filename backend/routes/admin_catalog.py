"""
Admin catalog endpoints — product management, categories and the
inventory screen.

Stock never changes through the product endpoints; it moves through
/admin/inventory so every edit lands in the stock movement ledger.
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_admin
from domain.responses import paginated_response, success_response
from models import ProductImage, ProductOut, SizeStock, StockMovementOut, dump
from services import category_service, inventory_service, product_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin-catalog"])


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str | None = Field(default=None, min_length=2, max_length=200)
    description: str = Field("", max_length=5000)
    specifications: str = Field("", max_length=5000)
    material_and_care: str = Field("", max_length=5000)
    shipping_and_returns: str = Field("", max_length=5000)
    category: str = Field(..., min_length=1, max_length=100)
    brand: str | None = Field(default=None, max_length=100)
    sku: str | None = Field(default=None, max_length=100)
    price: float = Field(..., gt=0)
    compare_price: float | None = Field(default=None, gt=0)
    stock: int = Field(0, ge=0)
    sizes: list[SizeStock] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    images: list[ProductImage] = Field(default_factory=list)
    is_active: bool = True
    featured: bool = False


class ProductUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    slug: str | None = Field(default=None, min_length=2, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    specifications: str | None = Field(default=None, max_length=5000)
    material_and_care: str | None = Field(default=None, max_length=5000)
    shipping_and_returns: str | None = Field(default=None, max_length=5000)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    brand: str | None = Field(default=None, max_length=100)
    sku: str | None = Field(default=None, max_length=100)
    price: float | None = Field(default=None, gt=0)
    compare_price: float | None = Field(default=None, gt=0)
    colors: list[str] | None = None
    tags: list[str] | None = None
    images: list[ProductImage] | None = None
    is_active: bool | None = None
    featured: bool | None = None


class ProductStatusRequest(BaseModel):
    is_active: bool | None = None
    is_out_of_stock: bool | None = None


class BulkStatusRequest(ProductStatusRequest):
    product_ids: list[int] = Field(..., min_length=1, max_length=200)


class StockUpdateRequest(BaseModel):
    stock: int | None = Field(default=None, ge=0)
    sizes: list[SizeStock] | None = None
    note: str = Field("", max_length=500)


class OutOfStockRequest(BaseModel):
    is_out_of_stock: bool


def _product_data(product) -> dict:
    return {**dump(ProductOut, product), "stock_status": inventory_service.stock_status(product)}


# ── Products ────────────────────────────────────────────────────────

@router.get("/products")
async def list_products(
    search: str | None = Query(None, max_length=100),
    category: str | None = Query(None),
    status: str | None = Query(None),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    products, total = await product_service.list_admin_products(
        db, search=search, category=category, status=status, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [_product_data(p) for p in products], limit=page["limit"], offset=page["offset"], total=total
    )


@router.post("/products", status_code=201)
async def create_product(
    request: ProductCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.create_product(db, data=request.model_dump())
    await db.commit()
    return success_response(data=_product_data(product))


@router.get("/products/{product_id}")
async def get_product(
    product_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.get_product(db, product_id)
    return success_response(data=_product_data(product))


@router.patch("/products/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.update_product(
        db, product_id=product_id, data=request.model_dump(exclude_unset=True)
    )
    await db.commit()
    return success_response(data=_product_data(product))


@router.post("/products/{product_id}/toggle-active")
async def toggle_active(
    product_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.toggle_active(db, product_id=product_id)
    await db.commit()
    return success_response(data=_product_data(product))


@router.post("/products/{product_id}/toggle-featured")
async def toggle_featured(
    product_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.toggle_featured(db, product_id=product_id)
    await db.commit()
    return success_response(data=_product_data(product))


@router.patch("/products/{product_id}/status")
async def update_product_status(
    product_id: int,
    request: ProductStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.update_status(
        db, product_id=product_id, is_active=request.is_active, is_out_of_stock=request.is_out_of_stock
    )
    await db.commit()
    return success_response(data=_product_data(product))


@router.post("/products/bulk-status")
async def bulk_update_status(
    request: BulkStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    count = await product_service.bulk_update_status(
        db,
        product_ids=request.product_ids,
        is_active=request.is_active,
        is_out_of_stock=request.is_out_of_stock,
    )
    await db.commit()
    return success_response(data={"updated": count})


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.soft_delete_product(db, product_id=product_id)
    await db.commit()
    return success_response(
        data={
            "id": product.id,
            "slug": product.slug,
            "message": f"Product '{product.slug}' soft-deleted (is_active=False)",
        }
    )


# ── Categories ──────────────────────────────────────────────────────

class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str | None = Field(default=None, min_length=2, max_length=100)


class CategoryRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


def _category_out(category) -> dict:
    return {"id": category.id, "name": category.name, "slug": category.slug, "is_active": category.is_active}


@router.get("/categories")
async def list_categories(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    categories = await category_service.list_categories(db)
    return success_response(data=categories, meta={"total": len(categories)})


@router.post("/categories", status_code=201)
async def create_category(
    request: CategoryCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.create_category(db, name=request.name, slug=request.slug)
    await db.commit()
    return success_response(data=_category_out(category))


@router.patch("/categories/{category_id}")
async def rename_category(
    category_id: int,
    request: CategoryRenameRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.rename_category(db, category_id=category_id, name=request.name)
    await db.commit()
    return success_response(data=_category_out(category))


@router.patch("/categories/{category_id}/toggle")
async def toggle_category(
    category_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.toggle_category(db, category_id=category_id)
    await db.commit()
    return success_response(data=_category_out(category))


# ── Inventory ───────────────────────────────────────────────────────

@router.get("/inventory")
async def list_inventory(
    stock_filter: str = Query("all"),
    category: str | None = Query(None),
    search: str | None = Query(None, max_length=100),
    sort: str = Query("stock_asc"),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    products, total, stats = await inventory_service.list_inventory(
        db,
        stock_filter=stock_filter,
        category=category,
        search=search,
        sort=sort,
        limit=page["limit"],
        offset=page["offset"],
    )
    return success_response(
        data={"products": [_product_data(p) for p in products], "stats": stats},
        meta={
            "limit": page["limit"],
            "offset": page["offset"],
            "total": total,
            "hasMore": (page["offset"] + page["limit"]) < total,
        },
    )


@router.get("/inventory/movements")
async def list_movements(
    product_id: int | None = Query(None),
    type: str | None = Query(None),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    movements, total = await inventory_service.list_movements(
        db, product_id=product_id, movement_type=type, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [dump(StockMovementOut, m) for m in movements], limit=page["limit"], offset=page["offset"], total=total
    )


@router.put("/inventory/{product_id}/stock")
async def update_stock(
    product_id: int,
    request: StockUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product, movements = await inventory_service.update_stock(
        db,
        product_id=product_id,
        actor=admin,
        stock=request.stock,
        sizes=[s.model_dump() for s in request.sizes] if request.sizes else None,
        note=request.note,
    )
    await db.commit()
    return success_response(
        data={
            "product": _product_data(product),
            "movements": [dump(StockMovementOut, m) for m in movements],
        }
    )


@router.patch("/inventory/{product_id}/out-of-stock")
async def set_out_of_stock(
    product_id: int,
    request: OutOfStockRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await inventory_service.set_out_of_stock(
        db, product_id=product_id, is_out_of_stock=request.is_out_of_stock
    )
    await db.commit()
    return success_response(data=_product_data(product))
