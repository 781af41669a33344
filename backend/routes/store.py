"""
Storefront endpoints — public catalog, filter sidebar, banners, CMS
settings/theme, product reviews, category menu and pincode delivery check.
No authentication required.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, pagination_params
from domain.responses import paginated_response, success_response
from middleware.rate_limit import rate_limit
from models import BannerOut, FilterOut, ProductOut, ReviewOut, dump
from services import (
    banner_service,
    category_service,
    filter_service,
    product_service,
    review_service,
    settings_service,
    shipment_service,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["store"])


@router.get("/products")
async def list_products(
    category: str | None = Query(None),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    size: str | None = Query(None),
    color: str | None = Query(None),
    featured: bool | None = Query(None),
    search: str | None = Query(None, max_length=100),
    sort: str = Query("newest"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    products, total = await product_service.list_store_products(
        db,
        category=category,
        min_price=min_price,
        max_price=max_price,
        size=size,
        color=color,
        featured=featured,
        search=search,
        sort=sort,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        [dump(ProductOut, p) for p in products],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/products/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return success_response(data=await product_service.list_categories(db))


@router.get("/categories")
async def category_menu(db: AsyncSession = Depends(get_db)):
    """Admin-managed categories that are switched on, with product counts."""
    return success_response(data=await category_service.list_categories(db, active_only=True))


@router.get("/pincode/{pincode}")
async def check_pincode(pincode: str, _rate=Depends(rate_limit(max_requests=30, window_seconds=60))):
    """Can we deliver here, and is cash on delivery available?"""
    return success_response(data=await shipment_service.check_pincode(pincode=pincode))


@router.get("/products/{slug}")
async def get_product(slug: str, db: AsyncSession = Depends(get_db)):
    product = await product_service.get_store_product_by_slug(db, slug)
    return success_response(data=dump(ProductOut, product))


@router.get("/products/{product_id}/reviews")
async def product_reviews(
    product_id: int,
    sort: str = Query("newest"),
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    result = await review_service.product_reviews(
        db, product_id=product_id, sort=sort, limit=limit, offset=offset
    )
    return success_response(
        data={
            "reviews": [
                {**dump(ReviewOut, r), "user_name": r.user.name if r.user else None}
                for r in result["reviews"]
            ],
            "average_rating": result["average_rating"],
            "distribution": result["distribution"],
        },
        meta={"limit": limit, "offset": offset, "total": result["total"]},
    )


@router.get("/filters")
async def public_filters(db: AsyncSession = Depends(get_db)):
    grouped = await filter_service.public_filters(db)
    return success_response(
        data={ftype: [dump(FilterOut, f) for f in items] for ftype, items in grouped.items()}
    )


@router.get("/banners")
async def active_banners(
    platform: str = Query("web"),
    db: AsyncSession = Depends(get_db),
):
    banners = await banner_service.active_banners(db, platform=platform)
    return success_response(data=[dump(BannerOut, b) for b in banners])


@router.get("/settings")
async def public_settings(db: AsyncSession = Depends(get_db)):
    return success_response(data=await settings_service.public_settings(db))


@router.get("/settings/theme")
async def theme(db: AsyncSession = Depends(get_db)):
    return success_response(data=await settings_service.theme_css(db))
