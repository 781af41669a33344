"""
Admin content endpoints — storefront filters, app banners and the CMS
site settings.
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_admin
from domain.enums import BannerLinkType, BannerPlatform, FilterType
from domain.responses import success_response
from models import BannerOut, FilterOut, dump
from services import banner_service, filter_service, settings_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin-content"])


class FilterCreateRequest(BaseModel):
    type: FilterType
    name: str = Field(..., min_length=1, max_length=100)
    value: str | None = Field(default=None, max_length=100)
    display_order: int = Field(0, ge=0)
    is_active: bool = True
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, gt=0)


class FilterUpdateRequest(BaseModel):
    type: FilterType | None = None
    name: str | None = Field(default=None, min_length=1, max_length=100)
    value: str | None = Field(default=None, max_length=100)
    display_order: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, gt=0)


class BannerRequest(BaseModel):
    image_url: str | None = Field(default=None, min_length=1, max_length=500)
    image_key: str | None = Field(default=None, max_length=255)
    blurhash: str | None = Field(default=None, max_length=100)
    link_type: BannerLinkType | None = None
    link_value: str | None = Field(default=None, max_length=500)
    title: str | None = Field(default=None, max_length=120)
    subtitle: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None
    order: int | None = Field(default=None, ge=0)
    platform: BannerPlatform | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class BannerCreateRequest(BannerRequest):
    image_url: str = Field(..., min_length=1, max_length=500)


class ReorderRequest(BaseModel):
    banner_ids: list[int] = Field(..., min_length=1, max_length=100)


class SettingUpdateRequest(BaseModel):
    value: Any


class SettingsBulkRequest(BaseModel):
    settings: dict[str, Any] = Field(..., min_length=1)


def _plain(data: dict) -> dict:
    """Enum members to their values, as stored on the row."""
    return {k: (v.value if hasattr(v, "value") else v) for k, v in data.items()}


# ── Filters ─────────────────────────────────────────────────────────

@router.get("/filters")
async def list_filters(
    type: FilterType | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    filters = await filter_service.list_filters(db, filter_type=type.value if type else None)
    return success_response(data=[dump(FilterOut, f) for f in filters], meta={"total": len(filters)})


@router.post("/filters", status_code=201)
async def create_filter(
    request: FilterCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    f = await filter_service.create_filter(db, data=_plain(request.model_dump()))
    await db.commit()
    return success_response(data=dump(FilterOut, f))


@router.patch("/filters/{filter_id}")
async def update_filter(
    filter_id: int,
    request: FilterUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    f = await filter_service.update_filter(
        db, filter_id=filter_id, data=_plain(request.model_dump(exclude_unset=True))
    )
    await db.commit()
    return success_response(data=dump(FilterOut, f))


@router.post("/filters/{filter_id}/toggle")
async def toggle_filter(
    filter_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    f = await filter_service.toggle_filter(db, filter_id=filter_id)
    await db.commit()
    return success_response(data=dump(FilterOut, f))


@router.delete("/filters/{filter_id}")
async def delete_filter(
    filter_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await filter_service.delete_filter(db, filter_id=filter_id)
    await db.commit()
    return success_response(data={"id": filter_id, "deleted": True})


# ── Banners ─────────────────────────────────────────────────────────

@router.get("/banners")
async def list_banners(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    banners = await banner_service.list_banners(db)
    return success_response(data=[dump(BannerOut, b) for b in banners], meta={"total": len(banners)})


@router.post("/banners", status_code=201)
async def create_banner(
    request: BannerCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    banner = await banner_service.create_banner(db, data=_plain(request.model_dump()))
    await db.commit()
    return success_response(data=dump(BannerOut, banner))


@router.put("/banners/reorder")
async def reorder_banners(
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    banners = await banner_service.reorder(db, banner_ids=request.banner_ids)
    await db.commit()
    return success_response(data=[dump(BannerOut, b) for b in banners])


@router.patch("/banners/{banner_id}")
async def update_banner(
    banner_id: int,
    request: BannerRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    banner = await banner_service.update_banner(
        db, banner_id=banner_id, data=_plain(request.model_dump(exclude_unset=True))
    )
    await db.commit()
    return success_response(data=dump(BannerOut, banner))


@router.delete("/banners/{banner_id}")
async def delete_banner(
    banner_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await banner_service.delete_banner(db, banner_id=banner_id)
    await db.commit()
    return success_response(data={"id": banner_id, "deleted": True})


# ── Site settings ───────────────────────────────────────────────────

def _setting_data(row) -> dict:
    return {
        "key": row.key,
        "category": row.category,
        "value": row.value,
        "is_public": row.is_public,
        "version": row.version,
        "updated_by": row.updated_by,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("/settings")
async def list_settings(
    category: str | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items = await settings_service.list_settings(db, category=category)
    return success_response(data=items, meta={"total": len(items)})


@router.put("/settings")
async def bulk_update_settings(
    request: SettingsBulkRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await settings_service.bulk_update(db, updates=request.settings, actor=admin)
    await db.commit()
    return success_response(data=[_setting_data(r) for r in rows])


@router.get("/settings/{key}/history")
async def setting_history(
    key: str,
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entries = await settings_service.history(db, key=key, limit=limit)
    return success_response(
        data=[
            {
                "key": e.key,
                "old_value": e.old_value,
                "new_value": e.new_value,
                "version": e.version,
                "changed_by": e.changed_by,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in entries
        ]
    )


@router.put("/settings/{key}")
async def update_setting(
    key: str,
    request: SettingUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await settings_service.update_setting(db, key=key, value=request.value, actor=admin)
    await db.commit()
    return success_response(data=_setting_data(row))


@router.post("/settings/{key}/reset")
async def reset_setting(
    key: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await settings_service.reset_setting(db, key=key, actor=admin)
    await db.commit()
    return success_response(data=_setting_data(row))
