"""
Admin dashboard endpoints — stat cards, analytics reports and user
management.
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_admin
from domain.enums import UserRole
from domain.responses import paginated_response, success_response
from models import UserOut, dump
from services import analytics_service, auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin-dashboard"])


class RoleRequest(BaseModel):
    role: UserRole


# ── Analytics ───────────────────────────────────────────────────────

@router.get("/stats")
async def stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data=await analytics_service.admin_stats(db))


@router.get("/analytics/summary")
async def summary(
    days: int = Query(7, ge=1, le=analytics_service.MAX_PERIOD_DAYS),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.summary(db, days=days))


@router.get("/analytics/funnel")
async def funnel(
    days: int = Query(7, ge=1, le=analytics_service.MAX_PERIOD_DAYS),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.funnel(db, days=days))


@router.get("/analytics/devices")
async def devices(
    days: int = Query(7, ge=1, le=analytics_service.MAX_PERIOD_DAYS),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.device_breakdown(db, days=days))


@router.get("/analytics/revenue")
async def revenue(
    days: int = Query(30, ge=1, le=analytics_service.MAX_PERIOD_DAYS),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.revenue_by_day(db, days=days))


@router.get("/analytics/categories")
async def categories(
    days: int = Query(30, ge=1, le=analytics_service.MAX_PERIOD_DAYS),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.sales_by_category(db, days=days))


# ── Users ───────────────────────────────────────────────────────────

@router.get("/users")
async def list_users(
    search: str | None = Query(None, max_length=100),
    role: UserRole | None = Query(None),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await auth_service.list_users(
        db,
        search=search,
        role=role.value if role else None,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        [{**dump(UserOut, r["user"]), "order_count": r["order_count"]} for r in rows],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.patch("/users/{user_id}/role")
async def set_role(
    user_id: int,
    request: RoleRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.set_role(db, user_id=user_id, role=request.role.value, actor=admin)
    await db.commit()
    return success_response(data=dump(UserOut, user))


@router.post("/users/{user_id}/toggle-block")
async def toggle_block(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.toggle_block(db, user_id=user_id, actor=admin)
    await db.commit()
    return success_response(data=dump(UserOut, user))
