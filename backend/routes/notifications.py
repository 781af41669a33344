"""
Customer inbox endpoints.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_user
from domain.responses import paginated_response, success_response
from models import NotificationOut, dump
from services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def inbox(
    unread_only: bool = Query(False),
    user: User = Depends(require_user),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    items, total = await notification_service.list_inbox(
        db, user_id=user.id, unread_only=unread_only, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [dump(NotificationOut, n) for n in items], limit=page["limit"], offset=page["offset"], total=total
    )


@router.get("/unread-count")
async def unread_count(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return success_response(data={"unread": await notification_service.unread_count(db, user_id=user.id)})


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    n = await notification_service.mark_read(db, user_id=user.id, notification_id=notification_id)
    await db.commit()
    return success_response(data=dump(NotificationOut, n))


@router.post("/read-all")
async def mark_all_read(user: User = Depends(require_user), db: AsyncSession = Depends(get_db)):
    count = await notification_service.mark_all_read(db, user_id=user.id)
    await db.commit()
    return success_response(data={"marked": count})
