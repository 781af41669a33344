"""
Admin marketing endpoints — coupons, review moderation, notification
broadcasts and the contact form inbox.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_admin
from domain.enums import ContactStatus, CouponType, NotificationTarget, NotificationType
from domain.responses import paginated_response, success_response
from models import ContactMessageOut, CouponOut, NotificationHistoryOut, ReviewOut, dump
from services import contact_service, coupon_service, notification_service, review_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin-marketing"])


class CouponCreateRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=30)
    type: CouponType
    value: float = Field(..., gt=0)
    max_discount: float | None = Field(default=None, gt=0)
    min_order: float = Field(0, ge=0)
    valid_from: datetime | None = None
    expiry: datetime
    is_active: bool = True
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    first_order_only: bool = False
    applicable_categories: list[str] = Field(default_factory=list)
    description: str = Field("", max_length=500)


class CouponUpdateRequest(BaseModel):
    code: str | None = Field(default=None, min_length=3, max_length=30)
    type: CouponType | None = None
    value: float | None = Field(default=None, gt=0)
    max_discount: float | None = Field(default=None, gt=0)
    min_order: float | None = Field(default=None, ge=0)
    valid_from: datetime | None = None
    expiry: datetime | None = None
    is_active: bool | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    first_order_only: bool | None = None
    applicable_categories: list[str] | None = None
    description: str | None = Field(default=None, max_length=500)


class ReplyRequest(BaseModel):
    reply: str = Field(..., min_length=1, max_length=1000)


class NotesRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class NotificationSendRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    body: str = Field(..., min_length=1, max_length=1000)
    target: NotificationTarget
    type: NotificationType = NotificationType.PROMOTION
    user_ids: list[int] | None = None
    data: dict = Field(default_factory=dict)
    image_url: str = Field("", max_length=500)


def _naive_utc(value: datetime | None) -> datetime | None:
    # Stored as naive UTC like every other timestamp
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _coupon_data(request: BaseModel, *, exclude_unset: bool) -> dict:
    data = request.model_dump(mode="python", exclude_unset=exclude_unset, exclude={"code"})
    if "type" in data and data["type"] is not None:
        data["type"] = data["type"].value
    for field in ("valid_from", "expiry"):
        if data.get(field) is not None:
            data[field] = _naive_utc(data[field])
    return data


# ── Coupons ─────────────────────────────────────────────────────────

@router.get("/coupons")
async def list_coupons(
    active: bool | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    coupons = await coupon_service.list_coupons(db, active=active)
    return success_response(data=[dump(CouponOut, c) for c in coupons], meta={"total": len(coupons)})


@router.get("/coupons/stats")
async def coupon_stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data=await coupon_service.coupon_stats(db))


@router.post("/coupons", status_code=201)
async def create_coupon(
    request: CouponCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    coupon = await coupon_service.create_coupon(
        db, code=request.code, data=_coupon_data(request, exclude_unset=False)
    )
    await db.commit()
    return success_response(data=dump(CouponOut, coupon))


@router.get("/coupons/{coupon_id}")
async def get_coupon(
    coupon_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=dump(CouponOut, await coupon_service.get_coupon(db, coupon_id)))


@router.patch("/coupons/{coupon_id}")
async def update_coupon(
    coupon_id: int,
    request: CouponUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    data = _coupon_data(request, exclude_unset=True)
    if request.code:
        data["code"] = request.code
    coupon = await coupon_service.update_coupon(db, coupon_id=coupon_id, data=data)
    await db.commit()
    return success_response(data=dump(CouponOut, coupon))


@router.post("/coupons/{coupon_id}/toggle")
async def toggle_coupon(
    coupon_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    coupon = await coupon_service.toggle_coupon(db, coupon_id=coupon_id)
    await db.commit()
    return success_response(data=dump(CouponOut, coupon))


@router.delete("/coupons/{coupon_id}")
async def delete_coupon(
    coupon_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await coupon_service.delete_coupon(db, coupon_id=coupon_id)
    await db.commit()
    return success_response(data={"id": coupon_id, "deleted": True})


# ── Reviews ─────────────────────────────────────────────────────────

def _admin_review(review) -> dict:
    return {
        **dump(ReviewOut, review),
        "admin_notes": review.admin_notes,
        "user": {"id": review.user_id, "name": review.user.name, "email": review.user.email} if review.user else None,
    }


@router.get("/reviews")
async def list_reviews(
    product_id: int | None = Query(None),
    rating: int | None = Query(None, ge=1, le=5),
    hidden: bool | None = Query(None),
    replied: bool | None = Query(None),
    search: str | None = Query(None, max_length=100),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reviews, total = await review_service.list_admin_reviews(
        db,
        product_id=product_id,
        rating=rating,
        hidden=hidden,
        replied=replied,
        search=search,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        [_admin_review(r) for r in reviews], limit=page["limit"], offset=page["offset"], total=total
    )


@router.post("/reviews/{review_id}/toggle-hidden")
async def toggle_hidden(
    review_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.toggle_hidden(db, review_id=review_id)
    await db.commit()
    return success_response(data=_admin_review(review))


@router.put("/reviews/{review_id}/reply")
async def reply(
    review_id: int,
    request: ReplyRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.reply(db, review_id=review_id, text=request.reply)
    await db.commit()
    return success_response(data=_admin_review(review))


@router.delete("/reviews/{review_id}/reply")
async def delete_reply(
    review_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.delete_reply(db, review_id=review_id)
    await db.commit()
    return success_response(data=_admin_review(review))


@router.put("/reviews/{review_id}/notes")
async def set_notes(
    review_id: int,
    request: NotesRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.set_admin_notes(db, review_id=review_id, notes=request.notes)
    await db.commit()
    return success_response(data=_admin_review(review))


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await review_service.delete_review(db, review_id=review_id)
    await db.commit()
    return success_response(data={"id": review_id, "deleted": True})


# ── Notifications ───────────────────────────────────────────────────

@router.get("/notifications/target-count")
async def target_count(
    target: NotificationTarget = Query(...),
    user_ids: list[int] | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    count = await notification_service.target_count(db, target=target.value, user_ids=user_ids)
    return success_response(data={"target": target.value, "count": count})


@router.post("/notifications/send", status_code=201)
async def send_notification(
    request: NotificationSendRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    history = await notification_service.send(
        db,
        title=request.title,
        body=request.body,
        target=request.target.value,
        sent_by=admin,
        type=request.type.value,
        user_ids=request.user_ids,
        data=request.data,
        image_url=request.image_url,
    )
    await db.commit()
    return success_response(data=dump(NotificationHistoryOut, history))


@router.get("/notifications/history")
async def notification_history(
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items, total = await notification_service.list_history(db, limit=page["limit"], offset=page["offset"])
    return paginated_response(
        [dump(NotificationHistoryOut, h) for h in items], limit=page["limit"], offset=page["offset"], total=total
    )


# ── Contact inbox ───────────────────────────────────────────────────

class ContactStatusRequest(BaseModel):
    status: ContactStatus


@router.get("/contact-messages")
async def list_contact_messages(
    status: ContactStatus | None = Query(None),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items, total = await contact_service.list_messages(
        db, status=status.value if status else None, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [dump(ContactMessageOut, m) for m in items], limit=page["limit"], offset=page["offset"], total=total
    )


@router.get("/contact-messages/unread-count")
async def contact_unread_count(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"unread": await contact_service.count_unread(db)})


@router.patch("/contact-messages/{message_id}")
async def update_contact_message(
    message_id: int,
    request: ContactStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    msg = await contact_service.set_status(db, message_id=message_id, status=request.status.value)
    await db.commit()
    return success_response(data=dump(ContactMessageOut, msg))
