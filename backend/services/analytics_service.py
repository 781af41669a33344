"""
Analytics service — storefront event ingestion and the admin dashboards.

Revenue on the dashboard stat cards counts delivered orders only; the
period summaries count every order that was not cancelled or left unpaid.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import AnalyticsEvent, Order, OrderItem, Product, User
from domain.constants import FUNNEL_STEPS, REVENUE_ORDER_STATUSES
from domain.enums import AnalyticsEventType, OrderStatus, PaymentMethod, UserRole
from domain.errors import ValidationError
from utils.device import detect_device_type

logger = logging.getLogger(__name__)

MAX_BATCH_EVENTS = 50
MAX_PERIOD_DAYS = 365


def _since(days: int) -> datetime:
    if not 1 <= days <= MAX_PERIOD_DAYS:
        raise ValidationError(f"must be between 1 and {MAX_PERIOD_DAYS}", field="days")
    return datetime.utcnow() - timedelta(days=days)


def _event(data: dict, *, user_id: int | None, device_type: str, now: datetime) -> AnalyticsEvent:
    event_type = data.get("event_type")
    if event_type not in {e.value for e in AnalyticsEventType}:
        raise ValidationError(f"unknown event '{event_type}'", field="event_type")
    if not data.get("session_id"):
        raise ValidationError("is required", field="session_id")
    return AnalyticsEvent(
        event_type=event_type,
        session_id=str(data["session_id"])[:100],
        user_id=user_id,
        product_id=data.get("product_id"),
        path=(data.get("path") or None) and str(data["path"])[:500],
        referrer=(data.get("referrer") or None) and str(data["referrer"])[:500],
        device_type=device_type,
        created_at=now,
    )


async def record_events(
    db: AsyncSession,
    *,
    events: list[dict],
    user_agent: str | None,
    user_id: int | None = None,
) -> int:
    """Store one or more events; the device type comes from the User-Agent."""
    if not events:
        raise ValidationError("at least one event is required", field="events")
    if len(events) > MAX_BATCH_EVENTS:
        raise ValidationError(f"at most {MAX_BATCH_EVENTS} events per batch", field="events")
    device_type = detect_device_type(user_agent)
    now = datetime.utcnow()
    db.add_all([_event(e, user_id=user_id, device_type=device_type, now=now) for e in events])
    await db.flush()
    return len(events)


async def admin_stats(db: AsyncSession) -> dict:
    """Stat cards on the admin home screen."""
    by_status = dict(
        (await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))).all()
    )
    by_method = dict(
        (await db.execute(select(Order.payment_method, func.count(Order.id)).group_by(Order.payment_method))).all()
    )
    delivered_revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Order.total), 0.0)).where(Order.status == OrderStatus.DELIVERED.value)
        )
    ).scalar()
    low_stock = (
        await db.execute(
            select(func.count(Product.id)).where(
                Product.is_active == True,  # noqa: E712
                Product.stock <= settings.low_stock_threshold,
            )
        )
    ).scalar()

    return {
        "total_orders": sum(by_status.values()),
        "pending_orders": by_status.get(OrderStatus.PENDING_PAYMENT.value, 0)
        + by_status.get(OrderStatus.CONFIRMED.value, 0),
        "processing_orders": by_status.get(OrderStatus.PROCESSING.value, 0),
        "shipped_orders": by_status.get(OrderStatus.SHIPPED.value, 0),
        "delivered_orders": by_status.get(OrderStatus.DELIVERED.value, 0),
        "cancelled_orders": by_status.get(OrderStatus.CANCELLED.value, 0),
        "total_revenue": round(float(delivered_revenue or 0.0), 2),
        "payment_split": {
            PaymentMethod.COD.value: by_method.get(PaymentMethod.COD.value, 0),
            PaymentMethod.RAZORPAY.value: by_method.get(PaymentMethod.RAZORPAY.value, 0),
        },
        "low_stock_products": low_stock or 0,
    }


async def summary(db: AsyncSession, *, days: int = 7) -> dict:
    since = _since(days)

    revenue_row = (
        await db.execute(
            select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0.0)).where(
                Order.created_at >= since,
                Order.status.in_(REVENUE_ORDER_STATUSES),
            )
        )
    ).one()
    orders, revenue = revenue_row[0] or 0, float(revenue_row[1] or 0.0)

    status_breakdown = dict(
        (
            await db.execute(
                select(Order.status, func.count(Order.id)).where(Order.created_at >= since).group_by(Order.status)
            )
        ).all()
    )
    new_customers = (
        await db.execute(
            select(func.count(User.id)).where(User.created_at >= since, User.role == UserRole.CUSTOMER.value)
        )
    ).scalar() or 0

    event_counts = dict(
        (
            await db.execute(
                select(AnalyticsEvent.event_type, func.count(AnalyticsEvent.id))
                .where(AnalyticsEvent.created_at >= since)
                .group_by(AnalyticsEvent.event_type)
            )
        ).all()
    )
    unique_visitors = (
        await db.execute(
            select(func.count(func.distinct(AnalyticsEvent.session_id))).where(AnalyticsEvent.created_at >= since)
        )
    ).scalar() or 0

    top_products_res = await db.execute(
        select(Product.id, Product.name, func.count(AnalyticsEvent.id).label("views"))
        .join(Product, Product.id == AnalyticsEvent.product_id)
        .where(
            AnalyticsEvent.created_at >= since,
            AnalyticsEvent.event_type == AnalyticsEventType.PRODUCT_VIEW.value,
        )
        .group_by(Product.id, Product.name)
        .order_by(func.count(AnalyticsEvent.id).desc())
        .limit(10)
    )
    top_pages_res = await db.execute(
        select(AnalyticsEvent.path, func.count(AnalyticsEvent.id))
        .where(
            AnalyticsEvent.created_at >= since,
            AnalyticsEvent.event_type == AnalyticsEventType.PAGE_VIEW.value,
            AnalyticsEvent.path.is_not(None),
        )
        .group_by(AnalyticsEvent.path)
        .order_by(func.count(AnalyticsEvent.id).desc())
        .limit(10)
    )

    return {
        "period": f"{days}d",
        "since": since.isoformat(),
        "revenue": round(revenue, 2),
        "orders": orders,
        "average_order_value": round(revenue / orders, 2) if orders else 0.0,
        "new_customers": new_customers,
        "status_breakdown": status_breakdown,
        "total_events": sum(event_counts.values()),
        "unique_visitors": unique_visitors,
        "event_counts": event_counts,
        "top_products": [{"product_id": pid, "name": name, "views": views} for pid, name, views in top_products_res.all()],
        "top_pages": [{"path": path, "views": views} for path, views in top_pages_res.all()],
    }


async def funnel(db: AsyncSession, *, days: int = 7) -> dict:
    """Distinct sessions reaching each step, with step-to-step conversion (%)."""
    since = _since(days)
    res = await db.execute(
        select(
            AnalyticsEvent.event_type,
            func.count(AnalyticsEvent.id),
            func.count(func.distinct(AnalyticsEvent.session_id)),
        )
        .where(AnalyticsEvent.created_at >= since, AnalyticsEvent.event_type.in_(FUNNEL_STEPS))
        .group_by(AnalyticsEvent.event_type)
    )
    counts = {event: (total, sessions) for event, total, sessions in res.all()}

    steps = []
    for idx, step in enumerate(FUNNEL_STEPS):
        total, sessions = counts.get(step, (0, 0))
        entry = {"step": step, "total": total, "sessions": sessions}
        if idx > 0:
            prev = steps[idx - 1]["sessions"]
            entry["conversion_rate"] = round(sessions / prev * 100) if prev else 0
        steps.append(entry)

    first = steps[0]["sessions"]
    overall = round(steps[-1]["sessions"] / first * 100, 1) if first else 0.0
    return {"period": f"{days}d", "funnel": steps, "overall_conversion": overall}


async def device_breakdown(db: AsyncSession, *, days: int = 7) -> dict:
    since = _since(days)
    res = await db.execute(
        select(AnalyticsEvent.device_type, func.count(func.distinct(AnalyticsEvent.session_id)))
        .where(AnalyticsEvent.created_at >= since)
        .group_by(AnalyticsEvent.device_type)
    )
    counts = dict(res.all())
    total = sum(counts.values())
    return {
        "period": f"{days}d",
        "devices": [
            {"device_type": d, "sessions": n, "share": round(n / total * 100, 1) if total else 0.0}
            for d, n in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        ],
    }


async def revenue_by_day(db: AsyncSession, *, days: int = 30) -> list[dict]:
    """One row per calendar day in the window, zero-filled."""
    since = _since(days)
    day = func.date(Order.created_at)
    res = await db.execute(
        select(day, func.count(Order.id), func.coalesce(func.sum(Order.total), 0.0))
        .where(Order.created_at >= since, Order.status.in_(REVENUE_ORDER_STATUSES))
        .group_by(day)
    )
    by_day = {str(d): (n, float(r)) for d, n, r in res.all()}

    rows = []
    start = since.date()
    for offset in range(days + 1):
        d = (start + timedelta(days=offset)).isoformat()
        n, r = by_day.get(d, (0, 0.0))
        rows.append({"date": d, "orders": n, "revenue": round(r, 2)})
    return rows


async def sales_by_category(db: AsyncSession, *, days: int = 30) -> list[dict]:
    since = _since(days)
    res = await db.execute(
        select(
            OrderItem.category,
            func.sum(OrderItem.quantity),
            func.sum(OrderItem.quantity * OrderItem.price),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.created_at >= since, Order.status.in_(REVENUE_ORDER_STATUSES))
        .group_by(OrderItem.category)
        .order_by(func.sum(OrderItem.quantity * OrderItem.price).desc())
    )
    return [
        {"category": c or "uncategorized", "units": int(u or 0), "revenue": round(float(r or 0.0), 2)}
        for c, u, r in res.all()
    ]
