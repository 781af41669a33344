"""
Notification service — per-user inbox and admin broadcasts.

Notifications are persisted in-app only; there is no device push delivery.
Each admin send is recorded once in notification_history along with the
number of inboxes it reached.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Notification, NotificationHistory, Order, User
from domain.enums import NotificationTarget, NotificationType, OrderStatus, UserRole
from domain.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Inbox copy for order lifecycle events
ORDER_EVENT_MESSAGES = {
    OrderStatus.CONFIRMED.value: (
        NotificationType.ORDER_PLACED.value,
        "Order placed",
        "Your order {order_id} has been placed. We'll let you know when it ships.",
    ),
    OrderStatus.SHIPPED.value: (
        NotificationType.ORDER_SHIPPED.value,
        "Order shipped",
        "Your order {order_id} is on its way.",
    ),
    OrderStatus.DELIVERED.value: (
        NotificationType.ORDER_DELIVERED.value,
        "Order delivered",
        "Your order {order_id} has been delivered. Enjoy your new pair!",
    ),
    OrderStatus.CANCELLED.value: (
        NotificationType.ORDER_CANCELLED.value,
        "Order cancelled",
        "Your order {order_id} has been cancelled.",
    ),
}


async def create_notification(
    db: AsyncSession,
    *,
    user_id: int,
    title: str,
    body: str,
    type: str = NotificationType.SYSTEM.value,
    data: dict | None = None,
    image_url: str = "",
) -> Notification:
    n = Notification(
        user_id=user_id,
        title=title,
        body=body,
        type=type,
        data=data or {},
        image_url=image_url,
        is_read=False,
        created_at=datetime.utcnow(),
    )
    db.add(n)
    await db.flush()
    return n


async def notify_order_event(db: AsyncSession, order: Order, status: str) -> Notification | None:
    """Drop an inbox entry for an order status the customer cares about."""
    message = ORDER_EVENT_MESSAGES.get(status)
    if not message:
        return None
    ntype, title, body = message
    return await create_notification(
        db,
        user_id=order.user_id,
        title=title,
        body=body.format(order_id=order.display_order_id),
        type=ntype,
        data={"screen": "order", "order_id": order.display_order_id},
    )


async def list_inbox(
    db: AsyncSession,
    *,
    user_id: int,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    conditions = [Notification.user_id == user_id]
    if unread_only:
        conditions.append(Notification.is_read == False)  # noqa: E712
    total = (await db.execute(select(func.count(Notification.id)).where(*conditions))).scalar() or 0
    res = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def unread_count(db: AsyncSession, *, user_id: int) -> int:
    res = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return res.scalar() or 0


async def mark_read(db: AsyncSession, *, user_id: int, notification_id: int) -> Notification:
    res = await db.execute(
        select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    n = res.scalar_one_or_none()
    if not n:
        raise NotFoundError("Notification", str(notification_id))
    n.is_read = True
    await db.flush()
    return n


async def mark_all_read(db: AsyncSession, *, user_id: int) -> int:
    res = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    return res.rowcount or 0


async def _resolve_target(db: AsyncSession, target: str, user_ids: list[int] | None) -> list[int]:
    if target == NotificationTarget.ALL.value:
        q = select(User.id).where(User.is_blocked == False)  # noqa: E712
    elif target == NotificationTarget.CUSTOMERS.value:
        # Customers are accounts that have placed at least one order
        q = (
            select(User.id)
            .where(
                User.is_blocked == False,  # noqa: E712
                User.role == UserRole.CUSTOMER.value,
                User.id.in_(select(Order.user_id).distinct()),
            )
        )
    elif target == NotificationTarget.USERS.value:
        if not user_ids:
            raise ValidationError("at least one user id is required for target 'users'", field="user_ids")
        q = select(User.id).where(User.id.in_(user_ids), User.is_blocked == False)  # noqa: E712
    else:
        raise ValidationError(f"unknown target '{target}'", field="target")
    res = await db.execute(q.order_by(User.id))
    return [row[0] for row in res.all()]


async def target_count(db: AsyncSession, *, target: str, user_ids: list[int] | None = None) -> int:
    return len(await _resolve_target(db, target, user_ids))


async def send(
    db: AsyncSession,
    *,
    title: str,
    body: str,
    target: str,
    sent_by: User,
    type: str = NotificationType.PROMOTION.value,
    user_ids: list[int] | None = None,
    data: dict | None = None,
    image_url: str = "",
) -> NotificationHistory:
    if type not in {t.value for t in NotificationType}:
        raise ValidationError(f"unknown notification type '{type}'", field="type")

    recipients = await _resolve_target(db, target, user_ids)
    now = datetime.utcnow()
    db.add_all([
        Notification(
            user_id=uid,
            title=title,
            body=body,
            type=type,
            data=data or {},
            image_url=image_url,
            is_read=False,
            created_at=now,
        )
        for uid in recipients
    ])

    history = NotificationHistory(
        title=title,
        body=body,
        type=type,
        target=target,
        recipient_count=len(recipients),
        data=data or {},
        image_url=image_url,
        sent_by=sent_by.id,
        created_at=now,
    )
    db.add(history)
    await db.flush()
    logger.info(f"📣 Notification '{title}' sent to {len(recipients)} user(s) (target={target}) by admin {sent_by.id}")
    return history


async def list_history(db: AsyncSession, *, limit: int = 20, offset: int = 0) -> tuple[list[NotificationHistory], int]:
    total = (await db.execute(select(func.count(NotificationHistory.id)))).scalar() or 0
    res = await db.execute(
        select(NotificationHistory)
        .order_by(NotificationHistory.created_at.desc(), NotificationHistory.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total
