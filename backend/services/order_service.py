"""
Order service — checkout, the status state machine, cancellation and
admin order management.

Status flow:

    pending_payment → confirmed → processing → shipped → delivered
            └────────────┴────────────┴───────────┴──→ cancelled

delivered and cancelled are terminal. Every status change goes through
update_status(), which validates the move against ORDER_TRANSITIONS and
applies its side effects (stock restore, COD settlement, inbox entry).
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, OrderCounter, OrderItem, Product, User
from domain.constants import (
    CUSTOMER_CANCELLABLE_STATUSES,
    ORDER_DISPLAY_PREFIX,
    ORDER_DISPLAY_SEQ_BASE,
    ORDER_STATUS_FLOW,
    ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
)
from domain.enums import CancelledBy, OrderStatus, PaymentMethod, PaymentStatus, StockMovementType
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from services import cart_service, coupon_service, inventory_service, notification_service

logger = logging.getLogger(__name__)


def _money(value) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


async def next_display_order_id(db: AsyncSession, now: datetime | None = None) -> str:
    """
    Mint the next ORD-YYMMDD-#### id from the per-day counter.

    The first order of a day gets 1001.
    """
    now = now or datetime.utcnow()
    day = now.strftime("%y%m%d")
    key = f"orders-{day}"

    res = await db.execute(select(OrderCounter).where(OrderCounter.id == key).with_for_update())
    counter = res.scalar_one_or_none()
    if counter is None:
        counter = OrderCounter(id=key, seq=0)
        db.add(counter)
    counter.seq += 1
    await db.flush()
    return f"{ORDER_DISPLAY_PREFIX}-{day}-{ORDER_DISPLAY_SEQ_BASE + counter.seq}"


def shipping_cost_for(amount: float) -> float:
    if amount >= settings.free_shipping_threshold:
        return 0.0
    return settings.flat_shipping_cost


async def create_order(
    db: AsyncSession,
    *,
    user: User,
    shipping_address: dict,
    payment_method: str,
    coupon_code: str | None = None,
) -> Order:
    """
    Turn the user's cart into an order.

    COD orders start confirmed; Razorpay orders wait in pending_payment for
    the payment webhook. Stock is taken immediately in both cases.
    """
    if payment_method not in {m.value for m in PaymentMethod}:
        raise ValidationError(f"unsupported payment method '{payment_method}'", field="payment_method")
    if payment_method == PaymentMethod.COD.value and not settings.cod_enabled:
        raise ValidationError("cash on delivery is currently unavailable", field="payment_method")

    cart_items = await cart_service.get_cart_items(db, user_id=user.id)
    if not cart_items:
        raise ValidationError("Cart is empty")

    subtotal = Decimal("0")
    lines = []
    items = []
    for ci in cart_items:
        p: Product = ci.product
        if not p.is_active or p.is_out_of_stock:
            raise ConflictError(f"{p.name} is no longer available", details={"product_id": p.id})
        line_amount = Decimal(str(p.price)) * ci.quantity
        subtotal += line_amount
        lines.append({"category": p.category, "amount": float(line_amount)})
        items.append(
            OrderItem(
                product_id=p.id,
                name=p.name,
                category=p.category,
                size=ci.size,
                color=(p.colors or [None])[0],
                quantity=ci.quantity,
                price=p.price,
            )
        )
    inventory_service.check_availability([(ci.product, ci.size, ci.quantity) for ci in cart_items])

    discount = Decimal("0")
    applied_code = None
    if coupon_code:
        result = await coupon_service.evaluate(db, code=coupon_code, user_id=user.id, lines=lines)
        if not result["valid"]:
            raise ValidationError(result["message"], field="coupon_code")
        discount = Decimal(str(result["discount"]))
        applied_code = result["coupon"]["code"]

    shipping = Decimal(str(shipping_cost_for(float(subtotal - discount))))
    total = subtotal - discount + shipping

    is_cod = payment_method == PaymentMethod.COD.value
    order = Order(
        display_order_id=await next_display_order_id(db),
        user_id=user.id,
        status=OrderStatus.CONFIRMED.value if is_cod else OrderStatus.PENDING_PAYMENT.value,
        ship_name=shipping_address["name"],
        ship_phone=shipping_address["phone"],
        ship_line1=shipping_address["line1"],
        ship_line2=shipping_address.get("line2"),
        ship_city=shipping_address["city"],
        ship_state=shipping_address["state"],
        ship_pincode=shipping_address["pincode"],
        payment_method=payment_method,
        payment_status=PaymentStatus.PENDING.value,
        subtotal=_money(subtotal),
        discount=_money(discount),
        shipping_cost=_money(shipping),
        total=_money(total),
        coupon_code=applied_code,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
        items=items,
        shipment_events=[],
    )
    order.user = user
    db.add(order)
    await db.flush()

    await inventory_service.apply_sale(db, order=order)
    if applied_code:
        await coupon_service.increment_usage(db, code=applied_code)
    await cart_service.clear(db, user_id=user.id)
    if is_cod:
        await notification_service.notify_order_event(db, order, OrderStatus.CONFIRMED.value)
    await db.flush()

    logger.info(
        f"🛒 Order {order.display_order_id} created: user={user.id} "
        f"total={order.total} method={payment_method} status={order.status}"
    )
    return order


async def get_order(db: AsyncSession, order_id: int) -> Order:
    res = await db.execute(select(Order).where(Order.id == order_id))
    order = res.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", str(order_id))
    return order


async def get_order_by_display_id(db: AsyncSession, display_order_id: str) -> Order:
    res = await db.execute(select(Order).where(Order.display_order_id == display_order_id))
    order = res.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", display_order_id)
    return order


async def get_order_for_user(db: AsyncSession, *, order_id: int, user: User) -> Order:
    order = await get_order(db, order_id)
    if order.user_id != user.id and user.role != "admin":
        # Same response as a missing order so ids cannot be enumerated
        raise NotFoundError("Order", str(order_id))
    return order


async def list_orders(
    db: AsyncSession,
    *,
    status: str | None = None,
    search: str | None = None,
    payment_method: str | None = None,
    user_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Order], int]:
    conditions = []
    if status:
        if status not in {s.value for s in OrderStatus}:
            raise ValidationError(f"unknown status '{status}'", field="status")
        conditions.append(Order.status == status)
    if payment_method:
        conditions.append(Order.payment_method == payment_method)
    if user_id is not None:
        conditions.append(Order.user_id == user_id)

    q_count = select(func.count(Order.id))
    q = select(Order)
    if search:
        like = f"%{search.strip()}%"
        q_count = q_count.join(User, User.id == Order.user_id)
        q = q.join(User, User.id == Order.user_id)
        conditions.append(
            or_(Order.display_order_id.ilike(like), User.email.ilike(like), User.name.ilike(like), Order.awb_code.ilike(like))
        )

    total = (await db.execute(q_count.where(*conditions))).scalar() or 0
    res = await db.execute(
        q.where(*conditions).order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    )
    return list(res.scalars().all()), total


async def list_user_orders(db: AsyncSession, *, user_id: int, limit: int = 20, offset: int = 0) -> tuple[list[Order], int]:
    return await list_orders(db, user_id=user_id, limit=limit, offset=offset)


def allowed_transitions(order: Order) -> list[str]:
    return list(ORDER_TRANSITIONS.get(order.status, []))


async def update_status(
    db: AsyncSession,
    *,
    order: Order,
    new_status: str,
    actor: str = CancelledBy.ADMIN.value,
    actor_id: int | None = None,
    reason: str | None = None,
    notify: bool = True,
) -> Order:
    """
    Move an order to new_status if the transition table allows it.

    Raises ValidationError (400) for unknown statuses and illegal moves,
    e.g. delivered → confirmed.
    """
    if new_status not in {s.value for s in OrderStatus}:
        raise ValidationError(f"unknown status '{new_status}'", field="status")

    old_status = order.status
    if new_status == old_status:
        raise ValidationError(f"order is already {old_status}", field="status")
    if new_status not in ORDER_TRANSITIONS.get(old_status, []):
        raise ValidationError(
            f"cannot move order from {old_status} to {new_status}",
            field="status",
            details={"current": old_status, "allowed": allowed_transitions(order)},
        )

    now = datetime.utcnow()
    if new_status == OrderStatus.CANCELLED.value:
        order.cancel_reason = reason or "Cancelled"
        order.cancelled_by = actor
        order.cancelled_at = now
        movement_type = (
            StockMovementType.PAYMENT_FAILED.value
            if actor == CancelledBy.SYSTEM.value and order.payment_status == PaymentStatus.FAILED.value
            else StockMovementType.CANCELLATION.value
        )
        await inventory_service.restore_stock(
            db,
            order=order,
            movement_type=movement_type,
            performed_by=actor_id,
            note=order.cancel_reason,
        )
    elif new_status == OrderStatus.DELIVERED.value:
        if order.payment_method == PaymentMethod.COD.value and order.payment_status == PaymentStatus.PENDING.value:
            order.payment_status = PaymentStatus.PAID.value
        order.lifecycle_status = order.lifecycle_status or "DELIVERED"

    order.status = new_status
    order.updated_at = now
    await db.flush()

    if notify:
        await notification_service.notify_order_event(db, order, new_status)

    logger.info(f"Order {order.display_order_id}: {old_status} → {new_status} (by {actor})")
    return order


async def advance_status(db: AsyncSession, *, order: Order, actor_id: int | None = None) -> Order:
    """Move an order one step along the happy path."""
    if order.status in TERMINAL_ORDER_STATUSES:
        raise ValidationError(f"order is {order.status}; nothing to advance to", field="status")
    next_status = ORDER_STATUS_FLOW[ORDER_STATUS_FLOW.index(order.status) + 1]
    return await update_status(db, order=order, new_status=next_status, actor_id=actor_id)


async def bulk_update_status(
    db: AsyncSession,
    *,
    order_ids: list[int],
    new_status: str,
    actor_id: int | None = None,
) -> list[dict]:
    """
    Apply one status to many orders. Each order succeeds or fails on its
    own; a failure never rolls back the others.
    """
    results = []
    for oid in order_ids:
        try:
            # update_status validates before it mutates anything
            order = await get_order(db, oid)
            await update_status(db, order=order, new_status=new_status, actor_id=actor_id)
            results.append({"id": oid, "order_id": order.display_order_id, "success": True, "status": order.status})
        except (NotFoundError, ValidationError, ConflictError) as e:
            results.append({"id": oid, "success": False, "error": e.message})
    return results


async def cancel_order(
    db: AsyncSession,
    *,
    order: Order,
    reason: str,
    actor: str,
    actor_id: int | None = None,
) -> Order:
    if actor not in {c.value for c in CancelledBy}:
        raise ValidationError(f"unknown actor '{actor}'", field="cancelled_by")
    if actor == CancelledBy.CUSTOMER.value and order.status not in CUSTOMER_CANCELLABLE_STATUSES:
        raise PermissionDeniedError(
            f"Order {order.display_order_id} is {order.status} and can no longer be cancelled online"
        )
    return await update_status(
        db,
        order=order,
        new_status=OrderStatus.CANCELLED.value,
        actor=actor,
        actor_id=actor_id,
        reason=reason,
    )


async def update_shipping_info(
    db: AsyncSession,
    *,
    order: Order,
    courier: str | None,
    tracking_id: str | None,
) -> Order:
    """Manual courier details for parcels shipped outside Shiprocket."""
    if order.status in {OrderStatus.CANCELLED.value, OrderStatus.PENDING_PAYMENT.value}:
        raise ConflictError(f"Cannot set shipping info on a {order.status} order")
    if courier is not None:
        order.manual_courier = courier.strip() or None
    if tracking_id is not None:
        order.manual_tracking_id = tracking_id.strip() or None
    order.updated_at = datetime.utcnow()
    await db.flush()
    return order


async def update_shipping_address(db: AsyncSession, *, order: Order, address: dict) -> Order:
    if order.awb_code or order.status in {
        OrderStatus.SHIPPED.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.CANCELLED.value,
    }:
        raise ConflictError("Shipping address can only be changed before a shipment is created")
    order.ship_name = address["name"]
    order.ship_phone = address["phone"]
    order.ship_line1 = address["line1"]
    order.ship_line2 = address.get("line2")
    order.ship_city = address["city"]
    order.ship_state = address["state"]
    order.ship_pincode = address["pincode"]
    order.updated_at = datetime.utcnow()
    await db.flush()
    logger.info(f"Order {order.display_order_id}: shipping address updated")
    return order
