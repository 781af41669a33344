"""
Unit tests for order service.

Tests checkout totals, display ids, the status state machine, cancellation
with stock restore, and bulk status changes.
"""
import re
from datetime import datetime, timedelta

import pytest

from db_models import StockMovement
from domain.enums import CancelledBy, OrderStatus, PaymentStatus, StockMovementType
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from services import cart_service, coupon_service, order_service
from sqlalchemy import select


pytestmark = pytest.mark.unit


# ── Checkout ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cod_checkout_confirms_and_takes_stock(db_session, customer, product, place_order):
    order = await place_order(customer, [(product.id, "7", 2)])

    assert order.status == OrderStatus.CONFIRMED.value
    assert order.payment_status == PaymentStatus.PENDING.value
    assert order.subtotal == 3998.0
    assert order.shipping_cost == 0.0  # above free shipping threshold
    assert order.total == 3998.0
    assert [s.stock for s in product.sizes if s.size == "7"] == [3]
    assert product.stock == 6

    res = await db_session.execute(select(StockMovement).where(StockMovement.order_id == order.id))
    movements = res.scalars().all()
    assert len(movements) == 1
    assert movements[0].type == StockMovementType.SALE.value
    assert movements[0].quantity == -2


@pytest.mark.asyncio
async def test_razorpay_checkout_waits_for_payment(db_session, customer, product, place_order):
    order = await place_order(customer, [(product.id, "8", 1)], payment_method="razorpay")

    assert order.status == OrderStatus.PENDING_PAYMENT.value
    assert order.payment_method == "razorpay"


@pytest.mark.asyncio
async def test_small_order_pays_flat_shipping(db_session, customer, cheap_product, place_order):
    order = await place_order(customer, [(cheap_product.id, "free", 1)])

    assert order.subtotal == 299.0
    assert order.shipping_cost == 79.0
    assert order.total == 378.0


@pytest.mark.asyncio
async def test_checkout_clears_cart(db_session, customer, product, place_order):
    await place_order(customer, [(product.id, "7", 1)])
    items = await cart_service.get_cart_items(db_session, user_id=customer.id)
    assert items == []


@pytest.mark.asyncio
async def test_checkout_empty_cart_rejected(db_session, customer, shipping_address):
    with pytest.raises(ValidationError):
        await order_service.create_order(
            db_session, user=customer, shipping_address=shipping_address, payment_method="cod"
        )


@pytest.mark.asyncio
async def test_checkout_unknown_payment_method(db_session, customer, product, shipping_address):
    await cart_service.set_item(db_session, user_id=customer.id, product_id=product.id, size="7", quantity=1)
    with pytest.raises(ValidationError):
        await order_service.create_order(
            db_session, user=customer, shipping_address=shipping_address, payment_method="upi"
        )


@pytest.mark.asyncio
async def test_checkout_with_coupon(db_session, customer, product, place_order):
    await coupon_service.create_coupon(
        db_session,
        code="save10",
        data={"type": "percent", "value": 10, "expiry": datetime.utcnow() + timedelta(days=7)},
    )
    await db_session.commit()

    order = await place_order(customer, [(product.id, "7", 1)], coupon_code="SAVE10")

    assert order.coupon_code == "SAVE10"
    assert order.discount == 200.0  # 199.9 rounded half-up
    # 1999 - 200 = 1799, still above the free shipping threshold
    assert order.total == 1799.0

    coupon = await coupon_service.get_by_code(db_session, "SAVE10")
    await db_session.refresh(coupon)
    assert coupon.used_count == 1


@pytest.mark.asyncio
async def test_checkout_with_invalid_coupon(db_session, customer, product, place_order):
    with pytest.raises(ValidationError):
        await place_order(customer, [(product.id, "7", 1)], coupon_code="NOPE")


@pytest.mark.asyncio
async def test_display_order_ids_are_sequential(db_session):
    now = datetime(2025, 3, 14, 10, 0, 0)
    first = await order_service.next_display_order_id(db_session, now=now)
    second = await order_service.next_display_order_id(db_session, now=now)
    next_day = await order_service.next_display_order_id(db_session, now=now + timedelta(days=1))

    assert first == "ORD-250314-1001"
    assert second == "ORD-250314-1002"
    assert next_day == "ORD-250315-1001"


@pytest.mark.asyncio
async def test_placed_order_gets_display_id(db_session, customer, product, place_order):
    order = await place_order(customer, [(product.id, "7", 1)])
    assert re.match(r"^ORD-\d{6}-1001$", order.display_order_id)


# ── State machine ────────────────────────────────────────────────────


class TestStatusTransitions:

    @pytest.mark.asyncio
    async def test_happy_path(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])

        for status in ("processing", "shipped", "delivered"):
            await order_service.update_status(db_session, order=order, new_status=status)
        assert order.status == "delivered"
        # COD collected on delivery
        assert order.payment_status == PaymentStatus.PAID.value

    @pytest.mark.asyncio
    async def test_cannot_skip_steps(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ValidationError) as exc:
            await order_service.update_status(db_session, order=order, new_status="delivered")
        assert exc.value.details["allowed"] == ["processing", "cancelled"]
        assert order.status == "confirmed"

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        await order_service.cancel_order(db_session, order=order, reason="Changed mind", actor="admin")

        with pytest.raises(ValidationError):
            await order_service.update_status(db_session, order=order, new_status="confirmed")

    @pytest.mark.asyncio
    async def test_unknown_status(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ValidationError):
            await order_service.update_status(db_session, order=order, new_status="lost")

    @pytest.mark.asyncio
    async def test_same_status_rejected(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ValidationError):
            await order_service.update_status(db_session, order=order, new_status="confirmed")

    @pytest.mark.asyncio
    async def test_advance_walks_one_step(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        await order_service.advance_status(db_session, order=order)
        assert order.status == "processing"

    @pytest.mark.asyncio
    async def test_advance_terminal_fails(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        await order_service.cancel_order(db_session, order=order, reason="Duplicate", actor="admin")
        with pytest.raises(ValidationError):
            await order_service.advance_status(db_session, order=order)

    def test_allowed_transitions(self):
        class _Order:
            status = "shipped"

        assert order_service.allowed_transitions(_Order()) == ["delivered", "cancelled"]


# ── Cancellation ─────────────────────────────────────────────────────


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_restores_stock(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 2), (product.id, "8", 1)])
        assert product.stock == 5

        await order_service.cancel_order(
            db_session, order=order, reason="Ordered wrong size", actor=CancelledBy.CUSTOMER.value, actor_id=customer.id
        )

        assert order.status == "cancelled"
        assert order.cancelled_by == "customer"
        assert order.cancel_reason == "Ordered wrong size"
        assert order.cancelled_at is not None
        assert product.stock == 8
        assert {s.size: s.stock for s in product.sizes} == {"7": 5, "8": 3, "9": 0}

        res = await db_session.execute(
            select(StockMovement).where(
                StockMovement.order_id == order.id,
                StockMovement.type == StockMovementType.CANCELLATION.value,
            )
        )
        assert sorted(m.quantity for m in res.scalars().all()) == [1, 2]

    @pytest.mark.asyncio
    async def test_customer_cannot_cancel_shipped(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        await order_service.update_status(db_session, order=order, new_status="processing")
        await order_service.update_status(db_session, order=order, new_status="shipped")

        with pytest.raises(PermissionDeniedError):
            await order_service.cancel_order(db_session, order=order, reason="Too slow", actor="customer")
        assert order.status == "shipped"

    @pytest.mark.asyncio
    async def test_admin_can_cancel_shipped(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        await order_service.update_status(db_session, order=order, new_status="processing")
        await order_service.update_status(db_session, order=order, new_status="shipped")

        await order_service.cancel_order(db_session, order=order, reason="Lost in transit", actor="admin")
        assert order.status == "cancelled"

    @pytest.mark.asyncio
    async def test_unknown_actor(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ValidationError):
            await order_service.cancel_order(db_session, order=order, reason="x" * 5, actor="courier")


# ── Lookups and admin edits ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_other_customers_order_is_hidden(db_session, customer, other_customer, product, place_order):
    order = await place_order(customer, [(product.id, "7", 1)])
    with pytest.raises(NotFoundError):
        await order_service.get_order_for_user(db_session, order_id=order.id, user=other_customer)


@pytest.mark.asyncio
async def test_list_orders_search_by_display_id(db_session, customer, product, place_order):
    order = await place_order(customer, [(product.id, "7", 1)])
    orders, total = await order_service.list_orders(db_session, search=order.display_order_id)
    assert total == 1
    assert orders[0].id == order.id


@pytest.mark.asyncio
async def test_bulk_status_reports_each_order(db_session, customer, product, place_order):
    first = await place_order(customer, [(product.id, "7", 1)])
    second = await place_order(customer, [(product.id, "8", 1)])
    await order_service.update_status(db_session, order=second, new_status="processing")

    results = await order_service.bulk_update_status(
        db_session, order_ids=[first.id, second.id, 9999], new_status="processing"
    )

    assert results[0]["success"] is True
    assert results[1]["success"] is False
    assert results[2]["success"] is False
    assert first.status == "processing"


@pytest.mark.asyncio
async def test_address_locked_after_shipping(db_session, customer, product, place_order, shipping_address):
    order = await place_order(customer, [(product.id, "7", 1)])
    await order_service.update_status(db_session, order=order, new_status="processing")
    await order_service.update_status(db_session, order=order, new_status="shipped")

    with pytest.raises(ConflictError):
        await order_service.update_shipping_address(
            db_session, order=order, address={**shipping_address, "city": "Mysuru"}
        )
