"""
Razorpay payment service.

Handles:
    1. Gateway order creation for pending_payment orders
    2. Checkout callback verification (order_id|payment_id signature)
    3. Webhook signature verification (fails closed without a secret)
    4. Webhook processing, idempotent through WebhookLog:
         payment.captured / order.paid → paid, order confirmed
         payment.failed               → failed, order cancelled, stock restored
         refund.processed             → refunded, stock restored as returns

Amounts travel to and from Razorpay in paise.
"""
import hashlib
import hmac
import json
import logging
from datetime import datetime
from decimal import Decimal

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, WebhookLog
from domain.constants import TERMINAL_ORDER_STATUSES
from domain.enums import (
    CancelledBy,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StockMovementType,
    WebhookStatus,
)
from domain.errors import ConflictError, PaymentGatewayError, UnauthorizedError, ValidationError
from services import inventory_service, notification_service, order_service

logger = logging.getLogger(__name__)


def to_paise(amount: float) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value())


# ════════════════════════════════════════════════════════════════════
# Gateway Orders
# ════════════════════════════════════════════════════════════════════


async def create_gateway_order(db: AsyncSession, *, order: Order) -> dict:
    """Create (or reuse) the Razorpay order the checkout widget pays against."""
    if order.payment_method != PaymentMethod.RAZORPAY.value:
        raise ConflictError(f"Order {order.display_order_id} is not an online-payment order")
    if order.status != OrderStatus.PENDING_PAYMENT.value:
        raise ConflictError(f"Order {order.display_order_id} is {order.status}; payment is not pending")
    if not settings.razorpay_configured:
        raise PaymentGatewayError("Razorpay credentials are not configured (RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET)")

    amount = to_paise(order.total)
    if order.payment_gateway_order_id:
        return {
            "razorpay_order_id": order.payment_gateway_order_id,
            "amount": amount,
            "currency": settings.currency,
            "key_id": settings.razorpay_key_id,
        }

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                f"{settings.razorpay_base_url}/orders",
                auth=(settings.razorpay_key_id, settings.razorpay_key_secret),
                json={
                    "amount": amount,
                    "currency": settings.currency,
                    "receipt": order.display_order_id,
                    "notes": {"order_id": order.display_order_id},
                },
            )
    except httpx.HTTPError as e:
        logger.error(f"Razorpay order creation failed for {order.display_order_id}: {e}")
        raise PaymentGatewayError(f"Razorpay unreachable: {e}")

    if response.status_code >= 400:
        logger.error(f"Razorpay rejected order {order.display_order_id}: HTTP {response.status_code} {response.text[:300]}")
        raise PaymentGatewayError("Razorpay rejected the order", details={"status": response.status_code})

    gateway_order = response.json()
    order.payment_gateway_order_id = gateway_order["id"]
    order.updated_at = datetime.utcnow()
    await db.flush()

    logger.info(f"💳 Razorpay order {gateway_order['id']} created for {order.display_order_id} ({amount} paise)")
    return {
        "razorpay_order_id": gateway_order["id"],
        "amount": amount,
        "currency": settings.currency,
        "key_id": settings.razorpay_key_id,
    }


def verify_checkout_signature(razorpay_order_id: str, razorpay_payment_id: str, signature: str) -> bool:
    if not settings.razorpay_key_secret or not signature:
        return False
    expected = hmac.new(
        settings.razorpay_key_secret.encode("utf-8"),
        f"{razorpay_order_id}|{razorpay_payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


async def _mark_paid(db: AsyncSession, order: Order, payment_id: str) -> None:
    order.payment_status = PaymentStatus.PAID.value
    order.payment_transaction_id = payment_id
    order.updated_at = datetime.utcnow()
    if order.status == OrderStatus.PENDING_PAYMENT.value:
        await order_service.update_status(
            db, order=order, new_status=OrderStatus.CONFIRMED.value, actor=CancelledBy.SYSTEM.value
        )
    await db.flush()


async def verify_payment(
    db: AsyncSession,
    *,
    order: Order,
    razorpay_order_id: str,
    razorpay_payment_id: str,
    signature: str,
) -> Order:
    """Checkout success callback; the webhook remains the source of truth."""
    if order.payment_gateway_order_id != razorpay_order_id:
        raise ValidationError("does not belong to this order", field="razorpay_order_id")
    if not verify_checkout_signature(razorpay_order_id, razorpay_payment_id, signature):
        raise UnauthorizedError("Invalid payment signature")
    if order.payment_status == PaymentStatus.PAID.value:
        return order
    if order.status != OrderStatus.PENDING_PAYMENT.value:
        raise ConflictError(f"Order {order.display_order_id} is {order.status}; payment is not pending")
    await _mark_paid(db, order, razorpay_payment_id)
    logger.info(f"✅ Payment verified for {order.display_order_id} ({razorpay_payment_id})")
    return order


# ════════════════════════════════════════════════════════════════════
# Webhook Verification & Processing
# ════════════════════════════════════════════════════════════════════


def verify_webhook_signature(payload: bytes, signature: str) -> bool:
    """
    Verify the X-Razorpay-Signature header (HMAC-SHA256 of the raw body).

    FAILS CLOSED when the webhook secret is not configured.
    """
    if not settings.razorpay_webhook_secret:
        logger.error(
            "RAZORPAY_WEBHOOK_SECRET not configured — rejecting webhook. "
            "Set RAZORPAY_WEBHOOK_SECRET in .env to accept payment webhooks."
        )
        return False

    if not signature:
        logger.warning("Razorpay webhook received without signature header")
        return False

    expected = hmac.new(
        settings.razorpay_webhook_secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def _event_id(data: dict) -> str:
    inner = data.get("payload") or {}
    payment = ((inner.get("payment") or {}).get("entity")) or {}
    refund = ((inner.get("refund") or {}).get("entity")) or {}
    gateway_order = ((inner.get("order") or {}).get("entity")) or {}
    entity_id = refund.get("id") or payment.get("id") or gateway_order.get("id") or ""
    return f"razorpay_{data.get('event', 'unknown')}_{entity_id}"


async def handle_webhook(db: AsyncSession, *, raw_body: bytes, signature: str | None) -> dict:
    """
    Verify and apply a Razorpay webhook.

    Processing failures are recorded on the WebhookLog and reported as
    {"status": "error"} rather than raised, so Razorpay does not retry-storm.
    """
    if not verify_webhook_signature(raw_body, signature or ""):
        raise UnauthorizedError("Invalid signature")

    try:
        data = json.loads(raw_body)
    except ValueError:
        raise ValidationError("webhook body is not valid JSON")

    event = data.get("event", "")
    event_id = _event_id(data)

    res = await db.execute(select(WebhookLog).where(WebhookLog.event_id == event_id))
    log = res.scalar_one_or_none()
    if log and log.status == WebhookStatus.PROCESSED.value:
        logger.info(f"Razorpay webhook: duplicate event skipped ({event_id})")
        return {"status": "duplicate"}
    if log is None:
        log = WebhookLog(
            provider="razorpay",
            event_id=event_id,
            event_type=event,
            status=WebhookStatus.PENDING.value,
            payload=data,
            created_at=datetime.utcnow(),
        )
        db.add(log)
        await db.flush()

    inner = data.get("payload") or {}
    if event in ("payment.captured", "order.paid"):
        entity = ((inner.get("payment") or {}).get("entity")) or {}
        await _handle_payment_captured(db, entity, log)
    elif event == "payment.failed":
        entity = ((inner.get("payment") or {}).get("entity")) or {}
        await _handle_payment_failed(db, entity, log)
    elif event == "refund.processed":
        entity = ((inner.get("refund") or {}).get("entity")) or {}
        await _handle_refund_processed(db, entity, log)
    else:
        log.status = WebhookStatus.PROCESSED.value
        log.result = f"Unhandled event: {event}"
        logger.info(f"Razorpay webhook: unhandled event {event}")

    log.processed_at = datetime.utcnow()
    await db.flush()
    logger.info(f"📩 Razorpay webhook {event} → {log.status} ({log.result or log.error})")
    return {"status": "ok" if log.status == WebhookStatus.PROCESSED.value else "error", "event_id": event_id}


async def _order_by_gateway_id(db: AsyncSession, razorpay_order_id: str | None) -> Order | None:
    if not razorpay_order_id:
        return None
    res = await db.execute(select(Order).where(Order.payment_gateway_order_id == razorpay_order_id))
    return res.scalar_one_or_none()


async def _handle_payment_captured(db: AsyncSession, entity: dict, log: WebhookLog) -> None:
    order = await _order_by_gateway_id(db, entity.get("order_id"))
    if order is None:
        log.status = WebhookStatus.FAILED.value
        log.error = f"Order not found for razorpay order {entity.get('order_id')}"
        return
    log.order_id = order.id

    if order.payment_status == PaymentStatus.PAID.value:
        log.status = WebhookStatus.PROCESSED.value
        log.result = f"Order {order.display_order_id} already paid"
        return

    paid = int(entity.get("amount") or 0)
    expected = to_paise(order.total)
    if paid < expected:
        log.status = WebhookStatus.FAILED.value
        log.error = f"Payment amount mismatch: paid {paid} paise, expected {expected} paise"
        logger.error(f"Razorpay amount mismatch on {order.display_order_id}: {paid} < {expected}")
        return

    if order.status == OrderStatus.CANCELLED.value:
        # Paid after the order was cancelled; money has to go back by hand
        log.status = WebhookStatus.FAILED.value
        log.error = f"Payment captured for cancelled order {order.display_order_id}; refund required"
        order.payment_status = PaymentStatus.PAID.value
        order.payment_transaction_id = entity.get("id")
        logger.error(log.error)
        return

    await _mark_paid(db, order, entity.get("id"))
    log.status = WebhookStatus.PROCESSED.value
    log.result = f"Order {order.display_order_id} paid and {order.status}"


async def _handle_payment_failed(db: AsyncSession, entity: dict, log: WebhookLog) -> None:
    order = await _order_by_gateway_id(db, entity.get("order_id"))
    if order is None:
        log.status = WebhookStatus.FAILED.value
        log.error = f"Order not found for razorpay order {entity.get('order_id')}"
        return
    log.order_id = order.id

    if order.payment_status in (PaymentStatus.FAILED.value, PaymentStatus.PAID.value):
        log.status = WebhookStatus.PROCESSED.value
        log.result = f"Order payment already {order.payment_status}"
        return

    order.payment_status = PaymentStatus.FAILED.value
    order.payment_transaction_id = entity.get("id")
    if order.status not in TERMINAL_ORDER_STATUSES:
        reason = entity.get("error_description") or "Online payment failed"
        await order_service.update_status(
            db,
            order=order,
            new_status=OrderStatus.CANCELLED.value,
            actor=CancelledBy.SYSTEM.value,
            reason=reason,
        )
    log.status = WebhookStatus.PROCESSED.value
    log.result = f"Order {order.display_order_id} cancelled, stock restored"


async def _handle_refund_processed(db: AsyncSession, entity: dict, log: WebhookLog) -> None:
    payment_id = entity.get("payment_id")
    order = None
    if payment_id:
        res = await db.execute(select(Order).where(Order.payment_transaction_id == payment_id))
        order = res.scalar_one_or_none()
    if order is None:
        log.status = WebhookStatus.FAILED.value
        log.error = f"Order not found for payment {payment_id}"
        return
    log.order_id = order.id

    if order.payment_status == PaymentStatus.REFUNDED.value:
        log.status = WebhookStatus.PROCESSED.value
        log.result = f"Order {order.display_order_id} already refunded"
        return

    await inventory_service.restore_stock(
        db,
        order=order,
        movement_type=StockMovementType.RETURN.value,
        note="Razorpay refund processed",
    )
    order.payment_status = PaymentStatus.REFUNDED.value
    order.payment_refund_id = entity.get("id")
    order.updated_at = datetime.utcnow()
    if order.status not in TERMINAL_ORDER_STATUSES:
        await order_service.update_status(
            db,
            order=order,
            new_status=OrderStatus.CANCELLED.value,
            actor=CancelledBy.SYSTEM.value,
            reason="Payment refunded",
        )
    else:
        await notification_service.create_notification(
            db,
            user_id=order.user_id,
            title="Refund processed",
            body=f"Your refund for order {order.display_order_id} has been processed.",
            data={"screen": "order", "order_id": order.display_order_id},
        )
    await db.flush()
    log.status = WebhookStatus.PROCESSED.value
    log.result = f"Order {order.display_order_id} refunded, stock restored"
