"""
Shipment service — books, tracks and cancels parcels through Shiprocket
and records the returned identifiers on the order.

Lifecycle of a Shiprocket parcel as stored on Order.lifecycle_status:

    AWB_ASSIGNED → PICKUP_SCHEDULED → SHIPPED / IN TRANSIT → DELIVERED
                └──────────────────→ CANCELLED

A provider failure raises ShipmentProviderError before anything on the
order is touched, so the route's transaction has nothing to commit.
"""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, ShipmentEvent, WebhookLog
from domain.constants import SHIPROCKET_DELIVERED_STATES, SHIPROCKET_IN_TRANSIT_STATES
from domain.enums import OrderStatus, PaymentMethod, WebhookStatus
from domain.errors import ConflictError, NotFoundError, ShipmentProviderError, UnauthorizedError, ValidationError
from services import order_service
from services.shiprocket_client import shiprocket_client
from utils.validators import validate_pincode

logger = logging.getLogger(__name__)

_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%d %m %Y %H:%M:%S", "%Y-%m-%d", "%d-%m-%Y %H:%M:%S")


def _parse_datetime(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        logger.debug(f"Unparseable Shiprocket date: {text}")
        return None


def _add_event(order: Order, status: str, activity: str | None = None, location: str | None = None,
               occurred_at: datetime | None = None) -> ShipmentEvent | None:
    """
    Append a tracking event unless it is already recorded.

    Events with a carrier timestamp match on (status, occurred_at). Without one
    (local events, or a carrier date that did not parse) they match on
    (status, activity, location), so re-tracking the same scan adds nothing.
    """
    for e in order.shipment_events:
        if e.status != status:
            continue
        if occurred_at is not None and e.occurred_at == occurred_at:
            return None
        if occurred_at is None and (e.activity, e.location) == (activity, location):
            return None
    event = ShipmentEvent(
        status=status, activity=activity, location=location, occurred_at=occurred_at or datetime.utcnow()
    )
    order.shipment_events.append(event)
    return event


def _require_awb(order: Order) -> str:
    if not order.awb_code:
        raise ConflictError(f"Order {order.display_order_id} has no shipment yet")
    return order.awb_code


def build_adhoc_payload(order: Order) -> dict:
    units = sum(i.quantity for i in order.items)
    return {
        "order_id": order.display_order_id,
        "order_date": (order.created_at or datetime.utcnow()).strftime("%Y-%m-%d %H:%M"),
        "pickup_location": settings.shiprocket_pickup_location,
        "billing_customer_name": order.ship_name,
        "billing_last_name": "",
        "billing_address": order.ship_line1,
        "billing_address_2": order.ship_line2 or "",
        "billing_city": order.ship_city,
        "billing_pincode": order.ship_pincode,
        "billing_state": order.ship_state,
        "billing_country": "India",
        "billing_email": order.user.email if order.user else "",
        "billing_phone": order.ship_phone,
        "shipping_is_billing": True,
        "order_items": [
            {
                "name": f"{i.name} (UK {i.size})" if i.size else i.name,
                "sku": f"{i.product_id}-{i.size or 'NA'}",
                "units": i.quantity,
                "selling_price": i.price,
            }
            for i in order.items
        ],
        "payment_method": "COD" if order.payment_method == PaymentMethod.COD.value else "Prepaid",
        "shipping_charges": order.shipping_cost,
        "total_discount": order.discount,
        "sub_total": order.total,
        "length": settings.package_length_cm,
        "breadth": settings.package_breadth_cm,
        "height": settings.package_height_cm,
        "weight": round(settings.package_weight_kg * max(units, 1), 2),
    }


async def create_shipment(db: AsyncSession, *, order: Order, courier_id: int | None = None) -> Order:
    """Book the parcel: ad-hoc order + AWB. confirmed orders move to processing."""
    if order.status not in (OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value):
        raise ConflictError(f"Order {order.display_order_id} is {order.status}; only confirmed or processing orders can ship")
    if order.awb_code:
        raise ConflictError(f"Order {order.display_order_id} already has AWB {order.awb_code}")

    created = await shiprocket_client.create_adhoc_order(build_adhoc_payload(order))
    sr_order_id = created.get("order_id")
    shipment_id = created.get("shipment_id")
    if not sr_order_id or not shipment_id:
        raise ShipmentProviderError("Shiprocket did not return an order/shipment id", details={"response": created})

    assigned = await shiprocket_client.assign_awb(str(shipment_id), courier_id=courier_id)
    data = (assigned.get("response") or {}).get("data") or {}
    awb_code = data.get("awb_code")
    if assigned.get("awb_assign_status") != 1 or not awb_code:
        raise ShipmentProviderError(
            "Shiprocket could not assign an AWB",
            details={"message": assigned.get("message") or data.get("awb_assign_error")},
        )

    now = datetime.utcnow()
    order.shiprocket_order_id = str(sr_order_id)
    order.shipment_id = str(shipment_id)
    order.awb_code = awb_code
    order.courier_name = data.get("courier_name")
    order.courier_company_id = data.get("courier_company_id")
    order.tracking_url = f"https://shiprocket.co/tracking/{awb_code}"
    order.lifecycle_status = "AWB_ASSIGNED"
    order.shipment_created_at = now
    order.updated_at = now
    _add_event(order, "AWB_ASSIGNED", activity=f"AWB {awb_code} assigned ({order.courier_name or 'courier'})", occurred_at=now)

    if order.status == OrderStatus.CONFIRMED.value:
        await order_service.update_status(db, order=order, new_status=OrderStatus.PROCESSING.value, notify=False)
    await db.flush()
    logger.info(f"🚚 Shipment created for {order.display_order_id}: AWB {awb_code} via {order.courier_name}")
    return order


async def generate_label(db: AsyncSession, *, order: Order) -> Order:
    if not order.shipment_id:
        raise ConflictError(f"Order {order.display_order_id} has no shipment yet")
    resp = await shiprocket_client.generate_label([order.shipment_id])
    if not resp.get("label_created") or not resp.get("label_url"):
        raise ShipmentProviderError("Shiprocket did not create a label", details={"response": resp})
    order.label_url = resp["label_url"]
    order.updated_at = datetime.utcnow()
    await db.flush()
    return order


async def bulk_print_labels(db: AsyncSession, *, order_ids: list[int]) -> dict:
    """One combined label PDF for every order that has a shipment."""
    res = await db.execute(select(Order).where(Order.id.in_(order_ids)))
    orders = list(res.scalars().all())
    ready = [o for o in orders if o.shipment_id]
    found = {o.id for o in orders}
    skipped = [
        {"id": o.id, "order_id": o.display_order_id, "error": "no shipment"} for o in orders if not o.shipment_id
    ] + [{"id": oid, "error": "not found"} for oid in order_ids if oid not in found]

    if not ready:
        raise ValidationError("none of the selected orders has a shipment", field="order_ids")

    resp = await shiprocket_client.generate_label([o.shipment_id for o in ready])
    label_url = resp.get("label_url")
    if not label_url:
        raise ShipmentProviderError("Shiprocket did not create a label", details={"response": resp})
    for o in ready:
        o.label_url = label_url
    await db.flush()
    return {
        "label_url": label_url,
        "included": [o.display_order_id for o in ready],
        "skipped": skipped,
    }


async def _sync_order_status(db: AsyncSession, order: Order, carrier_state: str) -> None:
    """Move the order forward when the carrier reports it has moved."""
    state = (carrier_state or "").upper()
    if state in SHIPROCKET_IN_TRANSIT_STATES | SHIPROCKET_DELIVERED_STATES:
        if order.status == OrderStatus.PROCESSING.value:
            await order_service.update_status(db, order=order, new_status=OrderStatus.SHIPPED.value, actor="system")
    if state in SHIPROCKET_DELIVERED_STATES and order.status == OrderStatus.SHIPPED.value:
        await order_service.update_status(db, order=order, new_status=OrderStatus.DELIVERED.value, actor="system")


async def track_shipment(db: AsyncSession, *, order: Order) -> Order:
    awb = _require_awb(order)
    resp = await shiprocket_client.track_awb(awb)
    td = resp.get("tracking_data") or {}

    for act in td.get("shipment_track_activities") or []:
        _add_event(
            order,
            status=act.get("sr-status-label") or act.get("status") or "UPDATE",
            activity=act.get("activity"),
            location=act.get("location"),
            occurred_at=_parse_datetime(act.get("date")),
        )

    track = (td.get("shipment_track") or [{}])[0]
    current = track.get("current_status") or td.get("shipment_status")
    if current:
        order.lifecycle_status = str(current).upper()
    edd = _parse_datetime(track.get("edd") or td.get("etd"))
    if edd:
        order.estimated_delivery_date = edd
    if td.get("track_url"):
        order.tracking_url = td["track_url"]
    order.updated_at = datetime.utcnow()

    await _sync_order_status(db, order, order.lifecycle_status)
    await db.flush()
    return order


async def cancel_shipment(db: AsyncSession, *, order: Order) -> Order:
    if order.status == OrderStatus.DELIVERED.value:
        raise ConflictError(f"Order {order.display_order_id} is delivered; its shipment cannot be cancelled")
    if not order.shiprocket_order_id:
        raise ConflictError(f"Order {order.display_order_id} has no shipment yet")

    await shiprocket_client.cancel_orders([order.shiprocket_order_id])

    awb = order.awb_code
    order.shiprocket_order_id = None
    order.shipment_id = None
    order.awb_code = None
    order.courier_name = None
    order.courier_company_id = None
    order.label_url = None
    order.manifest_url = None
    order.tracking_url = None
    order.pickup_scheduled_at = None
    order.lifecycle_status = "CANCELLED"
    order.updated_at = datetime.utcnow()
    _add_event(order, "SHIPMENT_CANCELLED", activity=f"Shipment with AWB {awb or '-'} cancelled")
    await db.flush()
    logger.info(f"Shipment cancelled for {order.display_order_id} (AWB {awb})")
    return order


async def schedule_pickup(db: AsyncSession, *, order: Order) -> Order:
    _require_awb(order)
    resp = await shiprocket_client.generate_pickup([order.shipment_id])
    if resp.get("pickup_status") != 1:
        raise ShipmentProviderError("Shiprocket could not schedule a pickup", details={"response": resp})
    scheduled = _parse_datetime((resp.get("response") or {}).get("pickup_scheduled_date")) or datetime.utcnow()
    order.pickup_scheduled_at = scheduled
    order.lifecycle_status = "PICKUP_SCHEDULED"
    order.updated_at = datetime.utcnow()
    _add_event(order, "PICKUP_SCHEDULED", activity=f"Pickup scheduled for {scheduled:%Y-%m-%d}")
    await db.flush()
    return order


async def generate_manifest(db: AsyncSession, *, order: Order) -> Order:
    _require_awb(order)
    resp = await shiprocket_client.generate_manifest([order.shipment_id])
    if not resp.get("manifest_url"):
        raise ShipmentProviderError("Shiprocket did not return a manifest", details={"response": resp})
    order.manifest_url = resp["manifest_url"]
    order.updated_at = datetime.utcnow()
    await db.flush()
    return order


async def mark_shipped(db: AsyncSession, *, order: Order, actor_id: int | None = None) -> Order:
    """Hand-over to the courier confirmed by the warehouse."""
    if not order.awb_code and not order.manual_tracking_id:
        raise ConflictError(f"Order {order.display_order_id} has no AWB or manual tracking id")
    await order_service.update_status(db, order=order, new_status=OrderStatus.SHIPPED.value, actor_id=actor_id)
    order.lifecycle_status = "SHIPPED"
    _add_event(order, "SHIPPED", activity="Handed over to courier")
    await db.flush()
    return order


async def bulk_create_shipments(db: AsyncSession, *, order_ids: list[int]) -> list[dict]:
    results = []
    for oid in order_ids:
        try:
            order = await order_service.get_order(db, oid)
            await create_shipment(db, order=order)
            results.append({"id": oid, "order_id": order.display_order_id, "success": True, "awb_code": order.awb_code})
        except (NotFoundError, ConflictError, ShipmentProviderError) as e:
            results.append({"id": oid, "success": False, "error": e.message})
    created = sum(1 for r in results if r["success"])
    logger.info(f"Bulk shipment creation: {created}/{len(order_ids)} succeeded")
    return results


async def get_rates(*, delivery_pincode: str, weight: float | None = None, cod: bool = False) -> list[dict]:
    resp = await shiprocket_client.serviceability(
        delivery_pincode=delivery_pincode,
        weight=weight or settings.package_weight_kg,
        cod=cod,
    )
    couriers = ((resp.get("data") or {}).get("available_courier_companies")) or []
    rates = [
        {
            "courier_company_id": c.get("courier_company_id"),
            "courier_name": c.get("courier_name"),
            "rate": c.get("rate"),
            "etd": c.get("etd"),
            "estimated_delivery_days": c.get("estimated_delivery_days"),
            "cod": bool(c.get("cod")),
        }
        for c in couriers
    ]
    rates.sort(key=lambda r: (r["rate"] is None, r["rate"] or 0))
    return rates


async def check_pincode(*, pincode: str) -> dict:
    """
    Storefront delivery check for a 6-digit pincode.

    Shiprocket answers 404 when no courier covers the pincode; that is a
    "not serviceable" result rather than an error.
    """
    pincode = validate_pincode(pincode)
    try:
        rates = await get_rates(delivery_pincode=pincode)
    except ShipmentProviderError as e:
        if e.details.get("status") not in (404, 422):
            raise
        rates = []

    days = []
    for r in rates:
        try:
            days.append(int(r["estimated_delivery_days"]))
        except (TypeError, ValueError):
            continue
    return {
        "pincode": pincode,
        "serviceable": bool(rates),
        "cod_available": any(r["cod"] for r in rates),
        "courier_count": len(rates),
        "estimated_delivery_days": min(days) if days else None,
    }


async def get_pickup_addresses() -> list[dict]:
    resp = await shiprocket_client.pickup_addresses()
    return ((resp.get("data") or {}).get("shipping_address")) or []


async def handle_webhook(db: AsyncSession, *, payload: dict, token: str | None) -> dict:
    """
    Carrier status push.

    Authenticated with the shared SHIPROCKET_WEBHOOK_TOKEN (fails closed when
    unset). Each (awb, status, timestamp) is applied once.
    """
    if not settings.shiprocket_webhook_token or token != settings.shiprocket_webhook_token:
        logger.warning("Shiprocket webhook rejected: bad or missing token")
        raise UnauthorizedError("Invalid webhook token")

    awb = str(payload.get("awb") or "").strip()
    status = str(payload.get("current_status") or payload.get("shipment_status") or "").upper()
    scans = payload.get("scans") or []
    last_scan = scans[-1] if scans else {}
    timestamp = payload.get("current_timestamp") or last_scan.get("date")
    event_id = f"shiprocket:{awb}:{status}:{timestamp or ''}"

    existing = await db.execute(select(WebhookLog).where(WebhookLog.event_id == event_id))
    if existing.scalar_one_or_none():
        return {"status": "duplicate"}

    log = WebhookLog(
        provider="shiprocket",
        event_id=event_id,
        event_type=status or "UNKNOWN",
        status=WebhookStatus.PENDING.value,
        payload=payload,
        created_at=datetime.utcnow(),
    )
    db.add(log)

    order = None
    if awb:
        res = await db.execute(select(Order).where(Order.awb_code == awb))
        order = res.scalar_one_or_none()
    if order is None and payload.get("order_id"):
        res = await db.execute(select(Order).where(Order.display_order_id == str(payload["order_id"])))
        order = res.scalar_one_or_none()

    if order is None:
        log.status = WebhookStatus.FAILED.value
        log.error = "unknown order"
        log.processed_at = datetime.utcnow()
        await db.flush()
        logger.warning(f"Shiprocket webhook for unknown AWB {awb}")
        return {"status": "ignored", "reason": "unknown_order"}

    occurred_at = _parse_datetime(timestamp)
    _add_event(order, status or "UPDATE", activity=last_scan.get("activity"), location=last_scan.get("location"),
               occurred_at=occurred_at)
    if status:
        order.lifecycle_status = status
    etd = _parse_datetime(payload.get("etd"))
    if etd:
        order.estimated_delivery_date = etd
    order.updated_at = datetime.utcnow()

    await _sync_order_status(db, order, status)

    log.status = WebhookStatus.PROCESSED.value
    log.order_id = order.id
    log.result = f"lifecycle={status} order_status={order.status}"
    log.processed_at = datetime.utcnow()
    await db.flush()
    logger.info(f"📩 Shiprocket webhook: {order.display_order_id} AWB {awb} → {status}")
    return {"status": "processed", "order_id": order.display_order_id, "order_status": order.status}


async def reconcile_shipments(db: AsyncSession) -> dict:
    """Re-track every shipped order that has an AWB (missed webhooks)."""
    res = await db.execute(
        select(Order).where(Order.status == OrderStatus.SHIPPED.value, Order.awb_code.is_not(None))
    )
    orders = list(res.scalars().all())
    delivered, failed = 0, []
    for order in orders:
        try:
            await track_shipment(db, order=order)
            if order.status == OrderStatus.DELIVERED.value:
                delivered += 1
        except ShipmentProviderError as e:
            failed.append({"order_id": order.display_order_id, "error": e.message})
    logger.info(f"Shipment reconcile: checked={len(orders)} delivered={delivered} failed={len(failed)}")
    return {"checked": len(orders), "delivered": delivered, "failed": failed}
