"""
Unit tests for shipment service.

Shiprocket is mocked; tests cover booking, cancellation, tracking sync,
warehouse operations, reconcile, the pincode check and the status
webhook with its token/duplicate handling.
"""
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from config import settings
from db_models import WebhookLog
from domain.errors import ConflictError, ShipmentProviderError, UnauthorizedError, ValidationError
from services import shipment_service


pytestmark = pytest.mark.unit


def _mock_client() -> AsyncMock:
    client = AsyncMock()
    client.create_adhoc_order.return_value = {"order_id": 880011, "shipment_id": 770022}
    client.assign_awb.return_value = {
        "awb_assign_status": 1,
        "response": {
            "data": {"awb_code": "AWB123456", "courier_name": "Delhivery Surface", "courier_company_id": 12}
        },
    }
    client.cancel_orders.return_value = {"status": 200}
    client.generate_label.return_value = {"label_created": 1, "label_url": "https://labels.example.com/1.pdf"}
    return client


@pytest.fixture
def shiprocket():
    client = _mock_client()
    with patch.object(shipment_service, "shiprocket_client", client):
        yield client


@pytest.fixture
def webhook_token(monkeypatch):
    monkeypatch.setattr(settings, "shiprocket_webhook_token", "sr-hook-token")
    return "sr-hook-token"


# ── Booking ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_shipment_records_awb(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 2)])

    await shipment_service.create_shipment(db_session, order=order)

    assert order.awb_code == "AWB123456"
    assert order.shiprocket_order_id == "880011"
    assert order.shipment_id == "770022"
    assert order.courier_name == "Delhivery Surface"
    assert order.lifecycle_status == "AWB_ASSIGNED"
    assert order.status == "processing"
    assert [e.status for e in order.shipment_events] == ["AWB_ASSIGNED"]

    payload = shiprocket.create_adhoc_order.call_args.args[0]
    assert payload["order_id"] == order.display_order_id
    assert payload["payment_method"] == "COD"
    assert payload["order_items"][0]["units"] == 2


@pytest.mark.asyncio
async def test_create_shipment_twice_conflicts(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    await shipment_service.create_shipment(db_session, order=order)

    with pytest.raises(ConflictError):
        await shipment_service.create_shipment(db_session, order=order)


@pytest.mark.asyncio
async def test_unpaid_order_cannot_ship(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)], payment_method="razorpay")
    with pytest.raises(ConflictError):
        await shipment_service.create_shipment(db_session, order=order)
    shiprocket.create_adhoc_order.assert_not_called()


@pytest.mark.asyncio
async def test_awb_failure_leaves_order_untouched(db_session, customer, product, place_order, shiprocket):
    shiprocket.assign_awb.return_value = {"awb_assign_status": 0, "message": "No courier serviceable"}
    order = await place_order(customer, [(product.id, "7", 1)])

    with pytest.raises(ShipmentProviderError):
        await shipment_service.create_shipment(db_session, order=order)
    assert order.awb_code is None
    assert order.status == "confirmed"


@pytest.mark.asyncio
async def test_cancel_shipment_clears_identifiers(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    await shipment_service.create_shipment(db_session, order=order)

    await shipment_service.cancel_shipment(db_session, order=order)

    shiprocket.cancel_orders.assert_awaited_once_with(["880011"])
    assert order.awb_code is None
    assert order.shipment_id is None
    assert order.lifecycle_status == "CANCELLED"
    assert order.shipment_events[-1].status == "SHIPMENT_CANCELLED"


@pytest.mark.asyncio
async def test_bulk_create_reports_each_order(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    results = await shipment_service.bulk_create_shipments(db_session, order_ids=[order.id, 4242])

    assert results[0]["success"] is True
    assert results[0]["awb_code"] == "AWB123456"
    assert results[1]["success"] is False


@pytest.mark.asyncio
async def test_rates_sorted_cheapest_first(shiprocket):
    shiprocket.serviceability.return_value = {
        "data": {
            "available_courier_companies": [
                {"courier_company_id": 1, "courier_name": "Express", "rate": 140.0, "cod": 1},
                {"courier_company_id": 2, "courier_name": "Surface", "rate": 72.5, "cod": 0},
            ]
        }
    }
    rates = await shipment_service.get_rates(delivery_pincode="560001")
    assert [r["courier_name"] for r in rates] == ["Surface", "Express"]
    assert rates[1]["cod"] is True


# ── Tracking ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_track_delivered_moves_order(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    await shipment_service.create_shipment(db_session, order=order)
    shiprocket.track_awb.return_value = {
        "tracking_data": {
            "shipment_track": [{"current_status": "Delivered"}],
            "shipment_track_activities": [
                {"date": "2025-03-10 09:15:00", "sr-status-label": "PICKED UP", "activity": "Picked", "location": "Delhi"},
                {"date": "2025-03-12 18:40:00", "sr-status-label": "DELIVERED", "activity": "Delivered", "location": "Bengaluru"},
            ],
        }
    }

    await shipment_service.track_shipment(db_session, order=order)

    assert order.lifecycle_status == "DELIVERED"
    assert order.status == "delivered"
    assert order.payment_status == "paid"
    statuses = [e.status for e in order.shipment_events]
    assert "PICKED UP" in statuses and "DELIVERED" in statuses


@pytest.mark.asyncio
async def test_retrack_with_unparseable_dates_adds_nothing(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    await shipment_service.create_shipment(db_session, order=order)
    shiprocket.track_awb.return_value = {
        "tracking_data": {
            "shipment_track": [{"current_status": "In Transit"}],
            "shipment_track_activities": [
                {"date": "yesterday", "sr-status-label": "IN TRANSIT", "activity": "Bagged", "location": "Nagpur Hub"},
            ],
        }
    }

    await shipment_service.track_shipment(db_session, order=order)
    count = len(order.shipment_events)
    await shipment_service.track_shipment(db_session, order=order)
    await shipment_service.track_shipment(db_session, order=order)

    assert len(order.shipment_events) == count
    assert [e.status for e in order.shipment_events].count("IN TRANSIT") == 1


@pytest.mark.asyncio
async def test_track_without_awb(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    with pytest.raises(ConflictError):
        await shipment_service.track_shipment(db_session, order=order)


# ── Webhook ──────────────────────────────────────────────────────────


class TestShiprocketWebhook:

    @pytest.mark.asyncio
    async def test_rejects_bad_token(self, db_session, webhook_token):
        with pytest.raises(UnauthorizedError):
            await shipment_service.handle_webhook(db_session, payload={"awb": "X"}, token="wrong")

    @pytest.mark.asyncio
    async def test_fails_closed_without_token(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "shiprocket_webhook_token", "")
        with pytest.raises(UnauthorizedError):
            await shipment_service.handle_webhook(db_session, payload={"awb": "X"}, token="")

    @pytest.mark.asyncio
    async def test_in_transit_marks_shipped(self, db_session, customer, product, place_order, shiprocket, webhook_token):
        order = await place_order(customer, [(product.id, "7", 1)])
        await shipment_service.create_shipment(db_session, order=order)

        result = await shipment_service.handle_webhook(
            db_session,
            payload={
                "awb": "AWB123456",
                "current_status": "In Transit",
                "current_timestamp": "2025-03-11 11:00:00",
                "scans": [{"date": "2025-03-11 11:00:00", "activity": "Bagged", "location": "Nagpur Hub"}],
            },
            token=webhook_token,
        )

        assert result["status"] == "processed"
        assert order.status == "shipped"
        assert order.lifecycle_status == "IN TRANSIT"
        assert order.shipment_events[-1].location == "Nagpur Hub"

    @pytest.mark.asyncio
    async def test_duplicate_push_applied_once(self, db_session, customer, product, place_order, shiprocket, webhook_token):
        order = await place_order(customer, [(product.id, "7", 1)])
        await shipment_service.create_shipment(db_session, order=order)
        payload = {"awb": "AWB123456", "current_status": "PICKED UP", "current_timestamp": "2025-03-10 09:15:00"}

        await shipment_service.handle_webhook(db_session, payload=payload, token=webhook_token)
        second = await shipment_service.handle_webhook(db_session, payload=payload, token=webhook_token)

        assert second == {"status": "duplicate"}
        assert [e.status for e in order.shipment_events].count("PICKED UP") == 1

    @pytest.mark.asyncio
    async def test_unknown_awb_logged(self, db_session, webhook_token):
        result = await shipment_service.handle_webhook(
            db_session, payload={"awb": "NOPE", "current_status": "DELIVERED"}, token=webhook_token
        )
        assert result["status"] == "ignored"

        res = await db_session.execute(select(WebhookLog))
        log = res.scalar_one()
        assert log.status == "failed"
        assert log.error == "unknown order"


# ── Warehouse operations ─────────────────────────────────────────────


@pytest_asyncio.fixture
async def booked_order(db_session, customer, product, place_order, shiprocket):
    order = await place_order(customer, [(product.id, "7", 1)])
    await shipment_service.create_shipment(db_session, order=order)
    return order


class TestWarehouseOperations:

    @pytest.mark.asyncio
    async def test_schedule_pickup(self, db_session, booked_order, shiprocket):
        shiprocket.generate_pickup.return_value = {
            "pickup_status": 1,
            "response": {"pickup_scheduled_date": "2025-03-11 10:00:00"},
        }

        await shipment_service.schedule_pickup(db_session, order=booked_order)

        shiprocket.generate_pickup.assert_awaited_once_with(["770022"])
        assert booked_order.pickup_scheduled_at == datetime(2025, 3, 11, 10, 0)
        assert booked_order.lifecycle_status == "PICKUP_SCHEDULED"
        assert booked_order.shipment_events[-1].status == "PICKUP_SCHEDULED"

    @pytest.mark.asyncio
    async def test_pickup_refused(self, db_session, booked_order, shiprocket):
        shiprocket.generate_pickup.return_value = {"pickup_status": 0, "message": "Already in pickup queue"}
        with pytest.raises(ShipmentProviderError):
            await shipment_service.schedule_pickup(db_session, order=booked_order)
        assert booked_order.pickup_scheduled_at is None

    @pytest.mark.asyncio
    async def test_pickup_needs_awb(self, db_session, customer, product, place_order, shiprocket):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ConflictError):
            await shipment_service.schedule_pickup(db_session, order=order)
        shiprocket.generate_pickup.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_manifest(self, db_session, booked_order, shiprocket):
        shiprocket.generate_manifest.return_value = {"manifest_url": "https://labels.example.com/m1.pdf"}

        await shipment_service.generate_manifest(db_session, order=booked_order)

        shiprocket.generate_manifest.assert_awaited_once_with(["770022"])
        assert booked_order.manifest_url == "https://labels.example.com/m1.pdf"

    @pytest.mark.asyncio
    async def test_manifest_without_url(self, db_session, booked_order, shiprocket):
        shiprocket.generate_manifest.return_value = {"status": 0}
        with pytest.raises(ShipmentProviderError):
            await shipment_service.generate_manifest(db_session, order=booked_order)
        assert booked_order.manifest_url is None

    @pytest.mark.asyncio
    async def test_generate_label(self, db_session, booked_order, shiprocket):
        await shipment_service.generate_label(db_session, order=booked_order)

        shiprocket.generate_label.assert_awaited_once_with(["770022"])
        assert booked_order.label_url == "https://labels.example.com/1.pdf"

    @pytest.mark.asyncio
    async def test_label_not_created(self, db_session, booked_order, shiprocket):
        shiprocket.generate_label.return_value = {"label_created": 0, "response": "Invalid shipment"}
        with pytest.raises(ShipmentProviderError):
            await shipment_service.generate_label(db_session, order=booked_order)

    @pytest.mark.asyncio
    async def test_bulk_labels_skip_unbooked(self, db_session, customer, product, place_order, booked_order, shiprocket):
        unbooked = await place_order(customer, [(product.id, "8", 1)])

        result = await shipment_service.bulk_print_labels(
            db_session, order_ids=[booked_order.id, unbooked.id, 4242]
        )

        shiprocket.generate_label.assert_awaited_once_with(["770022"])
        assert result["label_url"] == "https://labels.example.com/1.pdf"
        assert result["included"] == [booked_order.display_order_id]
        assert {s["error"] for s in result["skipped"]} == {"no shipment", "not found"}

    @pytest.mark.asyncio
    async def test_bulk_labels_nothing_booked(self, db_session, customer, product, place_order, shiprocket):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ValidationError):
            await shipment_service.bulk_print_labels(db_session, order_ids=[order.id])
        shiprocket.generate_label.assert_not_called()

    @pytest.mark.asyncio
    async def test_mark_shipped(self, db_session, booked_order, admin):
        await shipment_service.mark_shipped(db_session, order=booked_order, actor_id=admin.id)

        assert booked_order.status == "shipped"
        assert booked_order.lifecycle_status == "SHIPPED"
        assert booked_order.shipment_events[-1].status == "SHIPPED"

    @pytest.mark.asyncio
    async def test_mark_shipped_needs_tracking(self, db_session, customer, product, place_order):
        order = await place_order(customer, [(product.id, "7", 1)])
        with pytest.raises(ConflictError):
            await shipment_service.mark_shipped(db_session, order=order)
        assert order.status == "confirmed"


# ── Reconcile ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reconcile_retracks_shipped_orders(db_session, customer, product, place_order, shiprocket):
    orders = []
    for size in ("7", "8"):
        order = await place_order(customer, [(product.id, size, 1)])
        await shipment_service.create_shipment(db_session, order=order)
        await shipment_service.mark_shipped(db_session, order=order)
        orders.append(order)
    delivered = {
        "tracking_data": {
            "shipment_track": [{"current_status": "Delivered"}],
            "shipment_track_activities": [
                {"date": "2025-03-12 18:40:00", "sr-status-label": "DELIVERED", "activity": "Delivered"},
            ],
        }
    }
    shiprocket.track_awb.side_effect = [delivered, ShipmentProviderError("Shiprocket timed out")]

    result = await shipment_service.reconcile_shipments(db_session)

    assert result["checked"] == 2
    assert result["delivered"] == 1
    assert result["failed"][0]["error"] == "Shiprocket timed out"
    assert sorted(o.status for o in orders) == ["delivered", "shipped"]


@pytest.mark.asyncio
async def test_reconcile_ignores_unshipped(db_session, customer, product, place_order, shiprocket):
    await place_order(customer, [(product.id, "7", 1)])
    result = await shipment_service.reconcile_shipments(db_session)
    assert result == {"checked": 0, "delivered": 0, "failed": []}
    shiprocket.track_awb.assert_not_called()


# ── Pincode check ────────────────────────────────────────────────────


class TestPincodeCheck:

    @pytest.mark.asyncio
    async def test_serviceable(self, shiprocket):
        shiprocket.serviceability.return_value = {
            "data": {
                "available_courier_companies": [
                    {"courier_name": "Express", "rate": 140.0, "cod": 1, "estimated_delivery_days": "2"},
                    {"courier_name": "Surface", "rate": 72.5, "cod": 0, "estimated_delivery_days": "5"},
                ]
            }
        }

        result = await shipment_service.check_pincode(pincode=" 560001 ")

        assert result == {
            "pincode": "560001",
            "serviceable": True,
            "cod_available": True,
            "courier_count": 2,
            "estimated_delivery_days": 2,
        }

    @pytest.mark.asyncio
    async def test_no_courier_is_not_serviceable(self, shiprocket):
        shiprocket.serviceability.side_effect = ShipmentProviderError(
            "Shiprocket error: No courier serviceable", details={"status": 404, "path": "/courier/serviceability/"}
        )

        result = await shipment_service.check_pincode(pincode="744301")

        assert result["serviceable"] is False
        assert result["cod_available"] is False
        assert result["estimated_delivery_days"] is None

    @pytest.mark.asyncio
    async def test_provider_outage_propagates(self, shiprocket):
        shiprocket.serviceability.side_effect = ShipmentProviderError("Shiprocket unreachable: timeout")
        with pytest.raises(ShipmentProviderError):
            await shipment_service.check_pincode(pincode="560001")

    @pytest.mark.asyncio
    async def test_bad_pincode_never_calls_shiprocket(self, shiprocket):
        with pytest.raises(ValidationError):
            await shipment_service.check_pincode(pincode="56001")
        shiprocket.serviceability.assert_not_called()
