"""
Admin order endpoints — order list/detail, status transitions,
cancellation, manual shipping details and Shiprocket shipment actions.
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_admin
from domain.enums import CancelledBy
from domain.responses import paginated_response, success_response
from models import ShippingAddress, order_out
from services import order_service, shipment_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin-orders"])


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., min_length=1, max_length=30)
    reason: str | None = Field(default=None, max_length=500)


class BulkStatusRequest(BaseModel):
    order_ids: list[int] = Field(..., min_length=1, max_length=200)
    status: str = Field(..., min_length=1, max_length=30)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class ShippingInfoRequest(BaseModel):
    courier: str | None = Field(default=None, max_length=100)
    tracking_id: str | None = Field(default=None, max_length=100)


class BulkOrdersRequest(BaseModel):
    order_ids: list[int] = Field(..., min_length=1, max_length=100)


class CreateShipmentRequest(BaseModel):
    courier_id: int | None = Field(default=None, gt=0)


def _detail(order) -> dict:
    return {**order_out(order), "allowed_transitions": order_service.allowed_transitions(order)}


# ── Orders ──────────────────────────────────────────────────────────

@router.get("/orders")
async def list_orders(
    status: str | None = Query(None),
    search: str | None = Query(None, max_length=100),
    payment_method: str | None = Query(None),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db,
        status=status,
        search=search,
        payment_method=payment_method,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        [order_out(o) for o in orders], limit=page["limit"], offset=page["offset"], total=total
    )


@router.get("/orders/by-code/{display_order_id}")
async def get_order_by_code(
    display_order_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_by_display_id(db, display_order_id)
    return success_response(data=_detail(order))


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    return success_response(data=_detail(order))


@router.get("/users/{user_id}/orders")
async def user_orders(
    user_id: int,
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_user_orders(
        db, user_id=user_id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [order_out(o) for o in orders], limit=page["limit"], offset=page["offset"], total=total
    )


@router.patch("/orders/{order_id}/status")
async def update_status(
    order_id: int,
    request: StatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.update_status(
        db,
        order=order,
        new_status=request.status,
        actor=CancelledBy.ADMIN.value,
        actor_id=admin.id,
        reason=request.reason,
    )
    await db.commit()
    return success_response(data=_detail(order))


@router.post("/orders/{order_id}/advance")
async def advance_status(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.advance_status(db, order=order, actor_id=admin.id)
    await db.commit()
    return success_response(data=_detail(order))


@router.post("/orders/bulk-status")
async def bulk_update_status(
    request: BulkStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    results = await order_service.bulk_update_status(
        db, order_ids=request.order_ids, new_status=request.status, actor_id=admin.id
    )
    await db.commit()
    updated = sum(1 for r in results if r["success"])
    return success_response(data=results, meta={"updated": updated, "failed": len(results) - updated})


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    request: CancelRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.cancel_order(
        db, order=order, reason=request.reason, actor=CancelledBy.ADMIN.value, actor_id=admin.id
    )
    await db.commit()
    return success_response(data=_detail(order))


@router.patch("/orders/{order_id}/shipping-info")
async def update_shipping_info(
    order_id: int,
    request: ShippingInfoRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.update_shipping_info(
        db, order=order, courier=request.courier, tracking_id=request.tracking_id
    )
    await db.commit()
    return success_response(data=_detail(order))


@router.patch("/orders/{order_id}/address")
async def update_shipping_address(
    order_id: int,
    request: ShippingAddress,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.update_shipping_address(db, order=order, address=request.model_dump())
    await db.commit()
    return success_response(data=_detail(order))


# ── Shipments (Shiprocket) ──────────────────────────────────────────

@router.get("/shipments/rates")
async def shipping_rates(
    pincode: str = Query(..., pattern=r"^[1-9][0-9]{5}$"),
    weight: float | None = Query(None, gt=0, le=50),
    cod: bool = Query(False),
    admin: User = Depends(require_admin),
):
    rates = await shipment_service.get_rates(delivery_pincode=pincode, weight=weight, cod=cod)
    return success_response(data=rates, meta={"total": len(rates)})


@router.get("/shipments/pickup-addresses")
async def pickup_addresses(admin: User = Depends(require_admin)):
    return success_response(data=await shipment_service.get_pickup_addresses())


@router.post("/shipments/bulk-create")
async def bulk_create_shipments(
    request: BulkOrdersRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    results = await shipment_service.bulk_create_shipments(db, order_ids=request.order_ids)
    await db.commit()
    created = sum(1 for r in results if r["success"])
    return success_response(data=results, meta={"created": created, "failed": len(results) - created})


@router.post("/shipments/bulk-labels")
async def bulk_print_labels(
    request: BulkOrdersRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await shipment_service.bulk_print_labels(db, order_ids=request.order_ids)
    await db.commit()
    return success_response(data=result)


@router.post("/shipments/reconcile")
async def reconcile_shipments(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await shipment_service.reconcile_shipments(db)
    await db.commit()
    return success_response(data=result)


@router.post("/orders/{order_id}/shipment")
async def create_shipment(
    order_id: int,
    request: CreateShipmentRequest | None = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.create_shipment(
        db, order=order, courier_id=request.courier_id if request else None
    )
    await db.commit()
    return success_response(data=_detail(order))


@router.post("/orders/{order_id}/shipment/label")
async def generate_label(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.generate_label(db, order=order)
    await db.commit()
    return success_response(data={"order_id": order.display_order_id, "label_url": order.label_url})


@router.get("/orders/{order_id}/shipment/track")
async def track_shipment(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.track_shipment(db, order=order)
    await db.commit()
    return success_response(data=_detail(order))


@router.post("/orders/{order_id}/shipment/cancel")
async def cancel_shipment(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.cancel_shipment(db, order=order)
    await db.commit()
    return success_response(data=_detail(order))


@router.post("/orders/{order_id}/shipment/pickup")
async def schedule_pickup(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.schedule_pickup(db, order=order)
    await db.commit()
    return success_response(data=_detail(order))


@router.post("/orders/{order_id}/shipment/manifest")
async def generate_manifest(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.generate_manifest(db, order=order)
    await db.commit()
    return success_response(data={"order_id": order.display_order_id, "manifest_url": order.manifest_url})


@router.post("/orders/{order_id}/shipment/mark-shipped")
async def mark_shipped(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await shipment_service.mark_shipped(db, order=order, actor_id=admin.id)
    await db.commit()
    return success_response(data=_detail(order))
