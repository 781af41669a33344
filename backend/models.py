"""
Pydantic models shared across routers.

Request bodies that belong to a single router are declared next to it; this
module holds the fragments reused by several routers (addresses, size stock)
and the response models built straight from ORM rows (from_attributes).
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional
from datetime import datetime


class ApiBase(BaseModel):
    """Shared base — construct by field name or alias, or from ORM attributes."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


def dump(model_cls: type[BaseModel], obj: Any) -> dict:
    """Validate an ORM row against a response model and return JSON-safe data."""
    return model_cls.model_validate(obj).model_dump(mode="json")


# ── Request fragments ───────────────────────────────────────────────

class ShippingAddress(ApiBase):
    name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., pattern=r"^(?:\+91)?[6-9][0-9]{9}$")
    line1: str = Field(..., min_length=1, max_length=255)
    line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=r"^[1-9][0-9]{5}$")


class SizeStock(ApiBase):
    size: str = Field(..., min_length=1, max_length=20)
    stock: int = Field(..., ge=0)


class ProductImage(ApiBase):
    url: str = Field(..., min_length=1)
    key: str = ""
    is_primary: bool = Field(False, alias="isPrimary")
    order: int = 0


# ── Response models ─────────────────────────────────────────────────

class AddressOut(ApiBase):
    id: int
    name: str
    phone: str
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    pincode: str
    country: str
    is_default: bool
    created_at: Optional[datetime] = None


class UserOut(ApiBase):
    id: int
    email: str
    name: str
    phone: Optional[str] = None
    role: str
    is_blocked: bool
    created_at: Optional[datetime] = None


class ProductSizeOut(ApiBase):
    size: str
    stock: int


class ProductOut(ApiBase):
    id: int
    name: str
    slug: str
    description: str
    specifications: str
    material_and_care: str
    shipping_and_returns: str
    category: str
    brand: Optional[str] = None
    sku: Optional[str] = None
    price: float
    compare_price: Optional[float] = None
    stock: int
    sizes: List[ProductSizeOut] = []
    colors: List[str] = []
    tags: List[str] = []
    images: List[dict] = []
    is_active: bool
    is_out_of_stock: bool
    featured: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StockMovementOut(ApiBase):
    id: int
    product_id: int
    type: str
    quantity: int
    size: Optional[str] = None
    order_id: Optional[int] = None
    order_code: Optional[str] = None
    performed_by: Optional[int] = None
    note: str
    created_at: Optional[datetime] = None


class OrderItemOut(ApiBase):
    product_id: int
    name: str
    category: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int
    price: float


class ShipmentEventOut(ApiBase):
    status: str
    activity: Optional[str] = None
    location: Optional[str] = None
    occurred_at: datetime


class CouponOut(ApiBase):
    id: int
    code: str
    type: str
    value: float
    max_discount: Optional[float] = None
    min_order: float
    valid_from: datetime
    expiry: datetime
    is_active: bool
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    used_count: int
    first_order_only: bool
    applicable_categories: List[str] = []
    description: str
    created_at: Optional[datetime] = None


class FilterOut(ApiBase):
    id: int
    type: str
    name: str
    value: str
    display_order: int
    is_active: bool
    min_price: float
    max_price: Optional[float] = None


class ReviewOut(ApiBase):
    id: int
    product_id: int
    user_id: int
    rating: int
    title: str
    comment: str
    photos: List[str] = []
    verified_purchase: bool
    is_hidden: bool
    admin_reply: Optional[str] = None
    replied_at: Optional[datetime] = None
    helpful_votes: int
    created_at: Optional[datetime] = None


class BannerOut(ApiBase):
    id: int
    image_url: str
    image_key: str
    blurhash: str
    link_type: str
    link_value: str
    title: str
    subtitle: str
    is_active: bool
    order: int
    platform: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class NotificationOut(ApiBase):
    id: int
    title: str
    body: str
    type: str
    data: dict = {}
    image_url: str
    is_read: bool
    created_at: Optional[datetime] = None


class NotificationHistoryOut(ApiBase):
    id: int
    title: str
    body: str
    type: str
    target: str
    recipient_count: int
    data: dict = {}
    image_url: str
    sent_by: Optional[int] = None
    created_at: Optional[datetime] = None


class ContactMessageOut(ApiBase):
    id: int
    name: str
    email: str
    subject: str
    message: str
    status: str
    source: str
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None


def order_out(order) -> dict:
    """
    Serialize an Order with its payment, shipping and cancellation
    sub-records nested the way the admin and account screens read them.
    """
    return {
        "id": order.id,
        "order_id": order.display_order_id,
        "user": {
            "id": order.user_id,
            "name": order.user.name if order.user else None,
            "email": order.user.email if order.user else None,
        },
        "status": order.status,
        "items": [dump(OrderItemOut, i) for i in order.items],
        "shipping_address": {
            "name": order.ship_name,
            "phone": order.ship_phone,
            "line1": order.ship_line1,
            "line2": order.ship_line2,
            "city": order.ship_city,
            "state": order.ship_state,
            "pincode": order.ship_pincode,
        },
        "payment": {
            "method": order.payment_method,
            "status": order.payment_status,
            "transaction_id": order.payment_transaction_id,
            "gateway_order_id": order.payment_gateway_order_id,
            "refund_id": order.payment_refund_id,
        },
        "shipping": {
            "shiprocket_order_id": order.shiprocket_order_id,
            "shipment_id": order.shipment_id,
            "awb_code": order.awb_code,
            "courier_name": order.courier_name,
            "label_url": order.label_url,
            "manifest_url": order.manifest_url,
            "tracking_url": order.tracking_url,
            "lifecycle_status": order.lifecycle_status,
            "estimated_delivery_date": order.estimated_delivery_date.isoformat()
            if order.estimated_delivery_date else None,
            "shipment_created_at": order.shipment_created_at.isoformat()
            if order.shipment_created_at else None,
            "pickup_scheduled_at": order.pickup_scheduled_at.isoformat()
            if order.pickup_scheduled_at else None,
            "manual_courier": order.manual_courier,
            "manual_tracking_id": order.manual_tracking_id,
            "tracking_history": [dump(ShipmentEventOut, e) for e in order.shipment_events],
        },
        "totals": {
            "subtotal": order.subtotal,
            "discount": order.discount,
            "shipping": order.shipping_cost,
            "total": order.total,
        },
        "coupon_code": order.coupon_code,
        "cancellation": {
            "reason": order.cancel_reason,
            "cancelled_by": order.cancelled_by,
            "cancelled_at": order.cancelled_at.isoformat() if order.cancelled_at else None,
        } if order.status == "cancelled" else None,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
