"""
Customer order endpoints — checkout, order history, cancellation and the
Razorpay checkout handshake.

Payment flow for online orders:
  1) POST /orders                      -> order in pending_payment
  2) POST /orders/{id}/payment         -> Razorpay order id for the widget
  3) POST /orders/{id}/payment/verify  -> checkout callback (signature check)
  4) Razorpay webhook (routes/webhooks.py) confirms or cancels the order
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_user
from domain.enums import CancelledBy, PaymentMethod
from domain.responses import paginated_response, success_response
from middleware.rate_limit import rate_limit
from models import ShippingAddress, order_out
from services import address_service, cart_service, coupon_service, order_service, payment_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["orders"])


class CheckoutRequest(BaseModel):
    shipping_address: ShippingAddress | None = None
    address_id: int | None = Field(default=None, gt=0)
    payment_method: str = Field(PaymentMethod.COD.value, pattern="^(cod|razorpay)$")
    coupon_code: str | None = Field(default=None, max_length=30)

    @model_validator(mode="after")
    def _one_address(self):
        if self.shipping_address is None and self.address_id is None:
            raise ValueError("send shipping_address or a saved address_id")
        return self


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)


@router.post("/orders", status_code=201)
async def checkout(
    request: CheckoutRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if request.address_id:
        saved = await address_service.get_address(db, user_id=user.id, address_id=request.address_id)
        shipping_address = address_service.as_shipping_address(saved)
    else:
        shipping_address = request.shipping_address.model_dump()

    order = await order_service.create_order(
        db,
        user=user,
        shipping_address=shipping_address,
        payment_method=request.payment_method,
        coupon_code=request.coupon_code,
    )
    await db.commit()
    return success_response(data=order_out(order))


@router.get("/orders")
async def my_orders(
    user: User = Depends(require_user),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_user_orders(
        db, user_id=user.id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [order_out(o) for o in orders], limit=page["limit"], offset=page["offset"], total=total
    )


@router.get("/orders/{order_id}")
async def my_order(
    order_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_for_user(db, order_id=order_id, user=user)
    return success_response(data=order_out(order))


@router.post("/orders/{order_id}/cancel")
async def cancel_my_order(
    order_id: int,
    request: CancelRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_for_user(db, order_id=order_id, user=user)
    await order_service.cancel_order(
        db,
        order=order,
        reason=request.reason,
        actor=CancelledBy.CUSTOMER.value,
        actor_id=user.id,
    )
    await db.commit()
    return success_response(data=order_out(order))


@router.post("/orders/{order_id}/payment")
async def create_payment(
    order_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_for_user(db, order_id=order_id, user=user)
    gateway = await payment_service.create_gateway_order(db, order=order)
    await db.commit()
    return success_response(data={"order_id": order.display_order_id, **gateway})


@router.post("/orders/{order_id}/payment/verify")
async def verify_payment(
    order_id: int,
    request: VerifyPaymentRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_for_user(db, order_id=order_id, user=user)
    await payment_service.verify_payment(
        db,
        order=order,
        razorpay_order_id=request.razorpay_order_id,
        razorpay_payment_id=request.razorpay_payment_id,
        signature=request.razorpay_signature,
    )
    await db.commit()
    return success_response(data=order_out(order))


@router.post("/coupons/validate")
async def validate_coupon(
    request: CouponValidateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=settings.coupon_validate_limit_per_hour, window_seconds=3600)),
):
    """Preview a coupon against the current cart."""
    items = await cart_service.get_cart_items(db, user_id=user.id)
    lines = [{"category": i.product.category, "amount": i.product.price * i.quantity} for i in items]
    result = await coupon_service.evaluate(db, code=request.code, user_id=user.id, lines=lines)
    cart_total = round(sum(line["amount"] for line in lines), 2)
    return success_response(
        data={
            **result,
            "cart_total": cart_total,
            "total_after_discount": round(cart_total - result["discount"], 2),
        }
    )
