"""
Coupon service — admin CRUD, eligibility rules and discount maths.

Discounts are computed with Decimal and rounded half-up to whole rupees.
A discount never exceeds the eligible part of the cart.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Coupon, Order
from domain.enums import CouponType, OrderStatus
from domain.errors import ConflictError, NotFoundError, ValidationError
from utils.validators import normalize_coupon_code

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "type",
    "value",
    "max_discount",
    "min_order",
    "valid_from",
    "expiry",
    "is_active",
    "usage_limit",
    "per_user_limit",
    "first_order_only",
    "applicable_categories",
    "description",
)

# Limits that an explicit null clears; every other field keeps a value
_CLEARABLE_FIELDS = {"max_discount", "usage_limit", "per_user_limit"}


def _check_rules(coupon: Coupon) -> None:
    if coupon.type not in {t.value for t in CouponType}:
        raise ValidationError(f"unknown coupon type '{coupon.type}'", field="type")
    if coupon.value <= 0:
        raise ValidationError("must be positive", field="value")
    if coupon.type == CouponType.PERCENT.value and coupon.value > 100:
        raise ValidationError("percent coupons cannot exceed 100", field="value")
    if coupon.valid_from and coupon.expiry and coupon.expiry <= coupon.valid_from:
        raise ValidationError("must be after valid_from", field="expiry")


async def get_coupon(db: AsyncSession, coupon_id: int) -> Coupon:
    res = await db.execute(select(Coupon).where(Coupon.id == coupon_id))
    coupon = res.scalar_one_or_none()
    if not coupon:
        raise NotFoundError("Coupon", str(coupon_id))
    return coupon


async def get_by_code(db: AsyncSession, code: str) -> Coupon | None:
    res = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
    return res.scalar_one_or_none()


async def create_coupon(db: AsyncSession, *, code: str, data: dict) -> Coupon:
    code = normalize_coupon_code(code)
    if await get_by_code(db, code):
        raise ConflictError(f"Coupon {code} already exists")

    coupon = Coupon(code=code, valid_from=data.get("valid_from") or datetime.utcnow())
    for field in _EDITABLE_FIELDS:
        if field in data and data[field] is not None:
            setattr(coupon, field, data[field])
    coupon.applicable_categories = [c.strip().lower() for c in coupon.applicable_categories or []]
    _check_rules(coupon)

    db.add(coupon)
    await db.flush()
    logger.info(f"Coupon created: {code} ({coupon.type} {coupon.value})")
    return coupon


async def update_coupon(db: AsyncSession, *, coupon_id: int, data: dict) -> Coupon:
    coupon = await get_coupon(db, coupon_id)
    if data.get("code"):
        code = normalize_coupon_code(data["code"])
        existing = await get_by_code(db, code)
        if existing and existing.id != coupon.id:
            raise ConflictError(f"Coupon {code} already exists")
        coupon.code = code
    for field in _EDITABLE_FIELDS:
        if field not in data:
            continue
        if data[field] is None and field not in _CLEARABLE_FIELDS:
            raise ValidationError("cannot be null", field=field)
        setattr(coupon, field, data[field])
    coupon.applicable_categories = [c.strip().lower() for c in coupon.applicable_categories or []]
    _check_rules(coupon)
    coupon.updated_at = datetime.utcnow()
    await db.flush()
    return coupon


async def toggle_coupon(db: AsyncSession, *, coupon_id: int) -> Coupon:
    coupon = await get_coupon(db, coupon_id)
    coupon.is_active = not coupon.is_active
    coupon.updated_at = datetime.utcnow()
    await db.flush()
    return coupon


async def delete_coupon(db: AsyncSession, *, coupon_id: int) -> None:
    coupon = await get_coupon(db, coupon_id)
    await db.delete(coupon)
    await db.flush()
    logger.info(f"Coupon deleted: {coupon.code}")


async def list_coupons(db: AsyncSession, *, active: bool | None = None) -> list[Coupon]:
    q = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
    if active is not None:
        q = q.where(Coupon.is_active == active)
    res = await db.execute(q)
    return list(res.scalars().all())


def compute_discount(coupon: Coupon, eligible_total: float) -> float:
    """Discount for an eligible amount: rounded to whole rupees, then capped at the amount."""
    total = Decimal(str(eligible_total))
    if coupon.type == CouponType.PERCENT.value:
        discount = total * Decimal(str(coupon.value)) / Decimal("100")
        if coupon.max_discount:
            discount = min(discount, Decimal(str(coupon.max_discount)))
    else:
        discount = Decimal(str(coupon.value))
    discount = discount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(min(discount, total))


async def _user_order_count(db: AsyncSession, user_id: int, coupon_code: str | None = None) -> int:
    q = select(func.count(Order.id)).where(
        Order.user_id == user_id,
        Order.status != OrderStatus.CANCELLED.value,
    )
    if coupon_code:
        q = q.where(Order.coupon_code == coupon_code)
    return (await db.execute(q)).scalar() or 0


async def evaluate(
    db: AsyncSession,
    *,
    code: str,
    user_id: int,
    lines: list[dict],
) -> dict:
    """
    Check a coupon against a cart.

    lines: [{category, amount}] — one per cart line (amount = price * qty).

    Returns {valid, message, discount, coupon}. Never raises for a coupon
    that simply does not apply; checkout turns valid=False into a 400.
    """
    if not code:
        return {"valid": False, "message": "Coupon code is required", "discount": 0}

    coupon = await get_by_code(db, code)
    if not coupon:
        return {"valid": False, "message": "Invalid coupon code", "discount": 0}
    if not coupon.is_active:
        return {"valid": False, "message": "Coupon is inactive", "discount": 0}

    now = datetime.utcnow()
    if coupon.valid_from and now < coupon.valid_from:
        return {"valid": False, "message": "Coupon is not yet valid", "discount": 0}
    if now > coupon.expiry:
        return {"valid": False, "message": "Coupon has expired", "discount": 0}

    cart_total = sum(float(line["amount"]) for line in lines)
    if cart_total < coupon.min_order:
        return {
            "valid": False,
            "message": f"Minimum order value of ₹{coupon.min_order:g} required",
            "discount": 0,
        }

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return {"valid": False, "message": "Coupon usage limit reached", "discount": 0}

    if coupon.per_user_limit is not None:
        used_by_user = await _user_order_count(db, user_id, coupon.code)
        if used_by_user >= coupon.per_user_limit:
            return {"valid": False, "message": "You have already used this coupon", "discount": 0}

    if coupon.first_order_only and await _user_order_count(db, user_id) > 0:
        return {"valid": False, "message": "Coupon is valid on your first order only", "discount": 0}

    if coupon.applicable_categories:
        allowed = set(coupon.applicable_categories)
        eligible = sum(float(line["amount"]) for line in lines if (line.get("category") or "").lower() in allowed)
        if eligible <= 0:
            return {
                "valid": False,
                "message": "Coupon does not apply to the items in your cart",
                "discount": 0,
            }
    else:
        eligible = cart_total

    return {
        "valid": True,
        "message": "Coupon applied successfully",
        "discount": compute_discount(coupon, eligible),
        "coupon": {"id": coupon.id, "code": coupon.code, "type": coupon.type, "value": coupon.value},
    }


async def increment_usage(db: AsyncSession, *, code: str) -> None:
    await db.execute(
        update(Coupon).where(Coupon.code == code).values(used_count=Coupon.used_count + 1)
    )


async def coupon_stats(db: AsyncSession) -> list[dict]:
    """Every coupon merged with its performance across non-cancelled orders."""
    res = await db.execute(
        select(
            Order.coupon_code,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total), 0.0),
            func.coalesce(func.sum(Order.discount), 0.0),
            func.count(func.distinct(Order.user_id)),
            func.avg(Order.total),
            func.max(Order.created_at),
        )
        .where(Order.coupon_code.is_not(None), Order.status != OrderStatus.CANCELLED.value)
        .group_by(Order.coupon_code)
    )
    by_code = {
        row[0]: {
            "total_orders": row[1],
            "total_revenue": round(float(row[2]), 2),
            "total_discount": round(float(row[3]), 2),
            "unique_users": row[4],
            "avg_order_value": round(float(row[5] or 0.0)),
            "last_used": row[6].isoformat() if row[6] else None,
        }
        for row in res.all()
    }

    empty = {
        "total_orders": 0,
        "total_revenue": 0.0,
        "total_discount": 0.0,
        "unique_users": 0,
        "avg_order_value": 0,
        "last_used": None,
    }
    result = []
    for c in await list_coupons(db):
        result.append({
            "id": c.id,
            "code": c.code,
            "type": c.type,
            "value": c.value,
            "is_active": c.is_active,
            "usage_limit": c.usage_limit,
            "used_count": c.used_count,
            "expiry": c.expiry.isoformat(),
            **by_code.get(c.code, empty),
        })
    return result
