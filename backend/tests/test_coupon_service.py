"""
Unit tests for coupon service.

Tests coupon CRUD validation, eligibility rules, discount maths and stats.
"""
from datetime import datetime, timedelta

import pytest

from db_models import Coupon
from domain.errors import ConflictError, ValidationError
from services import coupon_service


pytestmark = pytest.mark.unit


def _in_days(days: int) -> datetime:
    return datetime.utcnow() + timedelta(days=days)


async def _coupon(db, code="WELCOME", **data):
    data.setdefault("type", "flat")
    data.setdefault("value", 100)
    data.setdefault("expiry", _in_days(30))
    coupon = await coupon_service.create_coupon(db, code=code, data=data)
    await db.commit()
    return coupon


# ── Discount maths ───────────────────────────────────────────────────


class TestComputeDiscount:

    def test_percent_rounds_half_up(self):
        coupon = Coupon(type="percent", value=15)
        assert coupon_service.compute_discount(coupon, 1230.0) == 185.0  # 184.5

    def test_percent_cap(self):
        coupon = Coupon(type="percent", value=50, max_discount=300)
        assert coupon_service.compute_discount(coupon, 2000.0) == 300.0

    def test_flat_never_exceeds_total(self):
        coupon = Coupon(type="flat", value=500)
        assert coupon_service.compute_discount(coupon, 349.0) == 349.0

    def test_rounding_never_pushes_past_fractional_total(self):
        coupon = Coupon(type="flat", value=500)
        assert coupon_service.compute_discount(coupon, 99.6) == 99.6

    def test_percent_rounded_then_capped(self):
        coupon = Coupon(type="percent", value=100)
        assert coupon_service.compute_discount(coupon, 99.6) <= 99.6


# ── CRUD ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_code_is_normalized(db_session):
    coupon = await _coupon(db_session, code=" summer-25 ")
    assert coupon.code == "SUMMER-25"


@pytest.mark.asyncio
async def test_duplicate_code(db_session):
    await _coupon(db_session, code="DUP")
    with pytest.raises(ConflictError):
        await _coupon(db_session, code="dup")


@pytest.mark.asyncio
async def test_percent_over_100_rejected(db_session):
    with pytest.raises(ValidationError):
        await _coupon(db_session, type="percent", value=120)


@pytest.mark.asyncio
async def test_expiry_before_start_rejected(db_session):
    with pytest.raises(ValidationError):
        await _coupon(db_session, valid_from=_in_days(5), expiry=_in_days(1))


@pytest.mark.asyncio
async def test_categories_lowercased(db_session):
    coupon = await _coupon(db_session, applicable_categories=["Sneakers", " Slides"])
    assert coupon.applicable_categories == ["sneakers", "slides"]


@pytest.mark.asyncio
async def test_toggle(db_session):
    coupon = await _coupon(db_session)
    await coupon_service.toggle_coupon(db_session, coupon_id=coupon.id)
    assert coupon.is_active is False


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["value", "expiry", "min_order", "type", "description"])
async def test_update_rejects_null_for_required_fields(db_session, field):
    coupon = await _coupon(db_session)
    with pytest.raises(ValidationError) as exc_info:
        await coupon_service.update_coupon(db_session, coupon_id=coupon.id, data={field: None})
    assert exc_info.value.details["field"] == field


@pytest.mark.asyncio
async def test_update_null_clears_limits(db_session):
    coupon = await _coupon(db_session, usage_limit=50, per_user_limit=1)
    await coupon_service.update_coupon(db_session, coupon_id=coupon.id, data={"usage_limit": None, "value": 150})
    assert coupon.usage_limit is None
    assert coupon.per_user_limit == 1
    assert coupon.value == 150


# ── Eligibility ──────────────────────────────────────────────────────


class TestEvaluate:

    @pytest.mark.asyncio
    async def test_valid_coupon(self, db_session, customer):
        await _coupon(db_session, value=150)
        result = await coupon_service.evaluate(
            db_session, code="welcome", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["valid"] is True
        assert result["discount"] == 150.0
        assert result["coupon"]["code"] == "WELCOME"

    @pytest.mark.asyncio
    async def test_unknown_code(self, db_session, customer):
        result = await coupon_service.evaluate(db_session, code="GHOST", user_id=customer.id, lines=[])
        assert result == {"valid": False, "message": "Invalid coupon code", "discount": 0}

    @pytest.mark.asyncio
    async def test_inactive(self, db_session, customer):
        await _coupon(db_session, is_active=False)
        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["valid"] is False
        assert result["message"] == "Coupon is inactive"

    @pytest.mark.asyncio
    async def test_not_yet_valid(self, db_session, customer):
        await _coupon(db_session, valid_from=_in_days(2))
        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["message"] == "Coupon is not yet valid"

    @pytest.mark.asyncio
    async def test_expired(self, db_session, customer):
        await _coupon(db_session, valid_from=_in_days(-10), expiry=_in_days(-1))
        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["message"] == "Coupon has expired"

    @pytest.mark.asyncio
    async def test_min_order(self, db_session, customer):
        await _coupon(db_session, min_order=2500)
        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["valid"] is False
        assert "2500" in result["message"]

    @pytest.mark.asyncio
    async def test_usage_limit(self, db_session, customer):
        coupon = await _coupon(db_session, usage_limit=1)
        coupon.used_count = 1
        await db_session.flush()
        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["message"] == "Coupon usage limit reached"

    @pytest.mark.asyncio
    async def test_per_user_limit(self, db_session, customer, product, place_order):
        await _coupon(db_session, per_user_limit=1)
        await place_order(customer, [(product.id, "7", 1)], coupon_code="WELCOME")

        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["message"] == "You have already used this coupon"

    @pytest.mark.asyncio
    async def test_first_order_only(self, db_session, customer, product, place_order):
        await _coupon(db_session, code="FIRST", first_order_only=True)
        await place_order(customer, [(product.id, "7", 1)])

        result = await coupon_service.evaluate(
            db_session, code="FIRST", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["valid"] is False

    @pytest.mark.asyncio
    async def test_category_restriction_limits_eligible_amount(self, db_session, customer):
        await _coupon(db_session, type="percent", value=10, applicable_categories=["slides"])
        result = await coupon_service.evaluate(
            db_session,
            code="WELCOME",
            user_id=customer.id,
            lines=[{"category": "sneakers", "amount": 1999}, {"category": "slides", "amount": 600}],
        )
        assert result["valid"] is True
        assert result["discount"] == 60.0

    @pytest.mark.asyncio
    async def test_category_restriction_no_match(self, db_session, customer):
        await _coupon(db_session, applicable_categories=["slides"])
        result = await coupon_service.evaluate(
            db_session, code="WELCOME", user_id=customer.id, lines=[{"category": "sneakers", "amount": 1999}]
        )
        assert result["valid"] is False


# ── Stats ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stats_merge_orders(db_session, customer, product, place_order):
    await _coupon(db_session, code="USED")
    await _coupon(db_session, code="IDLE")
    await place_order(customer, [(product.id, "7", 1)], coupon_code="USED")

    stats = {s["code"]: s for s in await coupon_service.coupon_stats(db_session)}

    assert stats["USED"]["total_orders"] == 1
    assert stats["USED"]["total_discount"] == 100.0
    assert stats["USED"]["unique_users"] == 1
    assert stats["IDLE"]["total_orders"] == 0
    assert stats["IDLE"]["last_used"] is None
