"""
Unit tests for the storefront filter service.

Covers price-range validation, updates and the grouped public listing.
"""
import pytest

from domain.errors import NotFoundError, ValidationError
from services import filter_service


pytestmark = pytest.mark.unit


def _price(name="Under 2000", min_price=0, max_price=2000, **extra):
    return {"type": "priceRange", "name": name, "min_price": min_price, "max_price": max_price, **extra}


@pytest.mark.asyncio
async def test_create_price_range(db_session):
    f = await filter_service.create_filter(db_session, data=_price(min_price=500))
    assert f.value == "under 2000"
    assert (f.min_price, f.max_price) == (500, 2000)


@pytest.mark.asyncio
@pytest.mark.parametrize("min_price,max_price", [(2000, 2000), (3000, 2000)])
async def test_min_must_be_below_max(db_session, min_price, max_price):
    with pytest.raises(ValidationError) as exc:
        await filter_service.create_filter(db_session, data=_price(min_price=min_price, max_price=max_price))
    assert exc.value.details["field"] == "max_price"


@pytest.mark.asyncio
async def test_open_ended_range_allowed(db_session):
    f = await filter_service.create_filter(db_session, data=_price(name="5000 and up", min_price=5000, max_price=None))
    assert f.max_price is None


@pytest.mark.asyncio
async def test_negative_min_rejected(db_session):
    with pytest.raises(ValidationError):
        await filter_service.create_filter(db_session, data=_price(min_price=-10, max_price=100))


@pytest.mark.asyncio
async def test_unknown_type_rejected(db_session):
    with pytest.raises(ValidationError):
        await filter_service.create_filter(db_session, data={"type": "heel", "name": "Block"})


@pytest.mark.asyncio
async def test_update_cannot_invert_range(db_session):
    f = await filter_service.create_filter(db_session, data=_price(min_price=1000, max_price=2000))
    with pytest.raises(ValidationError):
        await filter_service.update_filter(db_session, filter_id=f.id, data={"min_price": 2500})


@pytest.mark.asyncio
async def test_update_missing_filter(db_session):
    with pytest.raises(NotFoundError):
        await filter_service.update_filter(db_session, filter_id=999, data={"name": "x"})


@pytest.mark.asyncio
async def test_public_filters_grouped_active_only(db_session):
    await filter_service.create_filter(db_session, data={"type": "size", "name": "9", "display_order": 2})
    await filter_service.create_filter(db_session, data={"type": "size", "name": "7", "display_order": 1})
    hidden = await filter_service.create_filter(db_session, data={"type": "color", "name": "Red"})
    await filter_service.toggle_filter(db_session, filter_id=hidden.id)

    grouped = await filter_service.public_filters(db_session)

    assert [f.value for f in grouped["size"]] == ["7", "9"]
    assert grouped["color"] == []
    assert grouped["priceRange"] == []
