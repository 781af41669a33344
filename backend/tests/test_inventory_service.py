"""
Unit tests for inventory service.

Tests manual stock edits, the movement ledger, stock status buckets and
idempotent stock restore.
"""
import pytest

from domain.enums import StockMovementType
from domain.errors import ConflictError, ValidationError
from services import inventory_service


pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_update_size_stock_writes_signed_movements(db_session, admin, product):
    updated, movements = await inventory_service.update_stock(
        db_session,
        product_id=product.id,
        actor=admin,
        sizes=[{"size": "7", "stock": 8}, {"size": "8", "stock": 1}],
        note="Recount",
    )

    assert {m.size: m.quantity for m in movements} == {"7": 3, "8": -2}
    assert all(m.type == StockMovementType.MANUAL_ADJUSTMENT.value for m in movements)
    assert all(m.performed_by == admin.id for m in movements)
    # aggregate follows the sizes
    assert updated.stock == 9


@pytest.mark.asyncio
async def test_unchanged_size_writes_no_movement(db_session, admin, product):
    _, movements = await inventory_service.update_stock(
        db_session, product_id=product.id, actor=admin, sizes=[{"size": "7", "stock": 5}]
    )
    assert movements == []


@pytest.mark.asyncio
async def test_new_size_row_is_added(db_session, admin, product):
    updated, movements = await inventory_service.update_stock(
        db_session, product_id=product.id, actor=admin, sizes=[{"size": "10", "stock": 4}]
    )
    assert "10" in [s.size for s in updated.sizes]
    assert movements[0].quantity == 4
    assert updated.stock == 12


@pytest.mark.asyncio
async def test_aggregate_stock_for_unsized_product(db_session, admin, cheap_product):
    updated, movements = await inventory_service.update_stock(
        db_session, product_id=cheap_product.id, actor=admin, stock=15
    )
    assert updated.stock == 15
    assert movements[0].quantity == -5
    assert movements[0].size is None


@pytest.mark.asyncio
async def test_aggregate_edit_refused_for_sized_product(db_session, admin, product):
    with pytest.raises(ValidationError):
        await inventory_service.update_stock(db_session, product_id=product.id, actor=admin, stock=50)


@pytest.mark.asyncio
async def test_negative_stock_rejected(db_session, admin, cheap_product):
    with pytest.raises(ValidationError):
        await inventory_service.update_stock(db_session, product_id=cheap_product.id, actor=admin, stock=-1)


@pytest.mark.asyncio
async def test_stock_or_sizes_required(db_session, admin, cheap_product):
    with pytest.raises(ValidationError):
        await inventory_service.update_stock(db_session, product_id=cheap_product.id, actor=admin)


@pytest.mark.asyncio
async def test_stock_status_buckets(db_session, admin, product, cheap_product):
    # product: 8 units (low with threshold 10); cheap_product: 20 units
    assert inventory_service.stock_status(product) == "low_stock"
    assert inventory_service.stock_status(cheap_product) == "in_stock"

    await inventory_service.set_out_of_stock(db_session, product_id=cheap_product.id, is_out_of_stock=True)
    assert inventory_service.stock_status(cheap_product) == "out_of_stock"
    # the override leaves figures alone
    assert cheap_product.stock == 20


@pytest.mark.asyncio
async def test_list_inventory_filters_and_stats(db_session, product, cheap_product):
    low, total, stats = await inventory_service.list_inventory(db_session, stock_filter="low")
    assert total == 1
    assert low[0].id == product.id

    assert stats["total_products"] == 2
    assert stats["low_stock"] == 1
    assert stats["healthy"] == 1
    assert stats["total_units"] == 28


@pytest.mark.asyncio
async def test_list_inventory_rejects_unknown_filter(db_session):
    with pytest.raises(ValidationError):
        await inventory_service.list_inventory(db_session, stock_filter="plenty")


@pytest.mark.asyncio
async def test_restore_runs_once(db_session, customer, product, place_order):
    order = await place_order(customer, [(product.id, "8", 2)])
    assert product.stock == 6

    first = await inventory_service.restore_stock(
        db_session, order=order, movement_type=StockMovementType.RETURN.value
    )
    second = await inventory_service.restore_stock(
        db_session, order=order, movement_type=StockMovementType.CANCELLATION.value
    )

    assert len(first) == 1
    assert second == []
    assert product.stock == 8


@pytest.mark.asyncio
async def test_sale_conflict_when_size_runs_out(db_session, admin, customer, product, place_order):
    from services import cart_service

    await cart_service.set_item(db_session, user_id=customer.id, product_id=product.id, size="8", quantity=3)
    # stock drops behind the cart's back
    await inventory_service.update_stock(db_session, product_id=product.id, actor=admin, sizes=[{"size": "8", "stock": 1}])

    with pytest.raises(ConflictError):
        await place_order(customer, [])


@pytest.mark.asyncio
async def test_list_movements_by_type(db_session, admin, customer, product, place_order):
    await place_order(customer, [(product.id, "7", 1)])
    await inventory_service.update_stock(db_session, product_id=product.id, actor=admin, sizes=[{"size": "9", "stock": 2}])

    sales, total = await inventory_service.list_movements(db_session, movement_type="sale")
    assert total == 1
    assert sales[0].order_code is not None

    everything, total = await inventory_service.list_movements(db_session, product_id=product.id)
    assert total == 2


@pytest.mark.asyncio
async def test_first_size_rows_book_out_the_aggregate(db_session, admin, cheap_product):
    updated, movements = await inventory_service.update_stock(
        db_session, product_id=cheap_product.id, actor=admin, sizes=[{"size": "8", "stock": 5}]
    )

    assert updated.stock == 5
    assert [(m.size, m.quantity) for m in movements] == [(None, -20), ("8", 5)]
    # ledger since creation: +20 initial aggregate, then the conversion
    assert 20 + sum(m.quantity for m in movements) == updated.stock


@pytest.mark.asyncio
async def test_unsized_cart_lines_share_one_label(db_session, customer, cheap_product):
    from services import cart_service

    await cart_service.set_item(db_session, user_id=customer.id, product_id=cheap_product.id, size="a", quantity=3)
    await cart_service.set_item(db_session, user_id=customer.id, product_id=cheap_product.id, size="b", quantity=2)

    items = await cart_service.get_cart_items(db_session, user_id=customer.id)
    assert [(i.size, i.quantity) for i in items] == [("free", 2)]


@pytest.mark.asyncio
async def test_checkout_counts_units_across_lines(db_session, admin, customer, cheap_product, place_order):
    from datetime import datetime

    from db_models import CartItem

    await inventory_service.update_stock(db_session, product_id=cheap_product.id, actor=admin, stock=3)
    # two lines drawing on the same aggregate, e.g. left over from an older client
    for label in ("a", "b"):
        db_session.add(CartItem(
            user_id=customer.id, product_id=cheap_product.id, size=label, quantity=3, added_at=datetime.utcnow(),
        ))
    await db_session.flush()

    with pytest.raises(ConflictError) as exc_info:
        await place_order(customer, [])
    assert exc_info.value.details["requested"] == 6
    assert exc_info.value.details["available"] == 3
    assert cheap_product.stock == 3


@pytest.mark.unit
def test_check_availability_sums_lines_per_size(product):
    # size 8 has 3 units
    inventory_service.check_availability([(product, "8", 2), (product, "7", 5)])
    with pytest.raises(ConflictError):
        inventory_service.check_availability([(product, "8", 2), (product, "8", 2)])
