"""
Unit tests for the category service.
"""
import pytest

from domain.errors import ConflictError, NotFoundError, ValidationError
from services import category_service


pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_create_derives_slug(db_session):
    category = await category_service.create_category(db_session, name="Running Shoes")
    assert category.slug == "running-shoes"
    assert category.is_active is True


@pytest.mark.asyncio
@pytest.mark.parametrize("name,slug", [("sneakers", None), ("Kicks", "sneakers")])
async def test_duplicate_name_or_slug(db_session, name, slug):
    await category_service.create_category(db_session, name="Sneakers")
    with pytest.raises(ConflictError):
        await category_service.create_category(db_session, name=name, slug=slug)


@pytest.mark.asyncio
async def test_bad_slug(db_session):
    with pytest.raises(ValidationError):
        await category_service.create_category(db_session, name="Boots", slug="Boots & More")


@pytest.mark.asyncio
async def test_counts_active_products(db_session, product, cheap_product):
    await category_service.create_category(db_session, name="Sneakers")
    await category_service.create_category(db_session, name="Sandals")

    rows = await category_service.list_categories(db_session)

    assert [(r["slug"], r["product_count"]) for r in rows] == [("sandals", 0), ("sneakers", 1)]


@pytest.mark.asyncio
async def test_toggle_hides_from_menu(db_session):
    sneakers = await category_service.create_category(db_session, name="Sneakers")
    await category_service.create_category(db_session, name="Slides")

    await category_service.toggle_category(db_session, category_id=sneakers.id)

    menu = await category_service.list_categories(db_session, active_only=True)
    assert [r["slug"] for r in menu] == ["slides"]
    assert len(await category_service.list_categories(db_session)) == 2


@pytest.mark.asyncio
async def test_rename_keeps_slug(db_session):
    category = await category_service.create_category(db_session, name="Sneakers")
    renamed = await category_service.rename_category(db_session, category_id=category.id, name="Everyday Sneakers")
    assert renamed.name == "Everyday Sneakers"
    assert renamed.slug == "sneakers"


@pytest.mark.asyncio
async def test_missing_category(db_session):
    with pytest.raises(NotFoundError):
        await category_service.toggle_category(db_session, category_id=99)
