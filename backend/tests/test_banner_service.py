"""
Unit tests for the app banner service.

Covers link validation, the platform filter and the schedule window of
the public carousel.
"""
from datetime import datetime, timedelta

import pytest

from domain.errors import NotFoundError, ValidationError
from services import banner_service


pytestmark = pytest.mark.unit


async def _banner(db, **data):
    return await banner_service.create_banner(db, data={"image_url": "https://cdn.example.com/b.jpg", **data})


@pytest.mark.asyncio
async def test_platform_filter(db_session):
    app_only = await _banner(db_session, platform="app", title="App")
    web_only = await _banner(db_session, platform="web", title="Web")
    both = await _banner(db_session, title="Both")

    web = await banner_service.active_banners(db_session, platform="web")
    app = await banner_service.active_banners(db_session, platform="app")

    assert {b.id for b in web} == {web_only.id, both.id}
    assert {b.id for b in app} == {app_only.id, both.id}


@pytest.mark.asyncio
async def test_schedule_window(db_session):
    now = datetime.utcnow()
    live = await _banner(db_session, start_date=now - timedelta(days=1), end_date=now + timedelta(days=1))
    await _banner(db_session, start_date=now + timedelta(days=1))
    await _banner(db_session, start_date=now - timedelta(days=3), end_date=now - timedelta(days=1))
    open_ended = await _banner(db_session, start_date=now - timedelta(hours=1))

    active = await banner_service.active_banners(db_session)

    assert {b.id for b in active} == {live.id, open_ended.id}


@pytest.mark.asyncio
async def test_inactive_hidden(db_session):
    b = await _banner(db_session)
    await banner_service.update_banner(db_session, banner_id=b.id, data={"is_active": False})
    assert await banner_service.active_banners(db_session) == []


@pytest.mark.asyncio
async def test_unknown_platform(db_session):
    with pytest.raises(ValidationError):
        await banner_service.active_banners(db_session, platform="tv")


@pytest.mark.asyncio
async def test_end_before_start_rejected(db_session):
    now = datetime.utcnow()
    with pytest.raises(ValidationError) as exc:
        await _banner(db_session, start_date=now, end_date=now - timedelta(hours=1))
    assert exc.value.details["field"] == "end_date"


@pytest.mark.asyncio
async def test_link_needs_value(db_session):
    with pytest.raises(ValidationError):
        await _banner(db_session, link_type="product")


@pytest.mark.asyncio
async def test_update_null_required_field(db_session):
    b = await _banner(db_session)
    with pytest.raises(ValidationError) as exc:
        await banner_service.update_banner(db_session, banner_id=b.id, data={"order": None})
    assert exc.value.details["field"] == "order"


@pytest.mark.asyncio
async def test_update_clears_schedule(db_session):
    b = await _banner(db_session, end_date=datetime.utcnow() - timedelta(days=1))
    await banner_service.update_banner(db_session, banner_id=b.id, data={"end_date": None})
    assert [x.id for x in await banner_service.active_banners(db_session)] == [b.id]


@pytest.mark.asyncio
async def test_reorder(db_session):
    first = await _banner(db_session)
    second = await _banner(db_session)

    await banner_service.reorder(db_session, banner_ids=[second.id, first.id])

    assert [b.id for b in await banner_service.active_banners(db_session)] == [second.id, first.id]
    with pytest.raises(NotFoundError):
        await banner_service.reorder(db_session, banner_ids=[first.id, 999])
