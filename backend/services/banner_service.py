"""
App Banner Service

Home-screen carousel for the app and website, ordered and scheduled.
"""

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import AppBanner
from domain.enums import BannerLinkType, BannerPlatform
from domain.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_FIELDS = (
    "image_url",
    "image_key",
    "blurhash",
    "link_type",
    "link_value",
    "title",
    "subtitle",
    "is_active",
    "order",
    "platform",
    "start_date",
    "end_date",
)
_CLEARABLE_FIELDS = {"start_date", "end_date"}


def _check(banner: AppBanner) -> None:
    if banner.link_type not in {t.value for t in BannerLinkType}:
        raise ValidationError(f"unknown link type '{banner.link_type}'", field="link_type")
    if banner.link_type != BannerLinkType.NONE.value and not banner.link_value:
        raise ValidationError("required when the banner links somewhere", field="link_value")
    if banner.platform not in {p.value for p in BannerPlatform}:
        raise ValidationError(f"unknown platform '{banner.platform}'", field="platform")
    if banner.start_date and banner.end_date and banner.end_date <= banner.start_date:
        raise ValidationError("must be after start_date", field="end_date")


async def get_banner(db: AsyncSession, banner_id: int) -> AppBanner:
    res = await db.execute(select(AppBanner).where(AppBanner.id == banner_id))
    banner = res.scalar_one_or_none()
    if not banner:
        raise NotFoundError("Banner", str(banner_id))
    return banner


async def create_banner(db: AsyncSession, *, data: dict) -> AppBanner:
    banner = AppBanner(
        link_type=BannerLinkType.NONE.value,
        platform=BannerPlatform.BOTH.value,
        created_at=datetime.utcnow(),
    )
    for field in _FIELDS:
        if data.get(field) is not None:
            setattr(banner, field, data[field])
    _check(banner)
    db.add(banner)
    await db.flush()
    return banner


async def update_banner(db: AsyncSession, *, banner_id: int, data: dict) -> AppBanner:
    banner = await get_banner(db, banner_id)
    for field in _FIELDS:
        if field not in data:
            continue
        if data[field] is None and field not in _CLEARABLE_FIELDS:
            raise ValidationError("cannot be null", field=field)
        setattr(banner, field, data[field])
    _check(banner)
    await db.flush()
    return banner


async def delete_banner(db: AsyncSession, *, banner_id: int) -> None:
    banner = await get_banner(db, banner_id)
    await db.delete(banner)
    await db.flush()


async def reorder(db: AsyncSession, *, banner_ids: list[int]) -> list[AppBanner]:
    """Set `order` to each banner's position in banner_ids."""
    res = await db.execute(select(AppBanner).where(AppBanner.id.in_(banner_ids)))
    by_id = {b.id: b for b in res.scalars().all()}
    missing = [bid for bid in banner_ids if bid not in by_id]
    if missing:
        raise NotFoundError("Banner", ", ".join(str(m) for m in missing))
    for position, bid in enumerate(banner_ids):
        by_id[bid].order = position
    await db.flush()
    return [by_id[bid] for bid in banner_ids]


async def list_banners(db: AsyncSession) -> list[AppBanner]:
    res = await db.execute(select(AppBanner).order_by(AppBanner.order.asc(), AppBanner.id.asc()))
    return list(res.scalars().all())


async def active_banners(db: AsyncSession, *, platform: str = BannerPlatform.WEB.value) -> list[AppBanner]:
    """Active banners for a platform whose schedule window contains now."""
    if platform not in {p.value for p in BannerPlatform}:
        raise ValidationError(f"unknown platform '{platform}'", field="platform")
    now = datetime.utcnow()
    platforms = [platform, BannerPlatform.BOTH.value] if platform != BannerPlatform.BOTH.value else [p.value for p in BannerPlatform]
    res = await db.execute(
        select(AppBanner)
        .where(
            AppBanner.is_active == True,  # noqa: E712
            AppBanner.platform.in_(platforms),
            or_(AppBanner.start_date.is_(None), AppBanner.start_date <= now),
            or_(AppBanner.end_date.is_(None), AppBanner.end_date > now),
        )
        .order_by(AppBanner.order.asc(), AppBanner.id.asc())
    )
    return list(res.scalars().all())
