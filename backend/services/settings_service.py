"""
Site settings service — the CMS key/value store behind the storefront.

Keys are dotted "<category>.<name>". Every key has a default below; rows
are created on first write (or by ensure_defaults at startup). Each change
bumps the row's version and appends a SettingAuditLog entry.

Theme settings are exposed to the storefront as CSS custom properties:
    theme.primary_color → --primary-color
"""

import logging
from copy import deepcopy
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import SettingAuditLog, SiteSetting, User
from domain.errors import NotFoundError, ValidationError
from utils.validators import validate_hex_color

logger = logging.getLogger(__name__)

# key: (value, is_public)
DEFAULT_SETTINGS: dict[str, tuple[object, bool]] = {
    # theme
    "theme.primary_color": ("#111111", True),
    "theme.secondary_color": ("#f5f5f5", True),
    "theme.accent_color": ("#e63946", True),
    "theme.background_color": ("#ffffff", True),
    "theme.text_color": ("#1a1a1a", True),
    "theme.font_family": ("Inter, sans-serif", True),
    "theme.border_radius": ("8px", True),
    # announcement bar
    "announcement.enabled": (False, True),
    "announcement.text": ("Free shipping on orders above ₹999", True),
    "announcement.link": ("", True),
    # contact
    "contact.email": ("support@radeo.in", True),
    "contact.phone": ("", True),
    "contact.whatsapp": ("", True),
    "contact.address": ("", True),
    # homepage
    "homepage.hero_title": ("Step into Radeo", True),
    "homepage.hero_subtitle": ("Handcrafted footwear, delivered across India", True),
    "homepage.featured_limit": (8, True),
    "homepage.show_new_arrivals": (True, True),
    # system
    "system.maintenance_mode": (False, True),
    "system.maintenance_message": ("We'll be back shortly.", True),
    "system.order_alert_email": ("", False),
}

CATEGORIES = ("theme", "announcement", "contact", "homepage", "system")


def category_of(key: str) -> str:
    return key.split(".", 1)[0]


def _check_value(key: str, value) -> object:
    if key not in DEFAULT_SETTINGS:
        raise NotFoundError("Setting", key)
    default, _ = DEFAULT_SETTINGS[key]
    if key.startswith("theme.") and key.endswith("_color"):
        return validate_hex_color(value, field=key)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValidationError("must be true or false", field=key)
    elif isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError("must be a non-negative integer", field=key)
    elif isinstance(default, str):
        if not isinstance(value, str) or len(value) > 2000:
            raise ValidationError("must be text up to 2000 characters", field=key)
    return value


async def ensure_defaults(db: AsyncSession) -> int:
    """Insert rows for default keys that are missing. Returns the number created."""
    res = await db.execute(select(SiteSetting.key))
    present = {row[0] for row in res.all()}
    created = 0
    for key, (value, is_public) in DEFAULT_SETTINGS.items():
        if key in present:
            continue
        db.add(SiteSetting(key=key, category=category_of(key), value=deepcopy(value), is_public=is_public, version=1))
        created += 1
    if created:
        await db.flush()
        logger.info(f"Seeded {created} default site settings")
    return created


async def _rows(db: AsyncSession) -> dict[str, SiteSetting]:
    res = await db.execute(select(SiteSetting))
    return {s.key: s for s in res.scalars().all()}


async def public_settings(db: AsyncSession) -> dict:
    """Public settings nested by category, stored values over defaults."""
    rows = await _rows(db)
    result: dict[str, dict] = {c: {} for c in CATEGORIES}
    for key, (default, is_public) in DEFAULT_SETTINGS.items():
        row = rows.get(key)
        public = row.is_public if row else is_public
        if not public:
            continue
        category, name = key.split(".", 1)
        result.setdefault(category, {})[name] = row.value if row else default
    return result


async def theme_css(db: AsyncSession) -> dict:
    settings_by_category = await public_settings(db)
    variables = {
        f"--{name.replace('_', '-')}": str(value)
        for name, value in settings_by_category.get("theme", {}).items()
    }
    css = ":root {\n" + "".join(f"  {k}: {v};\n" for k, v in variables.items()) + "}\n"
    return {"variables": variables, "css": css}


async def list_settings(db: AsyncSession, *, category: str | None = None) -> list[dict]:
    """Admin view: every known key with its current value, default and version."""
    if category and category not in CATEGORIES:
        raise ValidationError(f"must be one of {list(CATEGORIES)}", field="category")
    rows = await _rows(db)
    items = []
    for key, (default, is_public) in DEFAULT_SETTINGS.items():
        if category and category_of(key) != category:
            continue
        row = rows.get(key)
        items.append({
            "key": key,
            "category": category_of(key),
            "value": row.value if row else default,
            "default": default,
            "is_public": row.is_public if row else is_public,
            "version": row.version if row else 0,
            "updated_by": row.updated_by if row else None,
            "updated_at": row.updated_at.isoformat() if row and row.updated_at else None,
        })
    return items


async def _write(db: AsyncSession, key: str, value, actor: User) -> SiteSetting:
    res = await db.execute(select(SiteSetting).where(SiteSetting.key == key))
    row = res.scalar_one_or_none()
    default, is_public = DEFAULT_SETTINGS[key]
    old_value = row.value if row else default

    if row is None:
        row = SiteSetting(key=key, category=category_of(key), value=value, is_public=is_public, version=1)
        db.add(row)
    elif row.value == value:
        return row
    else:
        row.value = value
        row.version += 1
    row.updated_by = actor.id
    row.updated_at = datetime.utcnow()

    db.add(SettingAuditLog(
        key=key,
        old_value=old_value,
        new_value=value,
        version=row.version,
        changed_by=actor.id,
        created_at=datetime.utcnow(),
    ))
    await db.flush()
    logger.info(f"Setting {key} updated to v{row.version} by admin {actor.id}")
    return row


async def update_setting(db: AsyncSession, *, key: str, value, actor: User) -> SiteSetting:
    value = _check_value(key, value)
    return await _write(db, key, value, actor)


async def bulk_update(db: AsyncSession, *, updates: dict, actor: User) -> list[SiteSetting]:
    """All values are validated before any is written."""
    checked = {key: _check_value(key, value) for key, value in updates.items()}
    return [await _write(db, key, value, actor) for key, value in checked.items()]


async def reset_setting(db: AsyncSession, *, key: str, actor: User) -> SiteSetting:
    if key not in DEFAULT_SETTINGS:
        raise NotFoundError("Setting", key)
    default, _ = DEFAULT_SETTINGS[key]
    return await _write(db, key, deepcopy(default), actor)


async def history(db: AsyncSession, *, key: str, limit: int = 20) -> list[SettingAuditLog]:
    if key not in DEFAULT_SETTINGS:
        raise NotFoundError("Setting", key)
    res = await db.execute(
        select(SettingAuditLog)
        .where(SettingAuditLog.key == key)
        .order_by(SettingAuditLog.created_at.desc(), SettingAuditLog.id.desc())
        .limit(limit)
    )
    return list(res.scalars().all())
