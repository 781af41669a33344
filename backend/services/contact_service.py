"""
Contact service — the storefront contact form and the admin inbox.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import ContactMessage
from domain.enums import ContactStatus
from domain.errors import NotFoundError, ValidationError
from utils.validators import validate_email

logger = logging.getLogger(__name__)


async def submit_message(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    message: str,
    subject: str = "",
    source: str = "website",
    user_id: int | None = None,
) -> ContactMessage:
    name, message = (name or "").strip(), (message or "").strip()
    if not name:
        raise ValidationError("is required", field="name")
    if not message:
        raise ValidationError("is required", field="message")

    msg = ContactMessage(
        name=name,
        email=validate_email(email),
        subject=(subject or "").strip(),
        message=message,
        source=source,
        user_id=user_id,
        status=ContactStatus.NEW.value,
    )
    db.add(msg)
    await db.flush()
    logger.info(f"📨 Contact message {msg.id} from {msg.email}")
    return msg


async def get_message(db: AsyncSession, message_id: int) -> ContactMessage:
    res = await db.execute(select(ContactMessage).where(ContactMessage.id == message_id))
    msg = res.scalar_one_or_none()
    if not msg:
        raise NotFoundError("ContactMessage", str(message_id))
    return msg


async def list_messages(
    db: AsyncSession, *, status: str | None = None, limit: int = 20, offset: int = 0
) -> tuple[list[ContactMessage], int]:
    conditions = []
    if status:
        if status not in {s.value for s in ContactStatus}:
            raise ValidationError(f"unknown status '{status}'", field="status")
        conditions.append(ContactMessage.status == status)
    total = (await db.execute(select(func.count(ContactMessage.id)).where(*conditions))).scalar() or 0
    res = await db.execute(
        select(ContactMessage)
        .where(*conditions)
        .order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def set_status(db: AsyncSession, *, message_id: int, status: str) -> ContactMessage:
    if status not in {s.value for s in ContactStatus}:
        raise ValidationError(f"unknown status '{status}'", field="status")
    msg = await get_message(db, message_id)
    msg.status = status
    msg.updated_at = datetime.utcnow()
    await db.flush()
    return msg


async def count_unread(db: AsyncSession) -> int:
    res = await db.execute(
        select(func.count(ContactMessage.id)).where(ContactMessage.status == ContactStatus.NEW.value)
    )
    return res.scalar() or 0
