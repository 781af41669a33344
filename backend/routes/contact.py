"""
Contact form endpoint — public, rate limited per client IP.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from services import contact_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["contact"])


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=200)
    subject: str = Field("", max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)


@router.post("/contact", status_code=201)
async def submit(
    request: ContactRequest,
    user: User | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=900)),
):
    msg = await contact_service.submit_message(
        db,
        name=request.name,
        email=request.email,
        subject=request.subject,
        message=request.message,
        user_id=user.id if user else None,
    )
    await db.commit()
    return success_response(data={"id": msg.id, "message": "Thanks, we will get back to you soon."})
