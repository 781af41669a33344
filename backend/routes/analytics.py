"""
Storefront event ingestion.

The storefront posts page views, product views and funnel steps here; the
device type is taken from the request's User-Agent, never from the client.
"""

import logging

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from services import analytics_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/analytics", tags=["analytics"])


class TrackEvent(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=30)
    session_id: str = Field(..., min_length=1, max_length=100)
    product_id: int | None = None
    path: str | None = Field(default=None, max_length=500)
    referrer: str | None = Field(default=None, max_length=500)


class TrackRequest(BaseModel):
    events: list[TrackEvent] = Field(..., min_length=1, max_length=analytics_service.MAX_BATCH_EVENTS)


@router.post("/track", status_code=202)
async def track(
    request: TrackRequest,
    user_agent: str | None = Header(None, alias="User-Agent"),
    user: User | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=120, window_seconds=60)),
):
    count = await analytics_service.record_events(
        db,
        events=[e.model_dump() for e in request.events],
        user_agent=user_agent,
        user_id=user.id if user else None,
    )
    await db.commit()
    return success_response(data={"recorded": count})
