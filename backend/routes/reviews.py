"""
Customer review endpoints — write, edit, delete and vote.

The public product review listing lives in routes/store.py.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_user
from domain.constants import MAX_REVIEW_PHOTOS
from domain.responses import success_response
from models import ReviewOut, dump
from services import review_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["reviews"])


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=200)
    comment: str = Field(..., min_length=1, max_length=2000)
    photos: list[str] = Field(default_factory=list, max_length=MAX_REVIEW_PHOTOS)


class ReviewUpdateRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    title: str | None = Field(default=None, min_length=1, max_length=200)
    comment: str | None = Field(default=None, min_length=1, max_length=2000)
    photos: list[str] | None = Field(default=None, max_length=MAX_REVIEW_PHOTOS)


@router.post("/products/{product_id}/reviews", status_code=201)
async def create_review(
    product_id: int,
    request: ReviewCreateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.create_review(
        db,
        user=user,
        product_id=product_id,
        rating=request.rating,
        title=request.title,
        comment=request.comment,
        photos=request.photos,
    )
    await db.commit()
    return success_response(data=dump(ReviewOut, review))


@router.patch("/reviews/{review_id}")
async def update_review(
    review_id: int,
    request: ReviewUpdateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.update_own_review(
        db,
        user=user,
        review_id=review_id,
        rating=request.rating,
        title=request.title,
        comment=request.comment,
        photos=request.photos,
    )
    await db.commit()
    return success_response(data=dump(ReviewOut, review))


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await review_service.delete_review(db, review_id=review_id, user=user)
    await db.commit()
    return success_response(data={"id": review_id, "deleted": True})


@router.post("/reviews/{review_id}/helpful")
async def vote_helpful(
    review_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.vote_helpful(db, user=user, review_id=review_id)
    await db.commit()
    return success_response(data={"id": review.id, "helpful_votes": review.helpful_votes})
