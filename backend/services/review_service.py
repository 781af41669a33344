"""
Review service — customer reviews, helpful votes and admin moderation.

One review per product per customer. A review is a verified purchase when
one of the customer's delivered orders contains the product.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem, Product, Review, ReviewVote, User
from domain.constants import MAX_REVIEW_PHOTOS
from domain.enums import NotificationType, OrderStatus
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from services import notification_service

logger = logging.getLogger(__name__)


def _validate_content(rating: int | None, title: str | None, comment: str | None, photos: list[str] | None) -> None:
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("must be between 1 and 5", field="rating")
    if title is not None and not 0 < len(title.strip()) <= 200:
        raise ValidationError("must be 1-200 characters", field="title")
    if comment is not None and not 0 < len(comment.strip()) <= 2000:
        raise ValidationError("must be 1-2000 characters", field="comment")
    if photos is not None and len(photos) > MAX_REVIEW_PHOTOS:
        raise ValidationError(f"at most {MAX_REVIEW_PHOTOS} photos per review", field="photos")


async def has_purchased(db: AsyncSession, *, user_id: int, product_id: int) -> bool:
    res = await db.execute(
        select(func.count(OrderItem.id))
        .join(Order, Order.id == OrderItem.order_id)
        .where(
            Order.user_id == user_id,
            Order.status == OrderStatus.DELIVERED.value,
            OrderItem.product_id == product_id,
        )
    )
    return (res.scalar() or 0) > 0


async def get_review(db: AsyncSession, review_id: int) -> Review:
    res = await db.execute(select(Review).where(Review.id == review_id))
    review = res.scalar_one_or_none()
    if not review:
        raise NotFoundError("Review", str(review_id))
    return review


async def create_review(
    db: AsyncSession,
    *,
    user: User,
    product_id: int,
    rating: int,
    title: str,
    comment: str,
    photos: list[str] | None = None,
) -> Review:
    _validate_content(rating, title, comment, photos or [])

    product = (await db.execute(select(Product).where(Product.id == product_id))).scalar_one_or_none()
    if not product or not product.is_active:
        raise NotFoundError("Product", str(product_id))

    existing = await db.execute(
        select(Review.id).where(Review.product_id == product_id, Review.user_id == user.id)
    )
    if existing.first():
        raise ConflictError("You have already reviewed this product")

    review = Review(
        product_id=product_id,
        user_id=user.id,
        rating=rating,
        title=title.strip(),
        comment=comment.strip(),
        photos=photos or [],
        verified_purchase=await has_purchased(db, user_id=user.id, product_id=product_id),
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    review.user = user
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("You have already reviewed this product")
    logger.info(f"Review {review.id} created for product {product_id} by user {user.id} ({rating}★)")
    return review


async def update_own_review(
    db: AsyncSession,
    *,
    user: User,
    review_id: int,
    rating: int | None = None,
    title: str | None = None,
    comment: str | None = None,
    photos: list[str] | None = None,
) -> Review:
    review = await get_review(db, review_id)
    if review.user_id != user.id:
        raise PermissionDeniedError("You can only edit your own reviews")
    _validate_content(rating, title, comment, photos)
    if rating is not None:
        review.rating = rating
    if title is not None:
        review.title = title.strip()
    if comment is not None:
        review.comment = comment.strip()
    if photos is not None:
        review.photos = photos
    review.updated_at = datetime.utcnow()
    await db.flush()
    return review


async def delete_review(db: AsyncSession, *, review_id: int, user: User | None = None) -> None:
    """Delete a review with its votes. With `user` set, only the author may delete."""
    review = await get_review(db, review_id)
    if user is not None and review.user_id != user.id:
        raise PermissionDeniedError("You can only delete your own reviews")
    votes = await db.execute(select(ReviewVote).where(ReviewVote.review_id == review.id))
    for v in votes.scalars().all():
        await db.delete(v)
    await db.delete(review)
    await db.flush()


async def vote_helpful(db: AsyncSession, *, user: User, review_id: int) -> Review:
    review = await get_review(db, review_id)
    if review.user_id == user.id:
        raise ValidationError("you cannot vote on your own review")
    existing = await db.execute(
        select(ReviewVote.id).where(ReviewVote.review_id == review_id, ReviewVote.user_id == user.id)
    )
    if existing.first():
        raise ConflictError("You have already marked this review helpful")
    db.add(ReviewVote(review_id=review_id, user_id=user.id, created_at=datetime.utcnow()))
    review.helpful_votes += 1
    await db.flush()
    return review


async def product_reviews(
    db: AsyncSession,
    *,
    product_id: int,
    sort: str = "newest",
    limit: int = 10,
    offset: int = 0,
) -> dict:
    """Visible reviews for a product page plus the rating summary."""
    visible = [Review.product_id == product_id, Review.is_hidden == False]  # noqa: E712

    dist_res = await db.execute(
        select(Review.rating, func.count(Review.id)).where(*visible).group_by(Review.rating)
    )
    distribution = {str(star): 0 for star in range(1, 6)}
    for rating, count in dist_res.all():
        distribution[str(rating)] = count
    total = sum(distribution.values())
    average = (
        round(sum(int(star) * n for star, n in distribution.items()) / total, 1) if total else 0.0
    )

    order_by = {
        "newest": (Review.created_at.desc(), Review.id.desc()),
        "helpful": (Review.helpful_votes.desc(), Review.created_at.desc()),
        "rating_high": (Review.rating.desc(), Review.created_at.desc()),
        "rating_low": (Review.rating.asc(), Review.created_at.desc()),
    }.get(sort)
    if order_by is None:
        raise ValidationError("must be newest, helpful, rating_high or rating_low", field="sort")

    res = await db.execute(select(Review).where(*visible).order_by(*order_by).limit(limit).offset(offset))
    return {
        "reviews": list(res.scalars().all()),
        "total": total,
        "average_rating": average,
        "distribution": distribution,
    }


# ── Admin moderation ────────────────────────────────────────────────

async def list_admin_reviews(
    db: AsyncSession,
    *,
    product_id: int | None = None,
    rating: int | None = None,
    hidden: bool | None = None,
    replied: bool | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Review], int]:
    conditions = []
    if product_id is not None:
        conditions.append(Review.product_id == product_id)
    if rating is not None:
        conditions.append(Review.rating == rating)
    if hidden is not None:
        conditions.append(Review.is_hidden == hidden)
    if replied is True:
        conditions.append(Review.admin_reply.is_not(None))
    elif replied is False:
        conditions.append(Review.admin_reply.is_(None))
    if search:
        like = f"%{search.strip()}%"
        conditions.append(or_(Review.title.ilike(like), Review.comment.ilike(like)))

    total = (await db.execute(select(func.count(Review.id)).where(*conditions))).scalar() or 0
    res = await db.execute(
        select(Review).where(*conditions).order_by(Review.created_at.desc(), Review.id.desc()).limit(limit).offset(offset)
    )
    return list(res.scalars().all()), total


async def toggle_hidden(db: AsyncSession, *, review_id: int) -> Review:
    review = await get_review(db, review_id)
    review.is_hidden = not review.is_hidden
    review.updated_at = datetime.utcnow()
    await db.flush()
    logger.info(f"Review {review.id} {'hidden' if review.is_hidden else 'made visible'}")
    return review


async def reply(db: AsyncSession, *, review_id: int, text: str) -> Review:
    text = (text or "").strip()
    if not text or len(text) > 1000:
        raise ValidationError("must be 1-1000 characters", field="reply")
    review = await get_review(db, review_id)
    first_reply = review.admin_reply is None
    review.admin_reply = text
    review.replied_at = datetime.utcnow()
    await db.flush()
    if first_reply:
        await notification_service.create_notification(
            db,
            user_id=review.user_id,
            title="Radeo replied to your review",
            body=text[:140],
            type=NotificationType.REVIEW_REPLY.value,
            data={"screen": "product", "product_id": review.product_id, "review_id": review.id},
        )
    return review


async def delete_reply(db: AsyncSession, *, review_id: int) -> Review:
    review = await get_review(db, review_id)
    review.admin_reply = None
    review.replied_at = None
    await db.flush()
    return review


async def set_admin_notes(db: AsyncSession, *, review_id: int, notes: str | None) -> Review:
    review = await get_review(db, review_id)
    review.admin_notes = (notes or "").strip() or None
    await db.flush()
    return review
