from typing import Optional

from sqlalchemy import delete, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.review import Review
from app.db.schemas.review import ReviewCreate, ReviewUpdate


async def create_review(db: AsyncSession, product_id: int, data: ReviewCreate) -> Review:
    review = Review(
        product_id=product_id,
        rating=data.rating,
        first_name=data.first_name or "",
        last_name=data.last_name or "",
        comment=data.comment,
    )
    db.add(review)
    await db.flush()
    return review


async def list_reviews(
    db: AsyncSession, product_id: int, limit: int, offset: int
) -> list[Review]:
    result = await db.execute(
        select(Review)
        .where(Review.product_id == product_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_review(db: AsyncSession, review_id: int, product_id: int) -> Optional[Review]:
    result = await db.execute(
        select(Review).where(Review.id == review_id, Review.product_id == product_id)
    )
    return result.scalar_one_or_none()


async def update_review(
    db: AsyncSession, review_id: int, product_id: int, data: ReviewUpdate
) -> Optional[Review]:
    review = await get_review(db, review_id, product_id)
    if review is None:
        return None
    review.rating = data.rating
    review.first_name = data.first_name or ""
    review.last_name = data.last_name or ""
    review.comment = data.comment
    await db.flush()
    return review


async def delete_review(db: AsyncSession, review_id: int, product_id: int) -> bool:
    result = await db.execute(
        delete(Review).where(Review.id == review_id, Review.product_id == product_id)
    )
    return result.rowcount > 0


async def has_reviews(db: AsyncSession, product_id: int) -> bool:
    result = await db.execute(select(exists().where(Review.product_id == product_id)))
    return bool(result.scalar())


async def average_rating(db: AsyncSession, product_id: int) -> Optional[float]:
    """Mean rating of a product's reviews, ``None`` when it has none."""
    result = await db.execute(
        select(func.avg(Review.rating)).where(Review.product_id == product_id)
    )
    avg = result.scalar()
    return float(avg) if avg is not None else None
