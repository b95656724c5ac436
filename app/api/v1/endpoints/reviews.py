from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response, status

from app.api.v1.pagination import clamp_pagination
from app.api.v1.params import ProductId, ReviewId
from app.core.dependencies import CacheDependency, DBDependency, PublisherDependency
from app.core.responses import create_json_response, send_success
from app.db.repositories import products as products_repo
from app.db.repositories import reviews as reviews_repo
from app.db.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from app.services.events import EventType, publish_review_event

router = APIRouter(prefix="/products/{product_id}/reviews", tags=["reviews"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    product_id: ProductId,
    payload: ReviewCreate,
    db: DBDependency,
    cache_service: CacheDependency,
    publisher: PublisherDependency,
):
    async with db.begin():
        if not await products_repo.product_exists(db, product_id):
            raise HTTPException(status_code=404, detail="Product not found")
        review = await reviews_repo.create_review(db, product_id, payload)

    # Committed: the cached pages and rating for this product are now stale.
    await cache_service.invalidate_product(product_id)
    await publish_review_event(
        publisher, EventType.REVIEW_CREATED, review.id, product_id, review.rating
    )

    return create_json_response(
        send_success(
            message="Review created",
            data=ReviewResponse.model_validate(review),
            status_code=status.HTTP_201_CREATED,
        )
    )


@router.get("")
async def list_reviews(
    product_id: ProductId,
    db: DBDependency,
    cache_service: CacheDependency,
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
):
    limit, offset = clamp_pagination(limit, offset)

    cached, found = await cache_service.get_reviews(product_id, limit, offset)
    if found:
        return create_json_response(send_success(data=cached))

    async with db.begin():
        if not await products_repo.product_exists(db, product_id):
            raise HTTPException(status_code=404, detail="Product not found")
        reviews = await reviews_repo.list_reviews(db, product_id, limit, offset)

    items = [ReviewResponse.model_validate(review) for review in reviews]
    await cache_service.set_reviews(product_id, limit, offset, items)
    return create_json_response(send_success(data=items))


@router.put("/{review_id}")
async def update_review(
    product_id: ProductId,
    review_id: ReviewId,
    payload: ReviewUpdate,
    db: DBDependency,
    cache_service: CacheDependency,
    publisher: PublisherDependency,
):
    async with db.begin():
        review = await reviews_repo.update_review(db, review_id, product_id, payload)
        if review is None:
            raise HTTPException(status_code=404, detail="Review not found")

    await cache_service.invalidate_product(product_id)
    await publish_review_event(
        publisher, EventType.REVIEW_UPDATED, review.id, product_id, review.rating
    )

    return create_json_response(
        send_success(message="Review updated", data=ReviewResponse.model_validate(review))
    )


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    product_id: ProductId,
    review_id: ReviewId,
    db: DBDependency,
    cache_service: CacheDependency,
    publisher: PublisherDependency,
):
    async with db.begin():
        if not await reviews_repo.delete_review(db, review_id, product_id):
            raise HTTPException(status_code=404, detail="Review not found")

    await cache_service.invalidate_product(product_id)
    await publish_review_event(publisher, EventType.REVIEW_DELETED, review_id, product_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
