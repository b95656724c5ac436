from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response, status

from app.api.v1.pagination import clamp_pagination
from app.api.v1.params import ProductId
from app.core.dependencies import CacheDependency, DBDependency
from app.core.responses import create_json_response, send_success
from app.db.models.product import Product
from app.db.repositories import products as products_repo
from app.db.repositories import reviews as reviews_repo
from app.db.schemas.product import ProductCreate, ProductResponse, ProductUpdate

router = APIRouter(prefix="/products", tags=["products"])


def to_product_response(product: Product, average_rating: Optional[float]) -> ProductResponse:
    return ProductResponse.model_validate(product).model_copy(
        update={"average_rating": average_rating}
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductCreate, db: DBDependency):
    async with db.begin():
        product = await products_repo.create_product(db, payload)

    return create_json_response(
        send_success(
            message="Product created",
            data=to_product_response(product, None),
            status_code=status.HTTP_201_CREATED,
        )
    )


@router.get("")
async def list_products(
    db: DBDependency,
    cache_service: CacheDependency,
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
):
    limit, offset = clamp_pagination(limit, offset)
    async with db.begin():
        rows = await products_repo.list_products_with_rating(db, limit, offset)

    items = []
    for product, db_rating in rows:
        rating, found = await cache_service.get_rating(product.id)
        if not found:
            rating = db_rating
            await cache_service.set_rating(product.id, rating)
        items.append(to_product_response(product, rating))

    return create_json_response(send_success(data=items))


@router.get("/{product_id}")
async def get_product(product_id: ProductId, db: DBDependency, cache_service: CacheDependency):
    rating, found = await cache_service.get_rating(product_id)

    async with db.begin():
        product = await products_repo.get_product(db, product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        if not found:
            rating = await reviews_repo.average_rating(db, product_id)

    if not found:
        await cache_service.set_rating(product_id, rating)

    return create_json_response(send_success(data=to_product_response(product, rating)))


@router.put("/{product_id}")
async def update_product(product_id: ProductId, payload: ProductUpdate, db: DBDependency):
    async with db.begin():
        product = await products_repo.update_product(db, product_id, payload)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        rating = await reviews_repo.average_rating(db, product_id)

    return create_json_response(
        send_success(message="Product updated", data=to_product_response(product, rating))
    )


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: ProductId, db: DBDependency, cache_service: CacheDependency
):
    async with db.begin():
        if not await products_repo.product_exists(db, product_id):
            raise HTTPException(status_code=404, detail="Product not found")
        if await reviews_repo.has_reviews(db, product_id):
            raise HTTPException(
                status_code=409, detail="Cannot delete product with existing reviews"
            )
        await products_repo.delete_product(db, product_id)

    await cache_service.invalidate_product(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
