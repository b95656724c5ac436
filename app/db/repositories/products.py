from typing import Optional

from sqlalchemy import delete, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.product import Product
from app.db.models.review import Review
from app.db.schemas.product import ProductCreate, ProductUpdate


async def create_product(db: AsyncSession, data: ProductCreate) -> Product:
    product = Product(name=data.name, description=data.description, price=data.price)
    db.add(product)
    await db.flush()
    return product


async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    return await db.get(Product, product_id)


async def product_exists(db: AsyncSession, product_id: int) -> bool:
    result = await db.execute(select(exists().where(Product.id == product_id)))
    return bool(result.scalar())


async def list_products_with_rating(
    db: AsyncSession, limit: int, offset: int
) -> list[tuple[Product, Optional[float]]]:
    """Products newest first, each paired with its average review rating."""
    result = await db.execute(
        select(Product, func.avg(Review.rating))
        .outerjoin(Review, Review.product_id == Product.id)
        .group_by(Product.id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [
        (product, float(avg) if avg is not None else None)
        for product, avg in result.all()
    ]


async def update_product(
    db: AsyncSession, product_id: int, data: ProductUpdate
) -> Optional[Product]:
    product = await db.get(Product, product_id)
    if product is None:
        return None
    product.name = data.name
    product.description = data.description
    product.price = data.price
    await db.flush()
    return product


async def delete_product(db: AsyncSession, product_id: int) -> bool:
    result = await db.execute(delete(Product).where(Product.id == product_id))
    return result.rowcount > 0
