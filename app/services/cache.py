"""Read-through caching for product review pages and average ratings.

The cache is never authoritative. Every entry can be rebuilt from the
database, so any store or decoding failure is logged and reported as a miss
(reads) or ignored (writes and invalidations).

Invalidation is coarse: a change to a product's reviews drops its rating and
every cached review page, whatever ``limit``/``offset`` produced it.
"""

import json
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from app.core.config import settings
from app.db.schemas.review import ReviewResponse
from app.utils.caching import Cache, CacheBackendError
from app.utils.logging import get_logger

REVIEWS_KEY_PREFIX = "reviews:product:"
RATING_KEY_PREFIX = "rating:product:"

# Cached "product has no reviews", distinct from a missing key.
NULL_RATING = b"null"

_review_list = TypeAdapter(list[ReviewResponse])

logger = get_logger()


def reviews_key(product_id: int, limit: int, offset: int) -> str:
    return f"{REVIEWS_KEY_PREFIX}{product_id}:limit:{limit}:offset:{offset}"


def reviews_pattern(product_id: int) -> str:
    return f"{REVIEWS_KEY_PREFIX}{product_id}:*"


def rating_key(product_id: int) -> str:
    return f"{RATING_KEY_PREFIX}{product_id}"


class CacheService:
    def __init__(
        self,
        store: Cache,
        ttl: Optional[int] = None,
        scan_count: Optional[int] = None,
    ):
        self.store = store
        self.ttl = ttl or settings.CACHE_TTL_SECONDS
        self.scan_count = scan_count or settings.CACHE_SCAN_COUNT

    async def get_reviews(
        self, product_id: int, limit: int, offset: int
    ) -> tuple[list[ReviewResponse], bool]:
        key = reviews_key(product_id, limit, offset)
        try:
            data = await self.store.get(key)
        except CacheBackendError as exc:
            logger.warning(f"Failed to get reviews from cache ({key}): {exc}")
            return [], False
        if data is None:
            return [], False

        try:
            return _review_list.validate_json(data), True
        except ValidationError as exc:
            logger.warning(f"Discarding malformed cached reviews ({key}): {exc}")
            return [], False

    async def set_reviews(
        self, product_id: int, limit: int, offset: int, reviews: list[ReviewResponse]
    ) -> None:
        key = reviews_key(product_id, limit, offset)
        try:
            await self.store.set(key, _review_list.dump_json(reviews), expire=self.ttl)
        except CacheBackendError as exc:
            logger.warning(f"Failed to cache reviews ({key}): {exc}")

    async def get_rating(self, product_id: int) -> tuple[Optional[float], bool]:
        """Return ``(rating, found)``.

        ``(None, False)`` means not cached, ``(None, True)`` means the product
        is cached as having no reviews.
        """
        key = rating_key(product_id)
        try:
            data = await self.store.get(key)
        except CacheBackendError as exc:
            logger.warning(f"Failed to get rating from cache ({key}): {exc}")
            return None, False
        if data is None:
            return None, False
        if data == NULL_RATING:
            return None, True

        try:
            value = json.loads(data)
        except ValueError as exc:
            logger.warning(f"Discarding malformed cached rating ({key}): {exc}")
            return None, False
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning(f"Discarding malformed cached rating ({key}): {data!r}")
            return None, False
        return float(value), True

    async def set_rating(self, product_id: int, rating: Optional[float]) -> None:
        key = rating_key(product_id)
        payload = NULL_RATING if rating is None else json.dumps(rating).encode()
        try:
            await self.store.set(key, payload, expire=self.ttl)
        except CacheBackendError as exc:
            logger.warning(f"Failed to cache rating ({key}): {exc}")

    async def invalidate_reviews(self, product_id: int) -> bool:
        pattern = reviews_pattern(product_id)
        try:
            await self.store.delete_pattern(pattern, count=self.scan_count)
        except CacheBackendError as exc:
            logger.warning(f"Failed to invalidate reviews cache ({pattern}): {exc}")
            return False
        return True

    async def invalidate_rating(self, product_id: int) -> bool:
        key = rating_key(product_id)
        try:
            await self.store.delete(key)
        except CacheBackendError as exc:
            logger.warning(f"Failed to invalidate rating cache ({key}): {exc}")
            return False
        return True

    async def invalidate_product(self, product_id: int) -> None:
        """Drop every cached view of a product. Never raises."""
        await self.invalidate_reviews(product_id)
        await self.invalidate_rating(product_id)


class NullCacheService:
    """Stand-in used when caching is disabled: always misses, never stores."""

    async def get_reviews(self, product_id, limit, offset):
        return [], False

    async def set_reviews(self, product_id, limit, offset, reviews):
        return None

    async def get_rating(self, product_id):
        return None, False

    async def set_rating(self, product_id, rating):
        return None

    async def invalidate_reviews(self, product_id):
        return True

    async def invalidate_rating(self, product_id):
        return True

    async def invalidate_product(self, product_id):
        return None
