from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.db.schemas.review import ReviewResponse
from app.services.cache import (
    NULL_RATING,
    CacheService,
    NullCacheService,
    rating_key,
    reviews_key,
    reviews_pattern,
)
from app.utils.caching import Cache, CacheBackendError


def make_review(review_id: int, product_id: int = 1, rating: int = 4) -> ReviewResponse:
    stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return ReviewResponse(
        id=review_id,
        product_id=product_id,
        rating=rating,
        first_name="Ada",
        last_name="Lovelace",
        comment="Solid build",
        created_at=stamp,
        updated_at=stamp,
    )


@pytest.fixture
def store(clock):
    return Cache(cache_type="inmemory", clock=clock)


@pytest.fixture
def service(store):
    return CacheService(store, ttl=300, scan_count=10)


@pytest.fixture
def broken_store():
    store = AsyncMock(spec=Cache)
    store.get.side_effect = CacheBackendError("down")
    store.set.side_effect = CacheBackendError("down")
    store.delete.side_effect = CacheBackendError("down")
    store.delete_pattern.side_effect = CacheBackendError("down")
    return store


def test_key_formats():
    assert reviews_key(42, 10, 20) == "reviews:product:42:limit:10:offset:20"
    assert reviews_key(42, 10, 20) == reviews_key(42, 10, 20)
    assert reviews_pattern(42) == "reviews:product:42:*"
    assert rating_key(42) == "rating:product:42"


async def test_reviews_miss_then_hit(service):
    assert await service.get_reviews(1, 10, 0) == ([], False)

    reviews = [make_review(2), make_review(1)]
    await service.set_reviews(1, 10, 0, reviews)

    cached, found = await service.get_reviews(1, 10, 0)
    assert found is True
    assert cached == reviews


async def test_empty_page_is_a_hit(service):
    await service.set_reviews(1, 10, 50, [])

    assert await service.get_reviews(1, 10, 50) == ([], True)


async def test_rating_round_trip(service):
    await service.set_rating(7, 4.25)

    assert await service.get_rating(7) == (4.25, True)


async def test_no_reviews_rating_is_distinct_from_miss(service, store):
    assert await service.get_rating(9) == (None, False)

    await service.set_rating(9, None)

    assert await store.get("rating:product:9") == NULL_RATING
    assert await service.get_rating(9) == (None, True)


async def test_invalidate_product_drops_every_page_and_rating(service, store):
    for limit, offset in [(10, 0), (10, 10), (5, 0), (100, 3)]:
        await service.set_reviews(1, limit, offset, [make_review(1)])
    await service.set_rating(1, 4.0)
    await service.set_reviews(11, 10, 0, [make_review(3, product_id=11)])
    await service.set_rating(11, 2.0)

    await service.invalidate_product(1)

    for limit, offset in [(10, 0), (10, 10), (5, 0), (100, 3)]:
        assert (await service.get_reviews(1, limit, offset))[1] is False
    assert await service.get_rating(1) == (None, False)
    assert (await service.get_reviews(11, 10, 0))[1] is True
    assert await service.get_rating(11) == (2.0, True)


async def test_invalidate_with_nothing_cached(service):
    assert await service.invalidate_reviews(5) is True
    assert await service.invalidate_rating(5) is True
    await service.invalidate_product(5)


async def test_entries_expire_after_ttl(service, clock):
    await service.set_reviews(1, 10, 0, [make_review(1)])
    await service.set_rating(1, 5.0)

    clock.advance(301)

    assert (await service.get_reviews(1, 10, 0))[1] is False
    assert await service.get_rating(1) == (None, False)


@pytest.mark.parametrize("payload", [b"not json", b'{"id": 1}', b'[{"id": "x"}]'])
async def test_malformed_reviews_are_a_miss(service, store, payload):
    await store.set(reviews_key(1, 10, 0), payload, expire=60)

    assert await service.get_reviews(1, 10, 0) == ([], False)


@pytest.mark.parametrize("payload", [b"abc", b"true", b'"4.5"', b"[1]"])
async def test_malformed_rating_is_a_miss(service, store, payload):
    await store.set(rating_key(1), payload, expire=60)

    assert await service.get_rating(1) == (None, False)


async def test_store_failures_degrade_to_miss(broken_store):
    service = CacheService(broken_store, ttl=300)

    assert await service.get_reviews(1, 10, 0) == ([], False)
    assert await service.get_rating(1) == (None, False)
    await service.set_reviews(1, 10, 0, [make_review(1)])
    await service.set_rating(1, 3.0)
    assert await service.invalidate_reviews(1) is False
    assert await service.invalidate_rating(1) is False


async def test_failed_page_invalidation_still_drops_rating(store):
    store.delete_pattern = AsyncMock(side_effect=CacheBackendError("scan failed"))
    service = CacheService(store, ttl=300)
    await service.set_rating(1, 4.0)

    await service.invalidate_product(1)

    assert await service.get_rating(1) == (None, False)


async def test_null_cache_service_never_hits():
    service = NullCacheService()
    await service.set_reviews(1, 10, 0, [make_review(1)])
    await service.set_rating(1, 4.0)

    assert await service.get_reviews(1, 10, 0) == ([], False)
    assert await service.get_rating(1) == (None, False)
    assert await service.invalidate_reviews(1) is True
    await service.invalidate_product(1)
