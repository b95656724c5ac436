from typing import Annotated, AsyncGenerator, Union

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.cache import CacheService, NullCacheService
from app.services.events import AnyEventPublisher, NullEventPublisher
from app.utils.caching import cache
from app.utils.logging import get_logger

logger = get_logger()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # Endpoints own their transactions (``async with db.begin()``) so cache
    # invalidation and events can run strictly after the commit.
    async with SessionLocal() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            if not isinstance(e, HTTPException):
                logger.exception(f"Database transaction rolled back: {e}")
            raise


DBDependency = Annotated[AsyncSession, Depends(get_db)]


_cache_service = CacheService(cache)
_null_cache_service = NullCacheService()


def get_cache_service() -> Union[CacheService, NullCacheService]:
    if settings.CACHE_ENABLED:
        return _cache_service
    return _null_cache_service


def get_event_publisher(request: Request) -> AnyEventPublisher:
    return getattr(request.app.state, "event_publisher", None) or NullEventPublisher()


CacheDependency = Annotated[
    Union[CacheService, NullCacheService], Depends(get_cache_service)
]
PublisherDependency = Annotated[AnyEventPublisher, Depends(get_event_publisher)]
