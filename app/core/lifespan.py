from contextlib import asynccontextmanager
from fastapi import FastAPI
from app.core.config import settings
from app.db.session import init_db
from app.services.events import EventPublisher, create_event_publisher
from app.utils.caching import cache
from app.utils.logging import get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = get_logger()

    # Startup
    await init_db()
    await cache.init_redis()
    if settings.CACHE_ENABLED and not await cache.ping():
        logger.warning("Cache store unreachable at startup, serving from the database")
    app.state.event_publisher = await create_event_publisher()

    events = "enabled" if isinstance(app.state.event_publisher, EventPublisher) else "disabled"
    logger.info(
        f"Startup: {app.title} v{app.version} (cache={cache.cache_type}, events={events})"
    )
    yield

    # Shutdown
    await app.state.event_publisher.close()
    await cache.close()
    logger.info("Shutdown: publisher and cache connections closed")
