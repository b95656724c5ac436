import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.dependencies import DBDependency
from app.core.exceptions.handlers import register_exception_handlers
from app.core.lifespan import lifespan
from app.core.logging import setup_early_logging
from app.core.middlewares import IdempotencyMiddleware, LogRequestsMiddleware
from app.core.openapi import custom_openapi
from app.core.responses import create_json_response, send_error, send_success
from app.services.idempotency import IdempotencyStore
from app.utils.caching import cache

# Setup early logging for startup errors
setup_early_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.PROJECT_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "products", "description": "Product catalog"},
        {"name": "reviews", "description": "Product reviews and ratings"},
    ],
)

# Customize OpenAPI schema
app.openapi = lambda: custom_openapi(app)

# Replay protection for mutating requests
app.add_middleware(
    IdempotencyMiddleware,
    store=IdempotencyStore(cache),
    ttl=settings.IDEMPOTENCY_TTL_SECONDS,
    header_name=settings.IDEMPOTENCY_HEADER,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LogRequestsMiddleware)

# Register all exception handlers
register_exception_handlers(app)

# Include API routers
app.include_router(v1_router)


@app.get("/health")
async def health_check(db: DBDependency):
    cache_status = "healthy" if await cache.ping() else "unavailable"
    try:
        await asyncio.wait_for(db.execute(text("SELECT 1")), timeout=2)
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
        return create_json_response(
            send_error(
                message="Service is degraded",
                data={
                    "status": "unhealthy",
                    "database": f"unhealthy: {exc}",
                    "cache": cache_status,
                },
                status_code=503,
            )
        )

    return create_json_response(
        send_success(
            message="Service is running",
            data={
                "status": "healthy",
                "database": "healthy",
                "cache": cache_status,
                "version": settings.PROJECT_VERSION,
            },
        )
    )
