from fastapi.openapi.utils import get_openapi
from app.core.config import settings
from app.core.middlewares import MUTATING_METHODS


def custom_openapi(app):
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version=settings.PROJECT_VERSION,
        description=(
            "Products and reviews API. POST, PUT and DELETE requests may carry "
            f"an {settings.IDEMPOTENCY_HEADER} header to make retries safe."
        ),
        routes=app.routes,
    )
    # The header is handled by middleware, so the routes never declare it.
    components = openapi_schema.setdefault("components", {})
    components.setdefault("parameters", {})["IdempotencyKey"] = {
        "name": settings.IDEMPOTENCY_HEADER,
        "in": "header",
        "required": False,
        "description": (
            "Client-chosen token. A repeated successful request within "
            f"{settings.IDEMPOTENCY_TTL_SECONDS}s replays the stored response."
        ),
        "schema": {"type": "string"},
    }
    for path_item in openapi_schema.get("paths", {}).values():
        for method, operation in path_item.items():
            if method.upper() in MUTATING_METHODS:
                operation.setdefault("parameters", []).append(
                    {"$ref": "#/components/parameters/IdempotencyKey"}
                )
    app.openapi_schema = openapi_schema
    return app.openapi_schema
