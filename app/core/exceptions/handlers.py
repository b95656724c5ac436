from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
from sqlalchemy.exc import IntegrityError, NoResultFound
from app.core.responses import create_json_response, send_error
from app.utils.logging import get_logger


def register_exception_handlers(app):
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger = get_logger()
        logger.error(
            f"Unhandled exception for {request.method} {request.url}: {exc}\n"
            f"Traceback: {traceback.format_exc()}\n"
            f"User-Agent: {request.headers.get('user-agent')}"
        )
        return create_json_response(
            send_error(
                message="An unexpected error occurred.",
                data={"detail": str(exc)},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger = get_logger()
        raw_errors = exc.errors()
        logger.warning(
            f"Validation error for {request.method} {request.url}: {raw_errors}"
        )

        friendly_errors = {}
        for error in raw_errors:
            field = ".".join(map(str, error["loc"]))
            if field.startswith("body."):
                field = field.replace("body.", "", 1)
            friendly_errors[field] = error["msg"]

        return create_json_response(
            send_error(
                message="Validation failed",
                data={"errors": friendly_errors},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        )

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        logger = get_logger()
        detail = str(exc.orig) if hasattr(exc, "orig") else "Database integrity error"
        logger.error(f"Integrity error for {request.method} {request.url}: {detail}")

        return create_json_response(
            send_error(message=detail, status_code=status.HTTP_409_CONFLICT)
        )

    @app.exception_handler(NoResultFound)
    async def not_found_exception_handler(request: Request, exc: NoResultFound):
        logger = get_logger()
        logger.warning(f"Resource not found for {request.method} {request.url}")

        return create_json_response(
            send_error(
                message="Resource not found", status_code=status.HTTP_404_NOT_FOUND
            )
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = get_logger()
        logger.warning(
            f"HTTP {exc.status_code} for {request.method} {request.url}: {exc.detail}"
        )
        return create_json_response(
            send_error(message=exc.detail, status_code=exc.status_code)
        )
