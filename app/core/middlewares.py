import time
from typing import Optional

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from fastapi import Request

from app.core.config import settings
from app.services.idempotency import CachedResponse, IdempotencyStore
from app.utils.logging import get_logger

MUTATING_METHODS = frozenset({"POST", "PUT", "DELETE"})


class LogRequestsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger = get_logger()
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Request: {request.method} {request.url} -> {response.status_code} "
            f"({duration_ms:.1f}ms)"
        )
        return response


class ResponseRecorder:
    """Wraps an ASGI ``send``: every message still goes to the client while
    the status line, headers and body are copied for later storage."""

    def __init__(self, send: Send):
        self._send = send
        self.status_code: Optional[int] = None
        self.headers: list[tuple[str, str]] = []
        self._body = bytearray()

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
            self.headers = [
                (name.decode("latin-1"), value.decode("latin-1"))
                for name, value in message.get("headers", [])
            ]
        elif message["type"] == "http.response.body":
            self._body.extend(message.get("body", b""))
        await self._send(message)

    @property
    def is_success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    def to_cached_response(self) -> CachedResponse:
        return CachedResponse(
            status_code=self.status_code,
            headers=self.headers,
            body=bytes(self._body),
        )


async def send_cached_response(send: Send, cached: CachedResponse) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": cached.status_code,
            "headers": [
                (name.encode("latin-1"), value.encode("latin-1"))
                for name, value in cached.headers
            ],
        }
    )
    await send({"type": "http.response.body", "body": cached.body})


class IdempotencyMiddleware:
    """Replays stored responses for repeated POST/PUT/DELETE requests.

    Only requests carrying the idempotency header are affected. A stored
    response is sent back verbatim without calling the endpoint; otherwise the
    endpoint runs, its response streams to the client as usual, and a 2xx
    result is kept for ``ttl`` seconds. Failed attempts are not stored so the
    client can retry them as fresh requests.

    Two concurrent requests with the same unseen token may both run: there is
    no lock or in-progress marker on the token.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: IdempotencyStore,
        ttl: Optional[int] = None,
        header_name: Optional[str] = None,
    ):
        self.app = app
        self.store = store
        self.ttl = ttl or settings.IDEMPOTENCY_TTL_SECONDS
        self.header_name = header_name or settings.IDEMPOTENCY_HEADER

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in MUTATING_METHODS:
            await self.app(scope, receive, send)
            return

        token = Headers(scope=scope).get(self.header_name)
        if not token:
            await self.app(scope, receive, send)
            return

        logger = get_logger()
        cached = await self.store.get(token)
        if cached is not None:
            logger.info(
                f"Replaying stored response for {scope['method']} {scope['path']} "
                f"({self.header_name}={token})"
            )
            await send_cached_response(send, cached)
            return

        recorder = ResponseRecorder(send)
        await self.app(scope, receive, recorder.send)

        if recorder.is_success:
            await self.store.set(token, recorder.to_cached_response(), ttl=self.ttl)
        else:
            logger.debug(
                f"Not storing {recorder.status_code} response for "
                f"{self.header_name}={token}"
            )
