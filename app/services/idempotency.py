from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from app.core.config import settings
from app.utils.caching import Cache, CacheBackendError
from app.utils.logging import get_logger

KEY_PREFIX = "idempotency:"

logger = get_logger()


class CachedResponse(BaseModel):
    """A stored HTTP response, replayed verbatim for a repeated token."""

    status_code: int
    headers: list[tuple[str, str]] = []
    body: bytes = b""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")


class IdempotencyStore:
    """Responses keyed by client token, in their own namespace of the shared store.

    Lookups fail open: a store error or a corrupt record reads as "nothing
    stored" so the request runs normally. Write-back errors are logged only.
    """

    def __init__(self, store: Cache, ttl: Optional[int] = None):
        self.store = store
        self.ttl = ttl or settings.IDEMPOTENCY_TTL_SECONDS

    @staticmethod
    def key_for(token: str) -> str:
        return f"{KEY_PREFIX}{token}"

    async def get(self, token: str) -> Optional[CachedResponse]:
        key = self.key_for(token)
        try:
            data = await self.store.get(key)
        except CacheBackendError as exc:
            logger.warning(f"Idempotency lookup failed for {key}, proceeding: {exc}")
            return None
        if data is None:
            return None
        try:
            return CachedResponse.model_validate_json(data)
        except ValidationError as exc:
            logger.warning(f"Ignoring malformed idempotency record {key}: {exc}")
            return None

    async def set(
        self, token: str, response: CachedResponse, ttl: Optional[int] = None
    ) -> bool:
        key = self.key_for(token)
        try:
            await self.store.set(
                key, response.model_dump_json().encode(), expire=ttl or self.ttl
            )
        except CacheBackendError as exc:
            logger.warning(f"Failed to store idempotent response for {key}: {exc}")
            return False
        return True
