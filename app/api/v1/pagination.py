from typing import Optional

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def clamp_pagination(
    limit: Optional[int], offset: Optional[int]
) -> tuple[int, int]:
    """Apply defaults and clamp out-of-range values instead of rejecting them."""
    if limit is None:
        limit = DEFAULT_LIMIT
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset or 0)
    return limit, offset
