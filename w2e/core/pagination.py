"""Limit/offset clamping for list endpoints."""

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def paginate(limit: int | None, offset: int | None, max_limit: int = MAX_LIMIT) -> tuple[int, int]:
    """Clamp limit/offset; return (limit, offset)."""
    limit = DEFAULT_LIMIT if limit is None else limit
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset or 0)
    return limit, offset
