"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from academy.redis_client import get_redis_optional


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client, or None when Redis was never initialized."""
    yield get_redis_optional()
