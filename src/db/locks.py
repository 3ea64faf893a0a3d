"""Per-row transition locks for the reservation and contract ledgers."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from time import monotonic
from uuid import uuid4

from redis.asyncio import Redis

from src.config import get_settings
from src.errors import ConflictError

logger = logging.getLogger(__name__)

_MEMORY_LOCKS: dict[str, tuple[str, float]] = {}

# Delete only if the caller still owns the lock.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def build_row_lock_key(*, scope: str, row_id: object) -> str:
    """Build namespaced lock key."""

    return f"rowlock:{scope}:{row_id}"


def _acquire_memory_lock(key: str, token: str, ttl_seconds: int) -> bool:
    now = monotonic()
    expired = [
        lock_key for lock_key, (_, expiry) in _MEMORY_LOCKS.items() if expiry <= now
    ]
    for lock_key in expired:
        _MEMORY_LOCKS.pop(lock_key, None)

    if key in _MEMORY_LOCKS:
        return False

    _MEMORY_LOCKS[key] = (token, now + ttl_seconds)
    return True


def _release_memory_lock(key: str, token: str) -> None:
    held = _MEMORY_LOCKS.get(key)
    if held is not None and held[0] == token:
        _MEMORY_LOCKS.pop(key, None)


async def acquire_row_lock(key: str, token: str, ttl_seconds: int) -> bool:
    """Acquire lock via Redis SET NX EX semantics."""

    settings = get_settings()

    if settings.row_lock_backend == "memory":
        return _acquire_memory_lock(key, token, ttl_seconds)

    client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        locked = await client.set(key, token, nx=True, ex=ttl_seconds)
        return bool(locked)
    finally:
        await client.aclose()


async def release_row_lock(key: str, token: str) -> None:
    """Release the lock if ``token`` still holds it."""

    settings = get_settings()

    if settings.row_lock_backend == "memory":
        _release_memory_lock(key, token)
        return

    client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await client.eval(_RELEASE_SCRIPT, 1, key, token)
    finally:
        await client.aclose()


@asynccontextmanager
async def row_lock(*, scope: str, row_id: object) -> AsyncIterator[None]:
    """Hold the transition lock for one row, or fail fast with ``ConflictError``."""

    settings = get_settings()
    key = build_row_lock_key(scope=scope, row_id=row_id)
    token = uuid4().hex

    if not await acquire_row_lock(key, token, settings.row_lock_ttl_seconds):
        logger.warning(f"Row lock busy for {key}, rejecting concurrent transition")
        raise ConflictError(f"{scope} {row_id} is being modified concurrently")

    try:
        yield
    finally:
        await release_row_lock(key, token)
