"""Tests for per-row transition locks."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.db import locks
from src.db.locks import (
    _MEMORY_LOCKS,
    acquire_row_lock,
    build_row_lock_key,
    release_row_lock,
    row_lock,
)
from src.errors import ConflictError


def test_build_row_lock_key() -> None:
    assert build_row_lock_key(scope="contract", row_id=12) == "rowlock:contract:12"


@pytest.mark.anyio
async def test_memory_lock_is_exclusive_until_released() -> None:
    key = build_row_lock_key(scope="reservation", row_id=1)

    assert await acquire_row_lock(key, "a", 30) is True
    assert await acquire_row_lock(key, "b", 30) is False

    await release_row_lock(key, "b")
    assert key in _MEMORY_LOCKS

    await release_row_lock(key, "a")
    assert await acquire_row_lock(key, "b", 30) is True


@pytest.mark.anyio
async def test_expired_memory_lock_can_be_taken(monkeypatch: pytest.MonkeyPatch) -> None:
    key = build_row_lock_key(scope="contract", row_id=5)
    monkeypatch.setattr(locks, "monotonic", lambda: 100.0)
    assert await acquire_row_lock(key, "a", 10) is True

    monkeypatch.setattr(locks, "monotonic", lambda: 111.0)
    assert await acquire_row_lock(key, "b", 10) is True
    assert _MEMORY_LOCKS[key][0] == "b"


@pytest.mark.anyio
async def test_row_lock_rejects_second_holder_and_releases_on_error() -> None:
    async with row_lock(scope="contract", row_id=3):
        with pytest.raises(ConflictError):
            async with row_lock(scope="contract", row_id=3):
                pass

    with pytest.raises(RuntimeError):
        async with row_lock(scope="contract", row_id=3):
            raise RuntimeError("boom")

    assert _MEMORY_LOCKS == {}


@pytest.mark.anyio
async def test_redis_backend_uses_set_nx_ex(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_LOCK_BACKEND", "redis")
    locks.get_settings.cache_clear()

    client = MagicMock()
    client.set = AsyncMock(return_value=True)
    client.eval = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    monkeypatch.setattr(locks.Redis, "from_url", MagicMock(return_value=client))

    assert await acquire_row_lock("rowlock:contract:9", "token", 30) is True
    await release_row_lock("rowlock:contract:9", "token")

    client.set.assert_awaited_once_with("rowlock:contract:9", "token", nx=True, ex=30)
    assert client.eval.await_args.args[1:] == (1, "rowlock:contract:9", "token")
    assert client.aclose.await_count == 2
