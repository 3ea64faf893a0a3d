"""Tests for RentalCore wiring and lifecycle."""

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from src.main import RentalCore
from src.notifications import InMemoryMailbox, SqlMailbox
from src.services import ContractService


@pytest.mark.anyio
async def test_start_builds_memory_mailbox_and_shared_session(
    engine: AsyncEngine, make_listing, clock
) -> None:
    async with RentalCore.start(engine=engine, clock=clock) as core:
        assert isinstance(core.mailbox, InMemoryMailbox)

        async with core.services() as services:
            assert services.reservations._session is services.session
            assert isinstance(services.contracts, ContractService)

            await services.listings.publish(make_listing("L1"))
            contract = await services.contracts.create("L1", "T1")
            await services.contracts.confirm(contract.id, "13800000001")

            assert await core.mailbox.unread_count("T1") == 3

    # Caller-owned engines stay usable after shutdown.
    async with engine.connect() as connection:
        assert connection.closed is False


@pytest.mark.anyio
async def test_start_with_sql_mailbox_and_schema_creation(
    tmp_path, monkeypatch: pytest.MonkeyPatch, clock
) -> None:
    monkeypatch.setenv("MAILBOX_BACKEND", "sql")
    url = f"sqlite+aiosqlite:///{tmp_path / 'core.db'}"

    async with RentalCore.start(database_url=url, create_schema=True, clock=clock) as core:
        assert isinstance(core.mailbox, SqlMailbox)

        async with core.services() as services:
            await services.mailbox.post("R", "notice", "hello", "")

        async with core.services() as services:
            assert [m.title for m in await services.mailbox.list("R")][0] == "hello"
