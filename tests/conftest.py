"""Test fixtures for the SQLite-backed rental core."""

import os
import sys
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

os.environ["ROW_LOCK_BACKEND"] = "memory"
os.environ["MAILBOX_BACKEND"] = "memory"

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.config import get_settings
from src.db.locks import _MEMORY_LOCKS
from src.db.session import build_sessionmaker, create_engine_for
from src.models.base import Base
from src.notifications import InMemoryMailbox
from src.services import (
    ContractService,
    ListingService,
    RecentViewService,
    ReservationService,
)


class FakeClock:
    """Settable clock injected into services and mailboxes."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def reset_process_state() -> Iterator[None]:
    get_settings.cache_clear()
    _MEMORY_LOCKS.clear()
    yield
    _MEMORY_LOCKS.clear()
    get_settings.cache_clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    # 10:00 in Asia/Shanghai on 2026-10-19.
    return FakeClock(datetime(2026, 10, 19, 2, 0, tzinfo=UTC))


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'rental.db'}")
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest.fixture
async def session(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def mailbox(clock: FakeClock) -> InMemoryMailbox:
    return InMemoryMailbox(clock=clock)


@pytest.fixture
def listings(session: AsyncSession, clock: FakeClock) -> ListingService:
    return ListingService(session, clock=clock)


@pytest.fixture
def reservations(
    session: AsyncSession,
    mailbox: InMemoryMailbox,
    listings: ListingService,
    clock: FakeClock,
) -> ReservationService:
    return ReservationService(session, mailbox, listings, clock=clock)


@pytest.fixture
def contracts(
    session: AsyncSession,
    mailbox: InMemoryMailbox,
    listings: ListingService,
    clock: FakeClock,
) -> ContractService:
    return ContractService(session, mailbox, listings, clock=clock)


@pytest.fixture
def recent_views(
    session: AsyncSession, listings: ListingService, clock: FakeClock
) -> RecentViewService:
    return RecentViewService(session, listings, clock=clock)


def _listing_document(listing_id: str = "L1", **overrides: object) -> dict[str, object]:
    document: dict[str, object] = {
        "id": listing_id,
        "houseTitle": "Sunny two-bed near metro",
        "address": "88 Century Avenue",
        "rentPrice": "3,200",
        "rentArea": "68㎡",
        "payment": "押一付三",
        "provinceCode": "310000",
        "cityCode": "310100",
        "districtCode": "310115",
        "landlordPhone": "13800000001",
        "mainPic": "/upload/l1-cover.jpg",
    }
    document.update(overrides)
    return document


@pytest.fixture
def make_listing():
    """Factory for listing documents with sensible defaults."""

    return _listing_document
