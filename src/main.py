"""Process-level wiring for the rental core."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.config import get_settings
from src.db.session import build_sessionmaker, create_engine_for
from src.models.base import Base
from src.notifications import InMemoryMailbox, Mailbox, SqlMailbox
from src.services import (
    ContractService,
    ListingService,
    RecentViewService,
    ReservationService,
)

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Apply ``LOG_LEVEL`` to the root logger."""

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@dataclass(slots=True)
class ServiceBundle:
    """Services sharing one session for a single unit of work."""

    session: AsyncSession
    mailbox: Mailbox
    listings: ListingService
    reservations: ReservationService
    contracts: ContractService
    recent_views: RecentViewService


class RentalCore:
    """Owns the engine, the sessionmaker and the mailbox for one process."""

    def __init__(
        self,
        engine: AsyncEngine,
        sessionmaker: async_sessionmaker[AsyncSession],
        mailbox: Mailbox,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self.sessionmaker = sessionmaker
        self.mailbox = mailbox
        self._clock = clock

    @classmethod
    @asynccontextmanager
    async def start(
        cls,
        *,
        database_url: str | None = None,
        engine: AsyncEngine | None = None,
        mailbox: Mailbox | None = None,
        clock: Callable[[], datetime] | None = None,
        create_schema: bool = False,
    ) -> AsyncIterator[RentalCore]:
        """Build resources, yield the core, and release everything on exit.

        An engine passed in by the caller is left open; one built here is
        disposed. ``create_schema`` runs ``create_all`` for throwaway
        databases; real deployments use the Alembic migrations.
        """

        settings = get_settings()
        owns_engine = engine is None
        if engine is None:
            engine = create_engine_for(database_url or settings.database_url)
        sessionmaker = build_sessionmaker(engine)

        if create_schema:
            async with engine.begin() as connection:
                await connection.run_sync(Base.metadata.create_all)

        if mailbox is None:
            if settings.mailbox_backend == "memory":
                mailbox = InMemoryMailbox(clock=clock)
            else:
                mailbox = SqlMailbox(sessionmaker, clock=clock)

        core = cls(engine, sessionmaker, mailbox, clock=clock)
        logger.info(
            f"{settings.app_name} started ({settings.app_env}, "
            f"mailbox={settings.mailbox_backend}, locks={settings.row_lock_backend})"
        )
        try:
            yield core
        finally:
            await mailbox.close()
            if owns_engine:
                await engine.dispose()
            logger.info(f"{settings.app_name} stopped")

    @asynccontextmanager
    async def services(self) -> AsyncIterator[ServiceBundle]:
        """Yield services bound to one fresh session."""

        async with self.sessionmaker() as session:
            listings = ListingService(session, clock=self._clock)
            yield ServiceBundle(
                session=session,
                mailbox=self.mailbox,
                listings=listings,
                reservations=ReservationService(
                    session, self.mailbox, listings, clock=self._clock
                ),
                contracts=ContractService(
                    session, self.mailbox, listings, clock=self._clock
                ),
                recent_views=RecentViewService(session, listings, clock=self._clock),
            )
