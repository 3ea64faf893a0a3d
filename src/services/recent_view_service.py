"""Business logic for the recently-viewed (footprint) store."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.db.repositories import (
    RecentViewUpsert,
    clear_recent_views,
    delete_recent_view,
    fetch_recent_views,
    upsert_recent_view,
)
from src.errors import InvalidInputError, NotFoundError
from src.models.recent_view import RecentView
from src.services.listing_service import ListingService


@dataclass(slots=True)
class RecentViewEntry:
    user_contact: str
    listing_id: str
    viewed_at: datetime
    snapshot: dict[str, Any]


def _to_entry(row: RecentView) -> RecentViewEntry:
    return RecentViewEntry(
        user_contact=row.user_contact,
        listing_id=row.listing_id,
        viewed_at=row.viewed_at,
        snapshot=dict(row.snapshot or {}),
    )


def _require_user(user_contact: str) -> None:
    if not (user_contact or "").strip():
        raise InvalidInputError("user contact is required")


class RecentViewService:
    """Service layer for a user's recently viewed listings.

    ``legacy_id`` is an older identifier for the same user. Rows stored under
    it are moved onto ``user_contact`` before each operation.
    """

    _session: AsyncSession

    def __init__(
        self,
        session: AsyncSession,
        listings: ListingService | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or (lambda: datetime.now(UTC))
        self._listings = listings or ListingService(session, clock=self._clock)

    async def record_view(
        self, user_contact: str, listing_id: str, *, legacy_id: str | None = None
    ) -> RecentViewEntry:
        """Upsert the (user, listing) row with a fresh snapshot."""

        _require_user(user_contact)

        if not await self._listings.exists(listing_id):
            raise NotFoundError(f"Listing {listing_id} not found")
        summary = await self._listings.summary(listing_id)

        row = await upsert_recent_view(
            self._session,
            RecentViewUpsert(
                user_contact=user_contact,
                listing_id=listing_id,
                viewed_at=self._clock(),
                snapshot={
                    "listing_id": listing_id,
                    "title": summary.title,
                    "price": summary.price_minor,
                    "address": summary.address,
                    "cover_url": summary.cover_url,
                },
            ),
            legacy_id=legacy_id,
        )
        return _to_entry(row)

    async def list(
        self,
        user_contact: str,
        limit: int | None = None,
        *,
        legacy_id: str | None = None,
    ) -> list[RecentViewEntry]:
        """Most recent first."""

        _require_user(user_contact)
        if limit is None:
            limit = get_settings().recent_view_default_limit
        if limit < 1:
            raise InvalidInputError("limit must be at least 1")

        rows = await fetch_recent_views(
            self._session, user_contact, limit=limit, legacy_id=legacy_id
        )
        return [_to_entry(row) for row in rows]

    async def remove(
        self, user_contact: str, listing_id: str, *, legacy_id: str | None = None
    ) -> bool:
        _require_user(user_contact)
        return await delete_recent_view(
            self._session, user_contact, listing_id, legacy_id=legacy_id
        )

    async def clear(self, user_contact: str, *, legacy_id: str | None = None) -> int:
        _require_user(user_contact)
        return await clear_recent_views(self._session, user_contact, legacy_id=legacy_id)
