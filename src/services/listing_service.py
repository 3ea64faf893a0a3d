"""Business logic for the listing document store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.db.projections import (
    LISTING_STATUSES,
    cover_url,
    listing_address,
    listing_title,
    owner_contact,
)
from src.db.repositories import (
    ListingFilters,
    delete_listing_cascade,
    fetch_listing,
    fetch_listing_page,
    fetch_listings_by_ids,
    insert_listing,
    rewrite_listing,
)
from src.errors import InvalidInputError, NotFoundError
from src.models.listing import Listing

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RegionPath:
    province: str
    city: str
    district: str


@dataclass(slots=True)
class ListingView:
    """Listing document together with its derived projections."""

    listing_id: str
    document: dict[str, Any]
    price_minor: int
    area_text: str
    payment_term: str
    region: RegionPath
    status: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ListingPage:
    items: list[ListingView]
    total: int
    offset: int
    limit: int


@dataclass(slots=True, frozen=True)
class ListingSummary:
    """Live title/cover lookup used to enrich ledger and footprint rows."""

    listing_id: str
    title: str = ""
    cover_url: str = ""
    price_minor: int = 0
    address: str = ""


def _to_view(listing: Listing) -> ListingView:
    return ListingView(
        listing_id=listing.listing_id,
        document=deepcopy(listing.document),
        price_minor=listing.price_minor,
        area_text=listing.area_text,
        payment_term=listing.payment_term,
        region=RegionPath(
            province=listing.province_code,
            city=listing.city_code,
            district=listing.district_code,
        ),
        status=listing.status,
        created_at=listing.created_at,
        updated_at=listing.updated_at,
    )


def _to_summary(listing: Listing) -> ListingSummary:
    return ListingSummary(
        listing_id=listing.listing_id,
        title=listing_title(listing.document),
        cover_url=cover_url(listing.document),
        price_minor=listing.price_minor,
        address=listing_address(listing.document),
    )


def new_listing_id() -> str:
    return uuid4().hex


class ListingService:
    """Service layer for listing documents and their filter projections."""

    _session: AsyncSession

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or (lambda: datetime.now(UTC))

    async def publish(self, document: Mapping[str, Any]) -> str:
        """Store a new listing document and return its id."""

        if not isinstance(document, Mapping):
            raise InvalidInputError("listing document must be a mapping")

        raw_id = document.get("id")
        listing_id = str(raw_id).strip() if raw_id is not None else ""
        if not listing_id:
            listing_id = new_listing_id()

        await insert_listing(self._session, listing_id, document, now=self._clock())
        logger.info(f"Listing {listing_id} published")
        return listing_id

    async def update(self, listing_id: str, partial: Mapping[str, Any]) -> ListingView:
        """Shallow-merge ``partial`` over the stored document."""

        if not isinstance(partial, Mapping):
            raise InvalidInputError("partial document must be a mapping")

        patch = deepcopy(dict(partial))

        def merge(document: dict[str, Any]) -> dict[str, Any]:
            return {**document, **patch, "id": document.get("id", listing_id)}

        listing = await rewrite_listing(
            self._session, listing_id, merge, now=self._clock()
        )
        logger.info(f"Listing {listing_id} updated")
        return _to_view(listing)

    async def set_status(self, listing_id: str, status: str) -> ListingView:
        """Toggle a listing online/offline through the document."""

        normalized = (status or "").strip().lower()
        if normalized not in LISTING_STATUSES:
            raise InvalidInputError(f"Unknown listing status: {status}")

        def toggle(document: dict[str, Any]) -> dict[str, Any]:
            document["status"] = normalized
            return document

        listing = await rewrite_listing(
            self._session, listing_id, toggle, now=self._clock()
        )
        logger.info(f"Listing {listing_id} set {normalized}")
        return _to_view(listing)

    async def query(
        self,
        filters: ListingFilters | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> ListingPage:
        """Search listings, newest first, with offset/limit paging."""

        settings = get_settings()
        if limit is None:
            limit = settings.listing_page_default_limit
        if offset < 0:
            raise InvalidInputError("offset must not be negative")
        if limit < 1:
            raise InvalidInputError("limit must be at least 1")
        limit = min(limit, settings.listing_page_max_limit)

        rows, total = await fetch_listing_page(
            self._session, filters or ListingFilters(), offset=offset, limit=limit
        )
        return ListingPage(
            items=[_to_view(row) for row in rows],
            total=total,
            offset=offset,
            limit=limit,
        )

    async def get(self, listing_id: str) -> ListingView:
        listing = await fetch_listing(self._session, listing_id)
        if listing is None:
            raise NotFoundError(f"Listing {listing_id} not found")
        return _to_view(listing)

    async def delete(self, listing_id: str) -> None:
        """Delete a listing and every reservation/contract that references it."""

        if not await delete_listing_cascade(self._session, listing_id):
            raise NotFoundError(f"Listing {listing_id} not found")
        logger.info(f"Listing {listing_id} deleted with its reservations and contracts")

    async def exists(self, listing_id: str) -> bool:
        return await fetch_listing(self._session, listing_id) is not None

    async def resolve_owner(self, listing_id: str) -> str | None:
        """Owner contact from the live document; ``None`` if the document has none."""

        listing = await fetch_listing(self._session, listing_id)
        if listing is None:
            raise NotFoundError(f"Listing {listing_id} not found")
        return owner_contact(listing.document)

    async def owners(self, listing_ids: list[str]) -> dict[str, str | None]:
        listings = await fetch_listings_by_ids(self._session, listing_ids)
        return {
            listing_id: owner_contact(listings[listing_id].document)
            if listing_id in listings
            else None
            for listing_id in listing_ids
        }

    async def summary(self, listing_id: str) -> ListingSummary:
        summaries = await self.summaries([listing_id])
        return summaries[listing_id]

    async def summaries(self, listing_ids: list[str]) -> dict[str, ListingSummary]:
        """Summaries keyed by id; unknown listings get empty summaries."""

        listings = await fetch_listings_by_ids(self._session, listing_ids)
        return {
            listing_id: _to_summary(listings[listing_id])
            if listing_id in listings
            else ListingSummary(listing_id=listing_id)
            for listing_id in listing_ids
        }
