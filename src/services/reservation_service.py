"""Viewing-appointment ledger: create, decide, cancel and list reservations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.db.locks import row_lock
from src.db.repositories import (
    ReservationInsert,
    fetch_reservation,
    fetch_reservations_for_owner,
    fetch_reservations_for_requester,
    insert_reservation,
    transition_reservation,
)
from src.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from src.models.reservation import Reservation, ReservationStatus
from src.notifications.base import Mailbox, NotificationKind, post_safely
from src.services.listing_service import ListingService, ListingSummary

logger = logging.getLogger(__name__)

DECISIONS: dict[str, ReservationStatus] = {
    "accept": ReservationStatus.ACCEPTED,
    "reject": ReservationStatus.REJECTED,
}


@dataclass(slots=True)
class ReservationView:
    id: int
    listing_id: str
    requester_contact: str
    date: date
    display_name: str
    note: str
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime
    listing_title: str = ""
    cover_url: str = ""


def parse_reservation_date(value: date | str) -> date:
    """Accept a ``date`` or a ``YYYY-MM-DD`` string."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError as exc:
            raise InvalidInputError(f"Malformed reservation date: {value!r}") from exc
    raise InvalidInputError(f"Malformed reservation date: {value!r}")


def _to_view(reservation: Reservation, summary: ListingSummary | None) -> ReservationView:
    return ReservationView(
        id=reservation.id,
        listing_id=reservation.listing_id,
        requester_contact=reservation.requester_contact,
        date=reservation.date,
        display_name=reservation.display_name,
        note=reservation.note,
        status=ReservationStatus(reservation.status),
        created_at=reservation.created_at,
        updated_at=reservation.updated_at,
        listing_title=summary.title if summary else "",
        cover_url=summary.cover_url if summary else "",
    )


class ReservationService:
    """Reservation state machine: pending -> accepted | rejected | cancelled."""

    _session: AsyncSession

    def __init__(
        self,
        session: AsyncSession,
        mailbox: Mailbox,
        listings: ListingService | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._mailbox = mailbox
        self._clock = clock or (lambda: datetime.now(UTC))
        self._listings = listings or ListingService(session, clock=self._clock)

    def _today(self) -> date:
        return self._clock().astimezone(get_settings().tz).date()

    async def _enrich(self, reservations: list[Reservation]) -> list[ReservationView]:
        summaries = await self._listings.summaries(
            [reservation.listing_id for reservation in reservations]
        )
        return [
            _to_view(reservation, summaries.get(reservation.listing_id))
            for reservation in reservations
        ]

    async def _load(self, reservation_id: int) -> Reservation:
        reservation = await fetch_reservation(self._session, reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    async def _transition(
        self, reservation: Reservation, new_status: ReservationStatus
    ) -> Reservation:
        changed = await transition_reservation(
            self._session,
            reservation.id,
            expected=ReservationStatus.PENDING.value,
            new_status=new_status.value,
            now=self._clock(),
        )
        if not changed:
            raise ConflictError(
                f"Reservation {reservation.id} is no longer {ReservationStatus.PENDING}"
            )
        logger.info(f"Reservation {reservation.id} moved to {new_status}")
        return await self._load(reservation.id)

    async def create(
        self,
        listing_id: str,
        requester_contact: str,
        date: date | str,
        display_name: str = "",
        note: str = "",
    ) -> ReservationView:
        """Book a viewing for today or later and notify both parties."""

        if not (requester_contact or "").strip():
            raise InvalidInputError("requester contact is required")

        visit_date = parse_reservation_date(date)
        if visit_date < self._today():
            raise InvalidInputError(f"Reservation date {visit_date} is in the past")

        owner = await self._listings.resolve_owner(listing_id)
        summary = await self._listings.summary(listing_id)

        reservation = await insert_reservation(
            self._session,
            ReservationInsert(
                listing_id=listing_id,
                requester_contact=requester_contact,
                date=visit_date,
                display_name=display_name or "",
                note=note or "",
            ),
            owner=owner,
            now=self._clock(),
        )
        logger.info(f"Reservation {reservation.id} created for listing {listing_id}")

        payload = {
            "reservation_id": reservation.id,
            "listing_id": listing_id,
            "date": visit_date.isoformat(),
        }
        await post_safely(
            self._mailbox,
            requester_contact,
            NotificationKind.RESERVATION,
            "Viewing request sent",
            f"Your viewing of '{summary.title}' on {visit_date} is waiting for the owner.",
            payload,
        )
        if owner is None:
            logger.warning(
                f"Listing {listing_id} has no owner contact, skipping reservation alert"
            )
        else:
            await post_safely(
                self._mailbox,
                owner,
                NotificationKind.RESERVATION,
                "New viewing request",
                f"{display_name or requester_contact} asked to view '{summary.title}' "
                f"on {visit_date}.",
                payload,
            )

        return _to_view(reservation, summary)

    async def get(self, reservation_id: int) -> ReservationView:
        reservation = await self._load(reservation_id)
        summary = await self._listings.summary(reservation.listing_id)
        return _to_view(reservation, summary)

    async def list_for_requester(self, requester_contact: str) -> list[ReservationView]:
        if not (requester_contact or "").strip():
            return []
        reservations = await fetch_reservations_for_requester(
            self._session, requester_contact
        )
        return await self._enrich(reservations)

    async def list_for_owner(self, owner_contact: str) -> list[ReservationView]:
        """Reservations on listings currently owned by ``owner_contact``."""

        if not (owner_contact or "").strip():
            return []
        candidates = await fetch_reservations_for_owner(self._session, owner_contact)
        owners = await self._listings.owners(
            [reservation.listing_id for reservation in candidates]
        )
        owned = [
            reservation
            for reservation in candidates
            if owners.get(reservation.listing_id) == owner_contact
        ]
        return await self._enrich(owned)

    async def decide(
        self, reservation_id: int, owner_contact: str, action: str
    ) -> ReservationView:
        """Accept or reject a pending reservation as the listing owner."""

        async with row_lock(scope="reservation", row_id=reservation_id):
            reservation = await self._load(reservation_id)

            new_status = DECISIONS.get((action or "").strip().lower())
            if new_status is None:
                raise ForbiddenError(
                    f"Action {action!r} is not allowed on reservation {reservation_id}"
                )

            owner = await self._listings.resolve_owner(reservation.listing_id)
            if owner is None or owner != owner_contact:
                raise ForbiddenError(
                    f"Only the listing owner can decide reservation {reservation_id}"
                )

            if reservation.status != ReservationStatus.PENDING:
                raise ConflictError(
                    f"Reservation {reservation_id} is already {reservation.status}"
                )

            reservation = await self._transition(reservation, new_status)

        summary = await self._listings.summary(reservation.listing_id)
        verdict = "accepted" if new_status == ReservationStatus.ACCEPTED else "declined"
        payload = {
            "reservation_id": reservation.id,
            "listing_id": reservation.listing_id,
            "status": new_status.value,
        }
        await post_safely(
            self._mailbox,
            reservation.requester_contact,
            NotificationKind.RESERVATION,
            f"Viewing {verdict}",
            f"The owner {verdict} your viewing of '{summary.title}' "
            f"on {reservation.date}.",
            payload,
        )
        await post_safely(
            self._mailbox,
            owner_contact,
            NotificationKind.RESERVATION,
            f"You {verdict} a viewing",
            f"Viewing of '{summary.title}' on {reservation.date} was {verdict}.",
            payload,
        )
        return _to_view(reservation, summary)

    async def cancel(self, reservation_id: int, requester_contact: str) -> ReservationView:
        """Withdraw a pending reservation as its requester. The row is kept."""

        async with row_lock(scope="reservation", row_id=reservation_id):
            reservation = await self._load(reservation_id)

            if reservation.requester_contact != requester_contact:
                raise ForbiddenError(
                    f"Only the requester can cancel reservation {reservation_id}"
                )

            if reservation.status != ReservationStatus.PENDING:
                raise ConflictError(
                    f"Reservation {reservation_id} is already {reservation.status}"
                )

            reservation = await self._transition(reservation, ReservationStatus.CANCELLED)

        summary = await self._listings.summary(reservation.listing_id)
        owner = await self._listings.owners([reservation.listing_id])
        payload = {
            "reservation_id": reservation.id,
            "listing_id": reservation.listing_id,
            "status": ReservationStatus.CANCELLED.value,
        }
        await post_safely(
            self._mailbox,
            requester_contact,
            NotificationKind.RESERVATION,
            "Viewing cancelled",
            f"You cancelled your viewing of '{summary.title}' on {reservation.date}.",
            payload,
        )
        await post_safely(
            self._mailbox,
            owner.get(reservation.listing_id),
            NotificationKind.RESERVATION,
            "Viewing cancelled",
            f"{reservation.display_name or requester_contact} cancelled the viewing "
            f"of '{summary.title}' on {reservation.date}.",
            payload,
        )
        return _to_view(reservation, summary)
