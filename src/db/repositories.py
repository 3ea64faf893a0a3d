"""Repository helpers for listings, ledgers, mailbox and recent views."""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import (
    ColumnElement,
    Select,
    String,
    delete,
    func,
    insert,
    literal,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.projections import derive_projections, owner_contact, parse_price_minor
from src.errors import ConflictError, InvalidInputError, NotFoundError, StorageError
from src.models.listing import Listing
from src.models.notification import MailboxRecipient, NotificationRecord
from src.models.recent_view import RecentView
from src.models.rental_contract import RentalContract
from src.models.reservation import Reservation, ReservationOwnerIndex

P = ParamSpec("P")
R = TypeVar("R")


def storage_errors(
    func_: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    """Roll back and surface backend failures as ``StorageError`` (no retry)."""

    @functools.wraps(func_)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func_(*args, **kwargs)
        except SQLAlchemyError as exc:
            session = args[0] if args else kwargs.get("session")
            if isinstance(session, AsyncSession):
                await session.rollback()
            raise StorageError(f"{func_.__name__} failed: {exc}") from exc

    return wrapper


@dataclass(slots=True)
class ListingFilters:
    """Allow-list of filterable listing fields.

    Region precedence is district > city > province: only the most specific
    code given is applied. Prices are in major units, inclusive.
    """

    province_code: str | None = None
    city_code: str | None = None
    district_code: str | None = None
    min_price: int | Decimal | str | None = None
    max_price: int | Decimal | str | None = None
    payment_term: str | None = None
    keyword: str | None = None
    status: str | None = "online"


@dataclass(slots=True)
class ReservationInsert:
    """Payload used to insert a viewing reservation."""

    listing_id: str
    requester_contact: str
    date: date
    display_name: str
    note: str


@dataclass(slots=True)
class ContractInsert:
    """Payload used to insert a rental contract."""

    listing_id: str
    tenant_contact: str
    landlord_contact: str
    remark: str


@dataclass(slots=True)
class NotificationInsert:
    """Payload used to insert a mailbox message."""

    recipient_contact: str
    kind: str
    title: str
    body: str
    payload: dict[str, Any] | None = None


@dataclass(slots=True)
class RecentViewUpsert:
    """Payload used to insert/update a recent view row."""

    user_contact: str
    listing_id: str
    viewed_at: datetime
    snapshot: dict[str, Any] | None


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def _apply_document(listing: Listing, document: Mapping[str, Any], now: datetime) -> None:
    """The single listing write path: document and projections move together."""

    stored = deepcopy(dict(document))
    raw_id = stored.get("id")
    if raw_id is None or str(raw_id).strip() != listing.listing_id:
        stored["id"] = listing.listing_id
    projection = derive_projections(stored)

    listing.document = stored
    listing.price_minor = projection.price_minor
    listing.area_text = projection.area_text
    listing.payment_term = projection.payment_term
    listing.province_code = projection.province_code
    listing.city_code = projection.city_code
    listing.district_code = projection.district_code
    listing.status = projection.status
    listing.search_text = projection.search_text
    listing.updated_at = now


async def _reindex_reservation_owners(
    session: AsyncSession, listing_id: str, owner: str | None
) -> None:
    await session.execute(
        delete(ReservationOwnerIndex).where(
            ReservationOwnerIndex.listing_id == listing_id
        )
    )
    if owner is None:
        return
    await session.execute(
        insert(ReservationOwnerIndex.__table__).from_select(
            ["reservation_id", "listing_id", "owner_contact"],
            select(
                Reservation.id,
                Reservation.listing_id,
                literal(owner, String),
            ).where(Reservation.listing_id == listing_id),
        )
    )


@storage_errors
async def insert_listing(
    session: AsyncSession, listing_id: str, document: Mapping[str, Any], *, now: datetime
) -> Listing:
    """Insert a listing document and its projections in one commit."""

    listing = Listing(listing_id=listing_id, created_at=now)
    _apply_document(listing, document, now)
    session.add(listing)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError(f"Listing {listing_id} already exists") from exc
    return listing


@storage_errors
async def fetch_listing(session: AsyncSession, listing_id: str) -> Listing | None:
    stmt = select(Listing).where(Listing.listing_id == listing_id)
    return (await session.execute(stmt)).scalar_one_or_none()


@storage_errors
async def fetch_listings_by_ids(
    session: AsyncSession, listing_ids: list[str]
) -> dict[str, Listing]:
    """Fetch listings by public id, keyed by id."""

    if not listing_ids:
        return {}

    stmt = select(Listing).where(Listing.listing_id.in_(set(listing_ids)))
    result = await session.execute(stmt)
    return {lst.listing_id: lst for lst in result.scalars().all()}


@storage_errors
async def rewrite_listing(
    session: AsyncSession,
    listing_id: str,
    transform: Callable[[dict[str, Any]], dict[str, Any]],
    *,
    now: datetime,
) -> Listing:
    """Replace a listing's document with ``transform(old)`` and re-derive.

    Owner index rows follow the document in the same commit when the owner
    contact changes.
    """

    stmt = (
        select(Listing)
        .where(Listing.listing_id == listing_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    listing = (await session.execute(stmt)).scalar_one_or_none()
    if listing is None:
        await session.rollback()
        raise NotFoundError(f"Listing {listing_id} not found")

    old_owner = owner_contact(listing.document)
    _apply_document(listing, transform(deepcopy(listing.document)), now)
    new_owner = owner_contact(listing.document)

    if old_owner != new_owner:
        await session.flush()
        await _reindex_reservation_owners(session, listing_id, new_owner)

    await session.commit()
    return listing


def _price_bound(name: str, value: object) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    minor = parse_price_minor(value)
    if minor is None:
        raise InvalidInputError(f"Invalid {name}: {value!r}")
    return minor


def build_listing_criteria(filters: ListingFilters) -> list[ColumnElement[bool]]:
    """Translate allow-listed filters into bound SQL criteria."""

    criteria: list[ColumnElement[bool]] = []

    if filters.status is not None:
        criteria.append(Listing.status == filters.status)

    if filters.district_code:
        criteria.append(Listing.district_code == filters.district_code)
    elif filters.city_code:
        criteria.append(Listing.city_code == filters.city_code)
    elif filters.province_code:
        criteria.append(Listing.province_code == filters.province_code)

    min_minor = _price_bound("min_price", filters.min_price)
    if min_minor is not None:
        criteria.append(Listing.price_minor >= min_minor)

    max_minor = _price_bound("max_price", filters.max_price)
    if max_minor is not None:
        criteria.append(Listing.price_minor <= max_minor)

    if filters.payment_term:
        criteria.append(Listing.payment_term == filters.payment_term)

    keyword = (filters.keyword or "").strip().lower()
    if keyword:
        criteria.append(Listing.search_text.contains(keyword, autoescape=True))

    return criteria


def build_listing_query(
    filters: ListingFilters, *, offset: int = 0, limit: int = 20
) -> Select[tuple[Listing]]:
    return (
        select(Listing)
        .where(*build_listing_criteria(filters))
        .order_by(Listing.id.desc())
        .offset(offset)
        .limit(limit)
    )


@storage_errors
async def fetch_listing_page(
    session: AsyncSession, filters: ListingFilters, *, offset: int, limit: int
) -> tuple[list[Listing], int]:
    """Fetch one page of listings, newest first, plus the filtered total."""

    count_stmt = select(func.count(Listing.id)).where(*build_listing_criteria(filters))
    total = (await session.execute(count_stmt)).scalar_one_or_none() or 0

    result = await session.execute(
        build_listing_query(filters, offset=offset, limit=limit)
    )
    return list(result.scalars().all()), int(total)


@storage_errors
async def delete_listing_cascade(session: AsyncSession, listing_id: str) -> bool:
    """Delete a listing with its reservations and contracts in one commit."""

    exists_stmt = select(Listing.id).where(Listing.listing_id == listing_id)
    if (await session.execute(exists_stmt)).scalar_one_or_none() is None:
        return False

    await session.execute(
        delete(ReservationOwnerIndex).where(
            ReservationOwnerIndex.listing_id == listing_id
        )
    )
    await session.execute(delete(Reservation).where(Reservation.listing_id == listing_id))
    await session.execute(
        delete(RentalContract).where(RentalContract.listing_id == listing_id)
    )
    await session.execute(delete(Listing).where(Listing.listing_id == listing_id))
    await session.commit()
    return True


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


@storage_errors
async def insert_reservation(
    session: AsyncSession,
    row: ReservationInsert,
    *,
    owner: str | None,
    now: datetime,
) -> Reservation:
    """Insert a pending reservation and its owner index row together."""

    reservation = Reservation(
        listing_id=row.listing_id,
        requester_contact=row.requester_contact,
        date=row.date,
        display_name=row.display_name,
        note=row.note,
        created_at=now,
        updated_at=now,
    )
    session.add(reservation)
    await session.flush()

    if owner is not None:
        session.add(
            ReservationOwnerIndex(
                reservation_id=reservation.id,
                listing_id=row.listing_id,
                owner_contact=owner,
            )
        )

    await session.commit()
    return reservation


@storage_errors
async def fetch_reservation(
    session: AsyncSession, reservation_id: int
) -> Reservation | None:
    stmt = (
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@storage_errors
async def fetch_reservations_for_requester(
    session: AsyncSession, requester_contact: str
) -> list[Reservation]:
    stmt = (
        select(Reservation)
        .where(Reservation.requester_contact == requester_contact)
        .order_by(Reservation.date.desc(), Reservation.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@storage_errors
async def fetch_reservations_for_owner(
    session: AsyncSession, owner: str
) -> list[Reservation]:
    """Candidates from the owner index; callers re-check the live owner."""

    stmt = (
        select(Reservation)
        .join(
            ReservationOwnerIndex,
            ReservationOwnerIndex.reservation_id == Reservation.id,
        )
        .where(ReservationOwnerIndex.owner_contact == owner)
        .order_by(Reservation.date.desc(), Reservation.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@storage_errors
async def transition_reservation(
    session: AsyncSession,
    reservation_id: int,
    *,
    expected: str,
    new_status: str,
    now: datetime,
) -> bool:
    """Compare-and-set the status; False when the row was not in ``expected``."""

    stmt = (
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(Reservation.status == expected)
        .values(status=new_status, updated_at=now)
        .returning(Reservation.id)
    )
    result = await session.execute(stmt)
    changed = result.scalars().all()
    await session.commit()
    return bool(changed)


# ---------------------------------------------------------------------------
# Rental contracts
# ---------------------------------------------------------------------------


@storage_errors
async def insert_contract(
    session: AsyncSession, row: ContractInsert, *, now: datetime
) -> RentalContract:
    contract = RentalContract(
        listing_id=row.listing_id,
        tenant_contact=row.tenant_contact,
        landlord_contact=row.landlord_contact,
        remark=row.remark,
        created_at=now,
        updated_at=now,
    )
    session.add(contract)
    await session.commit()
    return contract


@storage_errors
async def fetch_contract(
    session: AsyncSession, contract_id: int
) -> RentalContract | None:
    stmt = (
        select(RentalContract)
        .where(RentalContract.id == contract_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@storage_errors
async def fetch_contracts_for_landlord(
    session: AsyncSession, landlord_contact: str, *, status: str | None = None
) -> list[RentalContract]:
    stmt = (
        select(RentalContract)
        .where(RentalContract.landlord_contact == landlord_contact)
        .order_by(RentalContract.created_at.desc(), RentalContract.id.desc())
    )

    if status:
        stmt = stmt.where(RentalContract.status == status)

    result = await session.execute(stmt)
    return list(result.scalars().all())


@storage_errors
async def fetch_contracts_for_tenant(
    session: AsyncSession, tenant_contact: str, *, status: str
) -> list[RentalContract]:
    stmt = (
        select(RentalContract)
        .where(RentalContract.tenant_contact == tenant_contact)
        .where(RentalContract.status == status)
        .order_by(RentalContract.updated_at.desc(), RentalContract.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@storage_errors
async def transition_contract(
    session: AsyncSession,
    contract_id: int,
    *,
    expected: str,
    new_status: str,
    now: datetime,
    remark: str | None = None,
) -> bool:
    """Compare-and-set the status; False when the row was not in ``expected``."""

    values: dict[str, object] = {"status": new_status, "updated_at": now}
    if remark is not None:
        values["remark"] = remark

    stmt = (
        update(RentalContract)
        .where(RentalContract.id == contract_id)
        .where(RentalContract.status == expected)
        .values(**values)
        .returning(RentalContract.id)
    )
    result = await session.execute(stmt)
    changed = result.scalars().all()
    await session.commit()
    return bool(changed)


# ---------------------------------------------------------------------------
# Mailbox
# ---------------------------------------------------------------------------


@storage_errors
async def seed_mailbox_recipient(
    session: AsyncSession,
    recipient_contact: str,
    welcome: NotificationInsert,
    *,
    now: datetime,
) -> bool:
    """Register a recipient and store its welcome message exactly once."""

    dialect_name = session.get_bind().dialect.name

    if dialect_name == "postgresql":
        stmt = (
            pg_insert(MailboxRecipient)
            .values(recipient_contact=recipient_contact, seeded_at=now)
            .on_conflict_do_nothing()
            .returning(MailboxRecipient.recipient_contact)
        )
        inserted = (await session.execute(stmt)).scalars().all()
        if not inserted:
            await session.commit()
            return False
    else:
        exists_stmt = select(MailboxRecipient.recipient_contact).where(
            MailboxRecipient.recipient_contact == recipient_contact
        )
        if (await session.execute(exists_stmt)).scalar_one_or_none() is not None:
            return False
        session.add(MailboxRecipient(recipient_contact=recipient_contact, seeded_at=now))

    session.add(
        NotificationRecord(
            recipient_contact=welcome.recipient_contact,
            kind=welcome.kind,
            title=welcome.title,
            body=welcome.body,
            payload=welcome.payload,
            is_read=False,
            created_at=now,
        )
    )
    try:
        await session.commit()
    except IntegrityError:
        # Another writer seeded the same recipient first.
        await session.rollback()
        return False
    return True


@storage_errors
async def insert_notification(
    session: AsyncSession, row: NotificationInsert, *, now: datetime
) -> NotificationRecord:
    record = NotificationRecord(
        recipient_contact=row.recipient_contact,
        kind=row.kind,
        title=row.title,
        body=row.body,
        payload=row.payload,
        is_read=False,
        created_at=now,
    )
    session.add(record)
    await session.commit()
    return record


@storage_errors
async def fetch_notifications(
    session: AsyncSession, recipient_contact: str
) -> list[NotificationRecord]:
    stmt = (
        select(NotificationRecord)
        .where(NotificationRecord.recipient_contact == recipient_contact)
        .order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@storage_errors
async def count_unread_notifications(
    session: AsyncSession, recipient_contact: str
) -> int:
    stmt = (
        select(func.count(NotificationRecord.id))
        .where(NotificationRecord.recipient_contact == recipient_contact)
        .where(NotificationRecord.is_read.is_(False))
    )
    return int((await session.execute(stmt)).scalar_one_or_none() or 0)


@storage_errors
async def mark_notifications_read(session: AsyncSession, recipient_contact: str) -> int:
    stmt = (
        update(NotificationRecord)
        .where(NotificationRecord.recipient_contact == recipient_contact)
        .where(NotificationRecord.is_read.is_(False))
        .values(is_read=True)
        .returning(NotificationRecord.id)
    )
    result = await session.execute(stmt)
    changed = result.scalars().all()
    await session.commit()
    return len(changed)


# ---------------------------------------------------------------------------
# Recent views
# ---------------------------------------------------------------------------


async def _rekey_recent_views(
    session: AsyncSession, legacy_id: str | None, user_contact: str
) -> int:
    """Move rows from a legacy identifier onto the stable contact (no commit).

    When both identities viewed the same listing the newer row wins.
    """

    if not legacy_id or legacy_id == user_contact:
        return 0

    legacy_rows = list(
        (
            await session.execute(
                select(RecentView).where(RecentView.user_contact == legacy_id)
            )
        )
        .scalars()
        .all()
    )
    if not legacy_rows:
        return 0

    listing_ids = [row.listing_id for row in legacy_rows]
    current = {
        row.listing_id: row
        for row in (
            await session.execute(
                select(RecentView)
                .where(RecentView.user_contact == user_contact)
                .where(RecentView.listing_id.in_(listing_ids))
            )
        )
        .scalars()
        .all()
    }

    for legacy in legacy_rows:
        existing = current.get(legacy.listing_id)
        if existing is None:
            session.add(
                RecentView(
                    user_contact=user_contact,
                    listing_id=legacy.listing_id,
                    viewed_at=legacy.viewed_at,
                    snapshot=legacy.snapshot,
                )
            )
        elif legacy.viewed_at > existing.viewed_at:
            existing.viewed_at = legacy.viewed_at
            existing.snapshot = legacy.snapshot

    await session.execute(delete(RecentView).where(RecentView.user_contact == legacy_id))
    await session.flush()
    return len(legacy_rows)


@storage_errors
async def upsert_recent_view(
    session: AsyncSession, row: RecentViewUpsert, *, legacy_id: str | None = None
) -> RecentView:
    """Insert or overwrite the (user, listing) row with ON CONFLICT DO UPDATE."""

    await _rekey_recent_views(session, legacy_id, row.user_contact)
    dialect_name = session.get_bind().dialect.name

    if dialect_name == "postgresql":
        stmt = pg_insert(RecentView).values(
            user_contact=row.user_contact,
            listing_id=row.listing_id,
            viewed_at=row.viewed_at,
            snapshot=row.snapshot,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RecentView.user_contact, RecentView.listing_id],
            set_={
                "viewed_at": stmt.excluded.viewed_at,
                "snapshot": stmt.excluded.snapshot,
            },
        )
        await session.execute(stmt)
    else:
        existing = await session.get(RecentView, (row.user_contact, row.listing_id))
        if existing is None:
            session.add(
                RecentView(
                    user_contact=row.user_contact,
                    listing_id=row.listing_id,
                    viewed_at=row.viewed_at,
                    snapshot=row.snapshot,
                )
            )
        else:
            existing.viewed_at = row.viewed_at
            existing.snapshot = row.snapshot

    await session.commit()

    stmt = (
        select(RecentView)
        .where(RecentView.user_contact == row.user_contact)
        .where(RecentView.listing_id == row.listing_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one()


@storage_errors
async def fetch_recent_views(
    session: AsyncSession,
    user_contact: str,
    *,
    limit: int,
    legacy_id: str | None = None,
) -> list[RecentView]:
    moved = await _rekey_recent_views(session, legacy_id, user_contact)
    if moved:
        await session.commit()

    stmt = (
        select(RecentView)
        .where(RecentView.user_contact == user_contact)
        .order_by(RecentView.viewed_at.desc(), RecentView.listing_id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@storage_errors
async def delete_recent_view(
    session: AsyncSession,
    user_contact: str,
    listing_id: str,
    *,
    legacy_id: str | None = None,
) -> bool:
    await _rekey_recent_views(session, legacy_id, user_contact)

    stmt = (
        delete(RecentView)
        .where(RecentView.user_contact == user_contact)
        .where(RecentView.listing_id == listing_id)
        .returning(RecentView.listing_id)
    )
    deleted = (await session.execute(stmt)).scalars().all()
    await session.commit()
    return bool(deleted)


@storage_errors
async def clear_recent_views(
    session: AsyncSession, user_contact: str, *, legacy_id: str | None = None
) -> int:
    await _rekey_recent_views(session, legacy_id, user_contact)

    stmt = (
        delete(RecentView)
        .where(RecentView.user_contact == user_contact)
        .returning(RecentView.listing_id)
    )
    deleted = (await session.execute(stmt)).scalars().all()
    await session.commit()
    return len(deleted)
