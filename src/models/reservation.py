"""Viewing reservation table models."""

import datetime as dt
from enum import StrEnum

from sqlalchemy import Date, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, UTCDateTime


class ReservationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Reservation(Base):
    """Request by a prospective tenant to view a listing.

    The owner contact is not stored; it is resolved from the listing on read.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_reservations_requester", "requester_contact"),
        Index("idx_reservations_listing", "listing_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    listing_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("listings.listing_id"), nullable=False
    )
    requester_contact: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    display_name: Mapped[str] = mapped_column(
        String(100), nullable=False, default="", server_default=""
    )
    note: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ReservationStatus.PENDING.value,
        server_default=ReservationStatus.PENDING.value,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )


class ReservationOwnerIndex(Base):
    """Owner contact -> reservation lookup, kept in step with listing writes."""

    __tablename__ = "reservation_owner_index"
    __table_args__ = (
        Index("idx_reservation_owner_index_owner", "owner_contact"),
        Index("idx_reservation_owner_index_listing", "listing_id"),
    )

    reservation_id: Mapped[int] = mapped_column(
        ForeignKey("reservations.id"), primary_key=True
    )
    listing_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_contact: Mapped[str] = mapped_column(String(64), nullable=False)
