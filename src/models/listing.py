"""Listing table model."""

from datetime import datetime
from typing import Any

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, JSONDocument, UTCDateTime


class Listing(Base):
    """Rental listing document with its derived filter columns.

    ``document`` is the source of truth. Every other data column is a
    projection of it and is only written by ``db.repositories._apply_document``.
    """

    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("listing_id", name="uq_listings_listing_id"),
        Index("idx_listings_region", "province_code", "city_code", "district_code"),
        Index("idx_listings_price", "price_minor"),
        Index("idx_listings_status", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    listing_id: Mapped[str] = mapped_column(String(64), nullable=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)

    price_minor: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    area_text: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )
    payment_term: Mapped[str] = mapped_column(
        String(50), nullable=False, default="", server_default=""
    )
    province_code: Mapped[str] = mapped_column(
        String(20), nullable=False, default="", server_default=""
    )
    city_code: Mapped[str] = mapped_column(
        String(20), nullable=False, default="", server_default=""
    )
    district_code: Mapped[str] = mapped_column(
        String(20), nullable=False, default="", server_default=""
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="online", server_default="online"
    )
    search_text: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
