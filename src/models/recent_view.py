"""Recently viewed listings (footprint) table model."""

from datetime import datetime
from typing import Any

from sqlalchemy import Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, JSONDocument, UTCDateTime


class RecentView(Base):
    """Last view of a listing by a user, one row per pair.

    No foreign key to listings: the snapshot is allowed to outlive and drift
    from the listing it was taken from.
    """

    __tablename__ = "recent_views"
    __table_args__ = (Index("idx_recent_views_user_viewed", "user_contact", "viewed_at"),)

    user_contact: Mapped[str] = mapped_column(String(64), primary_key=True)
    listing_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    viewed_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
    snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
