"""Rental contract table model."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, UTCDateTime


class ContractStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    QUIT_PENDING = "quit_pending"
    ENDED = "ended"
    REJECTED = "rejected"


class RentalContract(Base):
    """Tenancy agreement between a tenant and the listing's landlord.

    Several contracts may reference one listing (co-tenancy).
    """

    __tablename__ = "rental_contracts"
    __table_args__ = (
        Index("idx_rental_contracts_landlord", "landlord_contact", "status"),
        Index("idx_rental_contracts_tenant", "tenant_contact", "status"),
        Index("idx_rental_contracts_listing", "listing_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    listing_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("listings.listing_id"), nullable=False
    )
    tenant_contact: Mapped[str] = mapped_column(String(64), nullable=False)
    landlord_contact: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ContractStatus.PENDING.value,
        server_default=ContractStatus.PENDING.value,
    )
    remark: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
