"""SQLAlchemy ORM models."""

from src.models.listing import Listing
from src.models.notification import MailboxRecipient, NotificationRecord
from src.models.recent_view import RecentView
from src.models.rental_contract import ContractStatus, RentalContract
from src.models.reservation import (
    Reservation,
    ReservationOwnerIndex,
    ReservationStatus,
)

__all__ = [
    "ContractStatus",
    "Listing",
    "MailboxRecipient",
    "NotificationRecord",
    "RecentView",
    "RentalContract",
    "Reservation",
    "ReservationOwnerIndex",
    "ReservationStatus",
]
