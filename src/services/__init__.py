"""Service layer for the listing store, ledgers and recent views."""

from src.services.contract_service import ContractService, ContractView
from src.services.listing_service import (
    ListingPage,
    ListingService,
    ListingSummary,
    ListingView,
    RegionPath,
)
from src.services.recent_view_service import RecentViewEntry, RecentViewService
from src.services.reservation_service import ReservationService, ReservationView

__all__ = [
    "ContractService",
    "ContractView",
    "ListingPage",
    "ListingService",
    "ListingSummary",
    "ListingView",
    "RecentViewEntry",
    "RecentViewService",
    "RegionPath",
    "ReservationService",
    "ReservationView",
]
