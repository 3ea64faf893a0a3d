"""Database session, lock and repository utilities."""

from src.db.locks import row_lock
from src.db.repositories import ListingFilters
from src.db.session import build_sessionmaker, create_engine_for

__all__ = [
    "ListingFilters",
    "build_sessionmaker",
    "create_engine_for",
    "row_lock",
]
