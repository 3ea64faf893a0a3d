"""Typed failures raised by the rental core."""

from __future__ import annotations


class RentalCoreError(Exception):
    """Base error; ``status_class`` is what the request layer maps to a status."""

    status_class: str = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.status_class)
        self.message = message or self.status_class


class NotFoundError(RentalCoreError):
    status_class = "not_found"


class ForbiddenError(RentalCoreError):
    status_class = "forbidden"


class ConflictError(RentalCoreError):
    status_class = "conflict"


class InvalidInputError(RentalCoreError, ValueError):
    status_class = "invalid_input"


class StorageError(RentalCoreError, RuntimeError):
    status_class = "storage_error"


__all__ = [
    "ConflictError",
    "ForbiddenError",
    "InvalidInputError",
    "NotFoundError",
    "RentalCoreError",
    "StorageError",
]
