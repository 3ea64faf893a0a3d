"""Per-recipient mailbox used as the side-effect channel of the ledgers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    SYSTEM = "system"
    ORDER = "order"
    NOTICE = "notice"
    RESERVATION = "reservation"


@dataclass(slots=True)
class Notification:
    """One inbox message as seen by callers."""

    id: int
    recipient_contact: str
    kind: str
    title: str
    body: str
    created_at: datetime
    read: bool = False
    payload: dict[str, Any] | None = None


def is_known_recipient(recipient: str | None) -> bool:
    return bool(recipient and recipient.strip())


class Mailbox(ABC):
    """Repository abstraction for recipient inboxes.

    The first touch of an unseen recipient (``post``, ``list``,
    ``unread_count`` or ``mark_all_read``) seeds exactly one system welcome
    message. Blank recipients are unknown: reads return empty results and
    ``mark_all_read`` does nothing.
    """

    @abstractmethod
    async def post(
        self,
        recipient: str,
        kind: str,
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        """Append a message with a server-assigned id and timestamp.

        Raises:
            InvalidInputError: ``recipient`` is blank.
        """
        ...

    @abstractmethod
    async def list(self, recipient: str | None) -> list[Notification]:
        """Messages ordered by ``(created_at desc, id desc)``."""
        ...

    @abstractmethod
    async def unread_count(self, recipient: str | None) -> int: ...

    @abstractmethod
    async def mark_all_read(self, recipient: str | None) -> int:
        """Mark every unread message read; returns how many changed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""


async def post_safely(
    mailbox: Mailbox,
    recipient: str | None,
    kind: str,
    title: str,
    body: str,
    payload: dict[str, Any] | None = None,
) -> bool:
    """Best-effort delivery: log and swallow every failure.

    Ledgers call this after their own commit so a mailbox problem can never
    undo a transition.
    """

    if not is_known_recipient(recipient):
        logger.warning(f"Skipping '{title}' notification: recipient unknown")
        return False

    try:
        await mailbox.post(str(recipient), kind, title, body, payload)
    except Exception:
        logger.exception(f"Failed to deliver '{title}' notification to {recipient}")
        return False
    return True
