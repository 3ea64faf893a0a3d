"""Durable mailbox backed by the ``notifications`` table."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import get_settings
from src.db.repositories import (
    NotificationInsert,
    count_unread_notifications,
    fetch_notifications,
    insert_notification,
    mark_notifications_read,
    seed_mailbox_recipient,
)
from src.errors import InvalidInputError
from src.models.notification import NotificationRecord
from src.notifications.base import (
    Mailbox,
    Notification,
    NotificationKind,
    is_known_recipient,
)


def _to_notification(record: NotificationRecord) -> Notification:
    return Notification(
        id=record.id,
        recipient_contact=record.recipient_contact,
        kind=record.kind,
        title=record.title,
        body=record.body,
        created_at=record.created_at,
        read=record.is_read,
        payload=record.payload,
    )


class SqlMailbox(Mailbox):
    """Mailbox persisted through its own sessions.

    Each call opens a fresh session, so mailbox writes never share a
    transaction with the ledger that triggered them.
    """

    _sessionmaker: async_sessionmaker[AsyncSession]

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = get_settings()
        self._sessionmaker = sessionmaker
        self._clock = clock or (lambda: datetime.now(UTC))
        self._welcome_title = settings.welcome_message_title
        self._welcome_body = settings.welcome_message_body

    async def _ensure(self, session: AsyncSession, recipient: str) -> None:
        await seed_mailbox_recipient(
            session,
            recipient,
            NotificationInsert(
                recipient_contact=recipient,
                kind=NotificationKind.SYSTEM.value,
                title=self._welcome_title,
                body=self._welcome_body,
            ),
            now=self._clock(),
        )

    async def post(
        self,
        recipient: str,
        kind: str,
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        if not is_known_recipient(recipient):
            raise InvalidInputError("recipient is required")

        async with self._sessionmaker() as session:
            await self._ensure(session, recipient)
            record = await insert_notification(
                session,
                NotificationInsert(
                    recipient_contact=recipient,
                    kind=kind,
                    title=title,
                    body=body,
                    payload=payload,
                ),
                now=self._clock(),
            )
            return _to_notification(record)

    async def list(self, recipient: str | None) -> list[Notification]:
        if not is_known_recipient(recipient):
            return []

        async with self._sessionmaker() as session:
            await self._ensure(session, str(recipient))
            records = await fetch_notifications(session, str(recipient))
            return [_to_notification(record) for record in records]

    async def unread_count(self, recipient: str | None) -> int:
        if not is_known_recipient(recipient):
            return 0

        async with self._sessionmaker() as session:
            await self._ensure(session, str(recipient))
            return await count_unread_notifications(session, str(recipient))

    async def mark_all_read(self, recipient: str | None) -> int:
        if not is_known_recipient(recipient):
            return 0

        async with self._sessionmaker() as session:
            await self._ensure(session, str(recipient))
            return await mark_notifications_read(session, str(recipient))
