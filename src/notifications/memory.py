"""Process-local mailbox for tests and single-process deployments."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from src.config import get_settings
from src.errors import InvalidInputError
from src.notifications.base import (
    Mailbox,
    Notification,
    NotificationKind,
    is_known_recipient,
)


class InMemoryMailbox(Mailbox):
    """Mailbox held in a dict; contents are lost when the instance goes away."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        welcome_title: str | None = None,
        welcome_body: str | None = None,
    ) -> None:
        settings = get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._welcome_title = welcome_title or settings.welcome_message_title
        self._welcome_body = welcome_body or settings.welcome_message_body
        self._ids = itertools.count(1)
        self._inboxes: dict[str, list[Notification]] = {}

    def _append(
        self,
        recipient: str,
        kind: str,
        title: str,
        body: str,
        payload: dict[str, Any] | None,
    ) -> Notification:
        message = Notification(
            id=next(self._ids),
            recipient_contact=recipient,
            kind=kind,
            title=title,
            body=body,
            created_at=self._clock(),
            read=False,
            payload=dict(payload) if payload is not None else None,
        )
        self._inboxes[recipient].append(message)
        return message

    def _ensure(self, recipient: str) -> list[Notification]:
        if recipient not in self._inboxes:
            self._inboxes[recipient] = []
            self._append(
                recipient,
                NotificationKind.SYSTEM.value,
                self._welcome_title,
                self._welcome_body,
                None,
            )
        return self._inboxes[recipient]

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
        self._ensure(recipient)
        return replace(self._append(recipient, kind, title, body, payload))

    async def list(self, recipient: str | None) -> list[Notification]:
        if not is_known_recipient(recipient):
            return []
        inbox = self._ensure(str(recipient))
        ordered = sorted(inbox, key=lambda m: (m.created_at, m.id), reverse=True)
        return [replace(message) for message in ordered]

    async def unread_count(self, recipient: str | None) -> int:
        if not is_known_recipient(recipient):
            return 0
        return sum(1 for m in self._ensure(str(recipient)) if not m.read)

    async def mark_all_read(self, recipient: str | None) -> int:
        if not is_known_recipient(recipient):
            return 0
        changed = 0
        for message in self._ensure(str(recipient)):
            if not message.read:
                message.read = True
                changed += 1
        return changed

    async def close(self) -> None:
        self._inboxes.clear()
