"""Mailbox table models."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, JSONDocument, UTCDateTime


class NotificationRecord(Base):
    """One message in a recipient's inbox."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_recipient", "recipient_contact", "is_read"),
        Index("idx_notifications_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    recipient_contact: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )


class MailboxRecipient(Base):
    """Marks a recipient whose welcome message has been seeded."""

    __tablename__ = "mailbox_recipients"

    recipient_contact: Mapped[str] = mapped_column(String(64), primary_key=True)
    seeded_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
