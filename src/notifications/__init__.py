"""Notification mailbox implementations."""

from src.notifications.base import (
    Mailbox,
    Notification,
    NotificationKind,
    post_safely,
)
from src.notifications.memory import InMemoryMailbox
from src.notifications.sql import SqlMailbox

__all__ = [
    "InMemoryMailbox",
    "Mailbox",
    "Notification",
    "NotificationKind",
    "SqlMailbox",
    "post_safely",
]
