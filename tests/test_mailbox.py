"""Tests for the notification mailbox implementations."""

import logging
from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.errors import InvalidInputError, StorageError
from src.notifications import (
    InMemoryMailbox,
    Mailbox,
    NotificationKind,
    SqlMailbox,
    post_safely,
)


@pytest.fixture(params=["memory", "sql"])
async def any_mailbox(
    request: pytest.FixtureRequest,
    sessionmaker: async_sessionmaker[AsyncSession],
    clock,
) -> AsyncIterator[Mailbox]:
    if request.param == "memory":
        mailbox: Mailbox = InMemoryMailbox(clock=clock)
    else:
        mailbox = SqlMailbox(sessionmaker, clock=clock)
    yield mailbox
    await mailbox.close()


class BrokenMailbox(InMemoryMailbox):
    async def post(self, recipient, kind, title, body, payload=None):
        raise StorageError("mailbox offline")


@pytest.mark.anyio
async def test_fresh_recipient_has_one_unread_welcome(any_mailbox: Mailbox) -> None:
    assert await any_mailbox.unread_count("R") == 1

    messages = await any_mailbox.list("R")
    assert len(messages) == 1
    assert messages[0].kind == NotificationKind.SYSTEM
    assert messages[0].title == "Welcome to the rental app"


@pytest.mark.anyio
async def test_first_post_seeds_exactly_one_welcome(any_mailbox: Mailbox) -> None:
    posted = await any_mailbox.post(
        "R", NotificationKind.ORDER, "Hello", "First message", {"contract_id": 7}
    )

    messages = await any_mailbox.list("R")

    assert [m.kind for m in messages] == [NotificationKind.ORDER, NotificationKind.SYSTEM]
    assert messages[0].id == posted.id
    assert messages[0].payload == {"contract_id": 7}
    assert messages[1].id < posted.id
    assert await any_mailbox.unread_count("R") == 2


@pytest.mark.anyio
async def test_list_is_newest_first(any_mailbox: Mailbox, clock) -> None:
    await any_mailbox.post("R", NotificationKind.NOTICE, "one", "")
    clock.advance(seconds=5)
    await any_mailbox.post("R", NotificationKind.NOTICE, "two", "")

    titles = [m.title for m in await any_mailbox.list("R")]

    assert titles == ["two", "one", "Welcome to the rental app"]


@pytest.mark.anyio
async def test_mark_all_read_is_idempotent(any_mailbox: Mailbox) -> None:
    await any_mailbox.post("R", NotificationKind.NOTICE, "hi", "")

    assert await any_mailbox.mark_all_read("R") == 2
    assert await any_mailbox.unread_count("R") == 0
    assert await any_mailbox.mark_all_read("R") == 0
    assert all(m.read for m in await any_mailbox.list("R"))


@pytest.mark.anyio
async def test_mark_all_read_on_fresh_recipient_leaves_zero_unread(
    any_mailbox: Mailbox,
) -> None:
    await any_mailbox.mark_all_read("fresh")

    assert await any_mailbox.unread_count("fresh") == 0
    assert len(await any_mailbox.list("fresh")) == 1


@pytest.mark.anyio
async def test_unknown_recipient_is_empty_not_an_error(any_mailbox: Mailbox) -> None:
    assert await any_mailbox.unread_count("") == 0
    assert await any_mailbox.list(None) == []
    assert await any_mailbox.mark_all_read("   ") == 0

    with pytest.raises(InvalidInputError):
        await any_mailbox.post("", NotificationKind.NOTICE, "t", "b")


@pytest.mark.anyio
async def test_recipients_are_isolated(any_mailbox: Mailbox) -> None:
    await any_mailbox.post("A", NotificationKind.NOTICE, "for A", "")

    assert [m.title for m in await any_mailbox.list("B")] == ["Welcome to the rental app"]


@pytest.mark.anyio
async def test_sql_mailbox_survives_new_instance(
    sessionmaker: async_sessionmaker[AsyncSession], clock
) -> None:
    first = SqlMailbox(sessionmaker, clock=clock)
    await first.post("R", NotificationKind.NOTICE, "kept", "")

    second = SqlMailbox(sessionmaker, clock=clock)

    assert [m.title for m in await second.list("R")] == [
        "kept",
        "Welcome to the rental app",
    ]


@pytest.mark.anyio
async def test_post_safely_swallows_and_logs_failures(
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.ERROR, logger="src.notifications.base"):
        delivered = await post_safely(
            BrokenMailbox(), "R", NotificationKind.NOTICE, "Ping", ""
        )

    assert delivered is False
    assert "Failed to deliver 'Ping'" in caplog.text


@pytest.mark.anyio
async def test_post_safely_skips_unknown_recipient() -> None:
    mailbox = InMemoryMailbox()

    assert await post_safely(mailbox, None, NotificationKind.NOTICE, "t", "") is False
    assert await post_safely(mailbox, "R", NotificationKind.NOTICE, "t", "") is True
