"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from src.config import Settings


def test_backends_are_normalised(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_LOCK_BACKEND", " Memory ")
    monkeypatch.setenv("MAILBOX_BACKEND", "SQL")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.row_lock_backend == "memory"
    assert settings.mailbox_backend == "sql"
    assert settings.log_level == "DEBUG"


def test_unknown_backend_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAILBOX_BACKEND", "kafka")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_business_timezone_must_exist(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUSINESS_TIMEZONE", "Mars/Olympus")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_page_default_cannot_exceed_max(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LISTING_PAGE_DEFAULT_LIMIT", "50")
    monkeypatch.setenv("LISTING_PAGE_MAX_LIMIT", "10")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_tz_property() -> None:
    settings = Settings(_env_file=None, business_timezone="Europe/Berlin")

    assert settings.tz.key == "Europe/Berlin"
