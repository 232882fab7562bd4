"""Тесты для utils.timezone и форматирования логов."""

import logging
from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from subtracker.utils.logging import ColoredFormatter
from subtracker.utils.timezone import (
    ensure_utc_aware,
    format_date,
    format_datetime,
    is_valid_timezone,
    local_day,
    local_midnight,
    to_naive_utc,
)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("UTC", True),
        ("Europe/Moscow", True),
        ("America/New_York", True),
        ("Mars/Olympus", False),
        ("", False),
        ("../etc/passwd", False),
    ],
)
def test_is_valid_timezone(name: str, expected: bool) -> None:
    """Тест: проверка имени часового пояса по базе IANA."""
    assert is_valid_timezone(name) is expected


def test_ensure_utc_aware_and_back() -> None:
    """Тест: naive считается UTC, aware переводится в UTC."""
    naive = datetime(2025, 1, 1, 12, 0)
    moscow = datetime(2025, 1, 1, 15, 0, tzinfo=timezone(timedelta(hours=3)))

    assert ensure_utc_aware(naive) == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
    assert ensure_utc_aware(moscow).tzinfo is UTC
    assert to_naive_utc(moscow) == naive


def test_local_day_and_midnight() -> None:
    """Тест: календарный день и полночь в часовом поясе."""
    moment = datetime(2025, 3, 31, 22, 30, tzinfo=UTC)

    assert local_day(moment, "UTC") == date(2025, 3, 31)
    assert local_day(moment, "Europe/Moscow") == date(2025, 4, 1)
    assert local_midnight(date(2025, 4, 1), "Europe/Moscow") == datetime(
        2025, 3, 31, 21, 0, tzinfo=UTC
    )


def test_format_helpers() -> None:
    """Тест: форматирование в часовом поясе, None обрабатывается."""
    moment = datetime(2025, 5, 31, 21, 0)

    assert format_date(moment, "Europe/Moscow") == "2025-06-01"
    assert format_date(None, "UTC") is None
    assert format_datetime(moment, "UTC") == "31.05.2025 21:00"
    assert format_datetime(None, "UTC") == "-"


def test_colored_formatter_strips_package_prefix() -> None:
    """Тест: префикс пакета убирается из имени, исходная запись не меняется."""
    formatter = ColoredFormatter("%(name)s | %(levelname)s | %(message)s", use_colors=False)
    record = logging.LogRecord(
        "subtracker.services.sweep_service", logging.INFO, __file__, 1, "Сверка", None, None
    )

    assert formatter.format(record) == "services.sweep_service | INFO | Сверка"
    assert record.name == "subtracker.services.sweep_service"
