"""Источник текущего времени.

Все компоненты получают время через Clock, а не через datetime.now().
Это делает расчёты детерминированными: в тестах используется FrozenClock,
который можно сдвигать вперёд.
"""

from datetime import UTC, datetime, timedelta
from typing import Protocol

from subtracker.utils.timezone import ensure_utc_aware


class Clock(Protocol):
    """Источник текущего момента времени (aware UTC)."""

    def now(self) -> datetime: ...


class SystemClock:
    """Системные часы."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Замороженные часы для тестов.

    Пример:
        clock = FrozenClock(datetime(2025, 1, 1, tzinfo=UTC))
        clock.advance(days=366)
    """

    def __init__(self, moment: datetime) -> None:
        self._moment = ensure_utc_aware(moment)

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        """Установить текущий момент."""
        self._moment = ensure_utc_aware(moment)

    def advance(self, **delta: float) -> datetime:
        """Сдвинуть часы вперёд (аргументы как у timedelta).

        Returns:
            Новый текущий момент.
        """
        self._moment = self._moment + timedelta(**delta)
        return self._moment
