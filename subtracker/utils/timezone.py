"""Утилиты для работы с часовыми поясами.

Как это работает:
1. Время в базе данных хранится в UTC (naive datetime, без tzinfo)
2. Календарные расчёты (дни, месяцы) выполняются в часовом поясе подписки
3. Граница дня — всегда локальная полночь, переведённая в UTC

Все функции чистые: часовой пояс передаётся явно по имени,
глобальное состояние не меняется.
"""

from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

__all__ = [
    "ZoneInfoNotFoundError",
    "ensure_utc_aware",
    "format_date",
    "format_datetime",
    "get_timezone",
    "is_valid_timezone",
    "local_day",
    "local_midnight",
    "to_naive_utc",
    "to_timezone",
]


def get_timezone(timezone_name: str) -> ZoneInfo:
    """Получить объект часового пояса по имени.

    Args:
        timezone_name: Название часового пояса из базы IANA.
            Примеры: "Europe/Moscow", "UTC", "America/New_York".

    Returns:
        Объект ZoneInfo для указанного часового пояса.

    Raises:
        ZoneInfoNotFoundError: Если указанный часовой пояс не найден.
    """
    return ZoneInfo(timezone_name)


def is_valid_timezone(timezone_name: str) -> bool:
    """Проверить, что имя часового пояса есть в базе IANA."""
    try:
        get_timezone(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def ensure_utc_aware(dt: datetime) -> datetime:
    """Гарантировать, что datetime является timezone-aware в UTC.

    SQLite и PostgreSQL (без timezone) возвращают naive datetime,
    но логически они хранят UTC. Эта функция делает это явным.

    Args:
        dt: Время для нормализации.

    Returns:
        Время с timezone=UTC.

    Example:
        >>> naive_dt = datetime(2024, 1, 1, 12, 0, 0)  # Из БД
        >>> ensure_utc_aware(naive_dt).tzinfo
        datetime.timezone.utc
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Привести время к naive UTC для записи в БД."""
    return ensure_utc_aware(dt).replace(tzinfo=None)


def to_timezone(dt: datetime, timezone_name: str) -> datetime:
    """Конвертировать время в указанный часовой пояс.

    Naive datetime считается UTC.

    Args:
        dt: Время для конвертации.
        timezone_name: Название целевого часового пояса.

    Returns:
        Время в указанном часовом поясе.
    """
    return ensure_utc_aware(dt).astimezone(get_timezone(timezone_name))


def local_day(dt: datetime, timezone_name: str) -> date:
    """Календарный день момента времени в указанном часовом поясе."""
    return to_timezone(dt, timezone_name).date()


def local_midnight(day: date, timezone_name: str) -> datetime:
    """Начало календарного дня в часовом поясе, как aware UTC.

    Args:
        day: Календарный день.
        timezone_name: Часовой пояс, в котором берётся полночь.

    Returns:
        Момент локальной полуночи в UTC.
    """
    tz = get_timezone(timezone_name)
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)


def format_datetime(
    dt: datetime | None,
    timezone_name: str,
    fmt: str = "%d.%m.%Y %H:%M",
) -> str:
    """Отформатировать время в указанном часовом поясе.

    Args:
        dt: Время для форматирования. Если None — возвращает "-".
        timezone_name: Название часового пояса для отображения.
        fmt: Формат вывода (по умолчанию: "ДД.ММ.ГГГГ ЧЧ:ММ").

    Returns:
        Отформатированная строка с временем или "-" если dt is None.
    """
    if dt is None:
        return "-"

    return to_timezone(dt, timezone_name).strftime(fmt)


def format_date(dt: datetime | None, timezone_name: str) -> str | None:
    """Отформатировать дату как YYYY-MM-DD в указанном часовом поясе.

    Returns:
        Строка даты или None, если dt is None.
    """
    if dt is None:
        return None
    return format_datetime(dt, timezone_name, "%Y-%m-%d")
