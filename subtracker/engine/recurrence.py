"""Расчёт следующей даты продления.

Дата продления считается прибавлением календарной единицы
(день, неделя, месяц, год) к локальному дню в часовом поясе подписки,
а не прибавлением фиксированной длительности. Результат — локальная
полночь, переведённая в UTC.

Прибавление месяца/года к концу месяца прижимается к последнему дню
целевого месяца:
    31.01.2024 + 1 месяц = 29.02.2024
    29.02.2024 + 1 год  = 28.02.2025
"""

from datetime import date, datetime, timedelta
from enum import StrEnum

from dateutil.relativedelta import relativedelta

from subtracker.core.exceptions import InvalidFrequency
from subtracker.utils.timezone import local_day, local_midnight


class Frequency(StrEnum):
    """Периодичность оплаты подписки."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def parse_frequency(value: object) -> Frequency:
    """Привести значение к Frequency.

    Args:
        value: Строка ("monthly") или Frequency.

    Returns:
        Значение Frequency.

    Raises:
        InvalidFrequency: Значение не входит в daily/weekly/monthly/yearly.
    """
    if isinstance(value, Frequency):
        return value
    if isinstance(value, str):
        try:
            return Frequency(value.strip().lower())
        except ValueError:
            pass
    raise InvalidFrequency(value)


def add_calendar_units(day: date, frequency: Frequency | str, count: int = 1) -> date:
    """Прибавить count календарных единиц к дню.

    Args:
        day: Исходный календарный день.
        frequency: Периодичность (единица прибавления).
        count: Количество единиц (может быть отрицательным).

    Returns:
        Новый календарный день (с прижатием к концу месяца).

    Raises:
        InvalidFrequency: Неизвестная периодичность.
    """
    unit = parse_frequency(frequency)

    if unit is Frequency.DAILY:
        return day + timedelta(days=count)
    if unit is Frequency.WEEKLY:
        return day + timedelta(weeks=count)
    if unit is Frequency.MONTHLY:
        return day + relativedelta(months=count)
    return day + relativedelta(years=count)


def next_renewal_date(
    anchor: datetime | date,
    frequency: Frequency | str,
    timezone_name: str,
    *,
    periods: int = 1,
) -> datetime:
    """Вычислить дату продления через periods единиц от anchor.

    Args:
        anchor: Опорный момент (aware/naive UTC) или календарный день
            в часовом поясе подписки.
        frequency: Периодичность подписки.
        timezone_name: Часовой пояс подписки (IANA).
        periods: Сколько единиц прибавить от одного и того же опорного дня.

    Returns:
        Локальная полночь нового дня как aware UTC.

    Raises:
        InvalidFrequency: Неизвестная периодичность.
        ValueError: periods меньше 1.
    """
    unit = parse_frequency(frequency)
    if periods < 1:
        raise ValueError(f"periods должен быть >= 1, получено {periods}")

    # datetime: подкласс date, поэтому проверяем его первым
    if isinstance(anchor, datetime):
        anchor_day = local_day(anchor, timezone_name)
    else:
        anchor_day = anchor

    return local_midnight(add_calendar_units(anchor_day, unit, periods), timezone_name)
