"""Фаза подписки относительно даты продления.

    pre-renewal   now < renewal_date
    grace-period  renewal_date <= now < конец льготного периода
    expired       now >= конец льготного периода

Конец льготного периода — локальная полночь дня
renewal_date + grace_period_days в часовом поясе подписки.
"""

from datetime import datetime, timedelta
from enum import StrEnum

from subtracker.config.constants import GRACE_PERIOD_DAYS
from subtracker.utils.timezone import ensure_utc_aware, local_day, local_midnight


class ReminderPhase(StrEnum):
    """Фаза уведомлений подписки."""

    PRE_RENEWAL = "pre-renewal"
    GRACE_PERIOD = "grace-period"
    EXPIRED = "expired"


def grace_period_end(
    renewal_date: datetime,
    timezone_name: str,
    grace_period_days: int = GRACE_PERIOD_DAYS,
) -> datetime:
    """Момент окончания льготного периода (aware UTC)."""
    end_day = local_day(renewal_date, timezone_name) + timedelta(days=grace_period_days)
    return local_midnight(end_day, timezone_name)


def classify_phase(
    now: datetime,
    renewal_date: datetime,
    timezone_name: str,
    *,
    grace_period_days: int = GRACE_PERIOD_DAYS,
) -> ReminderPhase:
    """Определить фазу подписки в момент now.

    Args:
        now: Текущий момент.
        renewal_date: Дата продления (локальная полночь в UTC).
        timezone_name: Часовой пояс подписки.
        grace_period_days: Длительность льготного периода.

    Returns:
        Фаза подписки.
    """
    now = ensure_utc_aware(now)
    renewal_date = ensure_utc_aware(renewal_date)

    if now < renewal_date:
        return ReminderPhase.PRE_RENEWAL
    if now < grace_period_end(renewal_date, timezone_name, grace_period_days):
        return ReminderPhase.GRACE_PERIOD
    return ReminderPhase.EXPIRED
