"""Планирование напоминаний.

Для фазы pre-renewal напоминания приходятся на локальную полночь
за 7, 5, 2 и 1 день до даты продления, для grace-period — через
1, 3 и 5 дней после неё. Для expired напоминаний нет.

Уже наступившие моменты (не строго позже now) отбрасываются:
напоминания не отправляются с опозданием.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from subtracker.config.constants import GRACE_PERIOD_OFFSETS, PRE_RENEWAL_OFFSETS
from subtracker.engine.phases import ReminderPhase
from subtracker.utils.timezone import ensure_utc_aware, local_day, local_midnight


class ReminderType(StrEnum):
    """Тип напоминания."""

    PRE_RENEWAL = "pre-renewal"
    GRACE_PERIOD = "grace-period"


def reminder_label(offset_days: int, reminder_type: ReminderType) -> str:
    """Метка напоминания: "7-day-pre-renewal", "3-day-grace-period"."""
    return f"{offset_days}-day-{reminder_type.value}"


@dataclass(frozen=True)
class ReminderInstruction:
    """Запланированное напоминание.

    Attributes:
        subscription_id: ID подписки.
        reminder_label: Метка ("2-day-pre-renewal").
        scheduled_at: Момент отправки (aware UTC).
        reminder_type: Тип напоминания.
    """

    subscription_id: int
    reminder_label: str
    scheduled_at: datetime
    reminder_type: ReminderType

    def to_dict(self) -> dict[str, Any]:
        """Представление для журнала аудита и ответов API."""
        return {
            "label": self.reminder_label,
            "scheduledAt": self.scheduled_at.isoformat(),
            "type": self.reminder_type.value,
        }


def plan_reminders(
    subscription_id: int,
    phase: ReminderPhase,
    renewal_date: datetime,
    timezone_name: str,
    now: datetime,
    *,
    pre_renewal_offsets: Iterable[int] = PRE_RENEWAL_OFFSETS,
    grace_period_offsets: Iterable[int] = GRACE_PERIOD_OFFSETS,
) -> list[ReminderInstruction]:
    """Построить упорядоченный список будущих напоминаний.

    Args:
        subscription_id: ID подписки.
        phase: Текущая фаза подписки.
        renewal_date: Дата продления.
        timezone_name: Часовой пояс подписки.
        now: Текущий момент.
        pre_renewal_offsets: Дни до продления.
        grace_period_offsets: Дни после продления.

    Returns:
        Напоминания строго позже now, по возрастанию scheduled_at.
    """
    if phase is ReminderPhase.PRE_RENEWAL:
        reminder_type = ReminderType.PRE_RENEWAL
        direction = -1
        offsets = pre_renewal_offsets
    elif phase is ReminderPhase.GRACE_PERIOD:
        reminder_type = ReminderType.GRACE_PERIOD
        direction = 1
        offsets = grace_period_offsets
    else:
        return []

    now = ensure_utc_aware(now)
    renewal_day = local_day(renewal_date, timezone_name)

    instructions = []
    for offset in offsets:
        target_day = renewal_day + timedelta(days=direction * offset)
        scheduled_at = local_midnight(target_day, timezone_name)
        if scheduled_at <= now:
            continue
        instructions.append(
            ReminderInstruction(
                subscription_id=subscription_id,
                reminder_label=reminder_label(offset, reminder_type),
                scheduled_at=scheduled_at,
                reminder_type=reminder_type,
            )
        )

    instructions.sort(key=lambda instruction: instruction.scheduled_at)
    return instructions


def next_reminder(instructions: Sequence[ReminderInstruction]) -> str | None:
    """Метка ближайшего напоминания или None, если напоминаний нет."""
    if not instructions:
        return None
    return min(instructions, key=lambda instruction: instruction.scheduled_at).reminder_label
