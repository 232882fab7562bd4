"""Чистые календарные расчёты жизненного цикла подписки.

- recurrence.py — следующая дата продления по периодичности
- phases.py — фаза подписки относительно даты продления
- planner.py — набор напоминаний для фазы

Модули не обращаются к БД и не читают системное время:
текущий момент передаётся явно.
"""

from subtracker.engine.phases import ReminderPhase, classify_phase
from subtracker.engine.planner import (
    ReminderInstruction,
    ReminderType,
    next_reminder,
    plan_reminders,
)
from subtracker.engine.recurrence import (
    Frequency,
    add_calendar_units,
    next_renewal_date,
    parse_frequency,
)

__all__ = [
    "Frequency",
    "ReminderInstruction",
    "ReminderPhase",
    "ReminderType",
    "add_calendar_units",
    "classify_phase",
    "next_reminder",
    "next_renewal_date",
    "parse_frequency",
    "plan_reminders",
]
