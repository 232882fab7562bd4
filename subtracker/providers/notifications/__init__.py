"""Отправка уведомлений владельцам подписок."""

from subtracker.providers.notifications.base import (
    BaseNotifier,
    ReminderMessage,
    build_reminder_message,
)
from subtracker.providers.notifications.log_notifier import LogNotifier

__all__ = [
    "BaseNotifier",
    "LogNotifier",
    "ReminderMessage",
    "build_reminder_message",
]
