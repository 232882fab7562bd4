"""Модели базы данных (таблицы).

Каждая модель — это класс Python, который соответствует таблице в БД.
Все модели наследуются от Base (из db.models_base).
"""

from subtracker.db.models.audit_entry import AuditAction, AuditEntry
from subtracker.db.models.reminder_dispatch import DispatchStatus, ReminderDispatch
from subtracker.db.models.subscription import (
    Category,
    Currency,
    PaymentMethod,
    Subscription,
    SubscriptionStatus,
)
from subtracker.db.models.user import User

__all__ = [
    "AuditAction",
    "AuditEntry",
    "Category",
    "Currency",
    "DispatchStatus",
    "PaymentMethod",
    "ReminderDispatch",
    "Subscription",
    "SubscriptionStatus",
    "User",
]
