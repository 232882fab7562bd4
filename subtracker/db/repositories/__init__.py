"""Репозитории для работы с данными.

Репозиторий инкапсулирует логику доступа к данным: сервисы вызывают
методы репозитория вместо прямых SQL-запросов. Репозитории не делают
commit — границы транзакции определяет сервис.
"""

from subtracker.db.repositories.audit_repo import AuditRepository
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.db.repositories.user_repo import UserRepository

__all__ = [
    "AuditRepository",
    "ReminderDispatchRepository",
    "SubscriptionRepository",
    "UserRepository",
]
