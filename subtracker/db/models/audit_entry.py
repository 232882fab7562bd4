"""Модель журнала аудита подписок.

Журнал только дополняется: записи не изменяются и не удаляются.
Каждый переход статуса и каждое решение планировщика оставляют запись.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from subtracker.db.models_base import Base


class AuditAction(StrEnum):
    """Тип записи в журнале аудита."""

    CREATED = "created"
    RENEWED = "renewed"
    REMINDERS_SCHEDULED = "remindersScheduled"
    REMINDER_SENT = "reminderSent"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AuditEntry(Base):
    """Запись журнала аудита.

    Attributes:
        id: ID записи.
        subscription_id: Подписка (FK → subscriptions.id).
        action: Действие.
        details: Структурированные подробности (JSON).
        created_at: Момент записи (naive UTC, по часам сервиса).
    """

    __tablename__ = "subscription_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    subscription_id: Mapped[int] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    )

    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False, length=30),
        nullable=False,
    )

    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_subscription_history_subscription", "subscription_id", "created_at"),
    )

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<AuditEntry(id={self.id}, subscription_id={self.subscription_id}, "
            f"action={self.action})>"
        )
