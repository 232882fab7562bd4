"""Модель отправки напоминания.

Запись создаётся для каждого напоминания, переданного в очередь доставки.
Она делает доставку идемпотентной: для пары (subscription_id, reminder_label)
одновременно существует не больше одной записи в статусе PENDING.

Жизненный цикл:
1. PENDING — поставлено в очередь, ждёт момента scheduled_at
2. SENT — уведомление отправлено
3. SUPERSEDED — заменено новым планом (продление, отмена, смена даты)
4. SKIPPED — при доставке подписка уже неактивна или в другой фазе
5. FAILED — исчерпаны попытки постановки в очередь или отправки
"""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from subtracker.db.models_base import Base
from subtracker.engine.planner import ReminderType


class DispatchStatus(StrEnum):
    """Статус отправки напоминания."""

    PENDING = "pending"
    SENT = "sent"
    SUPERSEDED = "superseded"
    SKIPPED = "skipped"
    FAILED = "failed"


class ReminderDispatch(Base):
    """Напоминание, переданное в очередь доставки.

    Attributes:
        id: ID записи.
        subscription_id: Подписка (FK → subscriptions.id).
        reminder_label: Метка напоминания ("2-day-pre-renewal").
        reminder_type: Тип (pre-renewal / grace-period).
        scheduled_at: Момент, не раньше которого доставлять (naive UTC).
        renewal_date: Дата продления, для которой построено напоминание.
            При доставке сверяется с текущей датой продления подписки.
        timezone: Часовой пояс подписки на момент планирования.
        recipient_email: Адрес получателя.
        recipient_name: Имя получателя.
        status: Статус отправки.
        attempts: Количество неудачных попыток (постановки или отправки).
        run_id: ID задачи во внешней очереди (local-..., ID сообщения QStash).
        last_error: Текст последней ошибки.
        sent_at: Когда уведомление отправлено.
        created_at: Время создания записи.
        updated_at: Время последнего изменения.

    Индексы:
        - уникальный частичный (subscription_id, reminder_label) WHERE PENDING
        - status + scheduled_at — выборка созревших напоминаний
    """

    __tablename__ = "reminder_dispatches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    subscription_id: Mapped[int] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    reminder_label: Mapped[str] = mapped_column(String(50), nullable=False)
    reminder_type: Mapped[ReminderType] = mapped_column(
        Enum(ReminderType, native_enum=False, length=20),
        nullable=False,
    )

    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    renewal_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)

    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Enum хранит имена членов (PENDING), это важно для частичного индекса ниже
    status: Mapped[DispatchStatus] = mapped_column(
        Enum(DispatchStatus, native_enum=False, length=20),
        default=DispatchStatus.PENDING,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)

    run_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        onupdate=func.now(),
        nullable=True,
    )

    __table_args__ = (
        Index(
            "uq_reminder_dispatches_pending_label",
            "subscription_id",
            "reminder_label",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
        Index("ix_reminder_dispatches_status_scheduled", "status", "scheduled_at"),
    )

    @property
    def is_pending(self) -> bool:
        """Ждёт ли напоминание доставки."""
        return self.status == DispatchStatus.PENDING

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<ReminderDispatch(id={self.id}, subscription_id={self.subscription_id}, "
            f"label={self.reminder_label}, status={self.status})>"
        )
