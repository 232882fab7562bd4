"""Модель подписки.

Хранит регулярные подписки пользователей (стриминг, новости, софт)
и даты их продления.

Жизненный цикл подписки:
1. ACTIVE — действует; продление сдвигает renewal_date вперёд на период
2. CANCELLED — отменена владельцем
3. EXPIRED — не продлена до конца льготного периода

Разрешены только переходы из ACTIVE. Подписки физически не удаляются.
"""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing_extensions import override

from subtracker.config.constants import DEFAULT_TIMEZONE
from subtracker.db.models_base import Base
from subtracker.engine.recurrence import Frequency

if TYPE_CHECKING:
    from subtracker.db.models.user import User


class SubscriptionStatus(StrEnum):
    """Статус подписки.

    Значения:
        ACTIVE: Подписка действует.
        CANCELLED: Отменена владельцем. Напоминания больше не отправляются.
        EXPIRED: Льготный период закончился без продления.
    """

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Currency(StrEnum):
    """Валюта цены подписки."""

    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class Category(StrEnum):
    """Категория подписки."""

    SPORTS = "sports"
    NEWS = "news"
    ENTERTAINMENT = "entertainment"
    LIFESTYLE = "lifestyle"
    TECHNOLOGY = "technology"
    FINANCE = "finance"
    POLITICS = "politics"
    OTHER = "other"


class PaymentMethod(StrEnum):
    """Способ оплаты."""

    CREDIT_CARD = "Credit Card"
    PAYPAL = "PayPal"
    BANK_TRANSFER = "Bank Transfer"
    OTHER = "Other"


class Subscription(Base):
    """Регулярная подписка пользователя.

    Даты хранятся как naive UTC. start_date и renewal_date — всегда
    локальная полночь в часовом поясе подписки.

    Attributes:
        id: ID подписки.
        user_id: Владелец (FK → users.id).
        name: Название (2-100 символов).
        price: Цена (не отрицательная).
        currency: Валюта.
        frequency: Периодичность продления.
        category: Категория.
        payment_method: Способ оплаты (опционально).
        auto_renew: Продлевать ли автоматически при сверке.
        timezone: Часовой пояс подписки (IANA).
        start_date: Дата начала. Не меняется после создания.
        renewal_date: Дата следующего продления. Меняет только SchedulingService.
        status: Текущий статус.
        created_at: Время создания записи.
        updated_at: Время последнего изменения.

    Индексы:
        - status + renewal_date — для сверки (истёкшие и продляемые)
        - user_id — список подписок владельца
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[Currency] = mapped_column(
        Enum(Currency, native_enum=False, length=10),
        default=Currency.USD,
        nullable=False,
    )
    frequency: Mapped[Frequency] = mapped_column(
        Enum(Frequency, native_enum=False, length=20),
        nullable=False,
    )
    category: Mapped[Category] = mapped_column(
        Enum(Category, native_enum=False, length=30),
        nullable=False,
    )
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        Enum(PaymentMethod, native_enum=False, length=30),
        nullable=True,
    )

    auto_renew: Mapped[bool] = mapped_column(default=True, nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64),
        default=DEFAULT_TIMEZONE,
        nullable=False,
    )

    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    renewal_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, native_enum=False, length=20),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )

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

    owner: Mapped["User"] = relationship(
        back_populates="subscriptions",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_subscriptions_status_renewal_date", "status", "renewal_date"),
    )

    @property
    def is_active(self) -> bool:
        """Действует ли подписка."""
        return self.status == SubscriptionStatus.ACTIVE

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"name={self.name}, status={self.status}, "
            f"renewal_date={self.renewal_date})>"
        )
