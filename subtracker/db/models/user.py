"""Модель владельца подписок.

Пользователи создаются внешним сервисом идентификации.
Сервис подписок только читает их: адрес и имя получателя напоминаний,
часовой пояс по умолчанию для новых подписок.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing_extensions import override

from subtracker.config.constants import DEFAULT_TIMEZONE
from subtracker.db.models_base import Base

if TYPE_CHECKING:
    from subtracker.db.models.subscription import Subscription


class User(Base):
    """Владелец подписок.

    Attributes:
        id: Внутренний ID пользователя.
        email: Адрес для напоминаний (уникальный).
        name: Имя для обращения в напоминаниях.
        timezone: Часовой пояс IANA, по умолчанию UTC.
            Используется для новых подписок без явного часового пояса.
        created_at: Дата регистрации.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    timezone: Mapped[str] = mapped_column(
        String(64),
        default=DEFAULT_TIMEZONE,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="owner",
        lazy="raise",
    )

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return f"<User(id={self.id}, email={self.email}, timezone={self.timezone})>"
