"""Базовый класс для всех моделей SQLAlchemy.

Этот модуль содержит только декларативную базу без побочных эффектов.
Используется для изоляции тестов от загрузки настроек при импорте моделей.

Пример использования в моделях:
    from subtracker.db.models_base import Base

    class Subscription(Base):
        __tablename__ = "subscriptions"
        ...
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Базовый класс для всех моделей.

    Все модели (User, Subscription, ReminderDispatch, AuditEntry)
    наследуются от Base, чтобы SQLAlchemy создавала таблицы
    и отслеживала связи между ними.
    """
