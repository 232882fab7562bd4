"""Базовый адаптер отправки уведомлений.

Транспорт (email, SMS) — внешний сервис. Сервис подписок формирует
текст напоминания и передаёт его адаптеру.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from subtracker.engine.planner import ReminderType


@dataclass(frozen=True)
class ReminderMessage:
    """Готовое к отправке напоминание.

    Attributes:
        subscription_id: ID подписки.
        reminder_label: Метка напоминания.
        reminder_type: Тип напоминания.
        recipient_email: Адрес получателя.
        recipient_name: Имя получателя.
        subject: Тема.
        body: Текст.
    """

    subscription_id: int
    reminder_label: str
    reminder_type: ReminderType
    recipient_email: str
    recipient_name: str
    subject: str
    body: str


def build_reminder_message(  # noqa: PLR0913
    *,
    subscription_id: int,
    subscription_name: str,
    renewal_day: str,
    reminder_label: str,
    reminder_type: ReminderType,
    recipient_email: str,
    recipient_name: str,
) -> ReminderMessage:
    """Сформировать текст напоминания для типа и метки."""
    if reminder_type is ReminderType.PRE_RENEWAL:
        subject = f"Напоминание: подписка скоро продлится ({reminder_label})"
        body = (
            f"{recipient_name}, подписка «{subscription_name}» продлится "
            f"{renewal_day}."
        )
    else:
        subject = (
            "Подписка в льготном периоде. Продлите её, чтобы продолжить "
            f"({reminder_label})"
        )
        body = (
            f"{recipient_name}, срок продления подписки «{subscription_name}» "
            f"прошёл {renewal_day}. Продлите её до окончания льготного периода."
        )

    return ReminderMessage(
        subscription_id=subscription_id,
        reminder_label=reminder_label,
        reminder_type=reminder_type,
        recipient_email=recipient_email,
        recipient_name=recipient_name,
        subject=subject,
        body=body,
    )


class BaseNotifier(ABC):
    """Абстрактный отправитель уведомлений."""

    @abstractmethod
    async def send(self, message: ReminderMessage) -> None:
        """Отправить напоминание.

        Raises:
            DeliveryFailed: Транспорт не принял сообщение.
        """
