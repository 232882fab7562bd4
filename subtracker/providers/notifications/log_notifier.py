"""Отправитель уведомлений в лог.

Используется по умолчанию, пока не подключён настоящий транспорт:
каждое напоминание пишется в лог с уровнем INFO.
"""

from typing_extensions import override

from subtracker.providers.notifications.base import BaseNotifier, ReminderMessage
from subtracker.utils.logging import get_logger

logger = get_logger(__name__)


class LogNotifier(BaseNotifier):
    """Пишет напоминания в лог вместо отправки."""

    @override
    async def send(self, message: ReminderMessage) -> None:
        logger.info(
            "Напоминание для %s <%s> (подписка %s): %s",
            message.recipient_name,
            message.recipient_email,
            message.subscription_id,
            message.subject,
        )
