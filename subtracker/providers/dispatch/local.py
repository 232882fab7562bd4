"""Локальная очередь доставки.

Очередью служит сама таблица reminder_dispatches: запись в статусе
PENDING и есть задача. Планировщик периодически выбирает созревшие
записи (scheduled_at <= now) и передаёт их обработчику доставки
(задача deliver_due_reminders в scheduler/tasks.py).

Внешние сервисы не нужны, поэтому это вариант по умолчанию.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from typing_extensions import override

from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.utils.logging import get_logger

logger = get_logger(__name__)


class LocalJobQueue(BaseDispatchBoundary):
    """Очередь на основе таблицы reminder_dispatches."""

    NAME = "local"

    @property
    @override
    def name(self) -> str:
        return self.NAME

    @override
    async def schedule(
        self,
        payload: dict[str, Any],
        not_before: datetime,
        retries: int,
    ) -> str:
        """Выдать ID задачи. Саму задачу хранит запись reminder_dispatches."""
        run_id = f"local-{uuid4().hex}"
        logger.debug(
            "Локальная задача %s: %s для подписки %s не раньше %s",
            run_id,
            payload.get("reminderLabel"),
            payload.get("subscriptionId"),
            not_before.isoformat(),
        )
        return run_id

    @override
    async def cancel(self, run_id: str) -> bool:
        """Отмена не требует действий: запись уже не в статусе PENDING."""
        return True
