"""Журнал аудита подписок.

Каждый переход статуса (создание, продление, истечение, отмена) и каждое
решение планировщика (какие напоминания поставлены, какое отправлено)
записываются в журнал. Записи только добавляются.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.core.clock import Clock, SystemClock
from subtracker.db.models.audit_entry import AuditAction, AuditEntry
from subtracker.db.repositories.audit_repo import AuditRepository
from subtracker.utils.logging import get_logger

logger = get_logger(__name__)


class AuditService:
    """Запись в журнал аудита.

    Сервис не делает commit: запись попадает в ту же транзакцию,
    что и изменение подписки.
    """

    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self._repo = AuditRepository(session)
        self._clock = clock or SystemClock()

    async def append(
        self,
        subscription_id: int,
        action: AuditAction,
        details: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Добавить запись в журнал.

        Args:
            subscription_id: ID подписки.
            action: Действие.
            details: Подробности (JSON-совместимые).

        Returns:
            Созданная запись.
        """
        entry = await self._repo.add(
            subscription_id=subscription_id,
            action=action,
            details=details or {},
            created_at=self._clock.now(),
        )
        logger.debug("Аудит: подписка %s, %s", subscription_id, action)
        return entry

    async def history(
        self,
        subscription_id: int,
        action: AuditAction | None = None,
    ) -> list[AuditEntry]:
        """Записи журнала подписки в порядке добавления."""
        return await self._repo.list_for_subscription(subscription_id, action=action)
