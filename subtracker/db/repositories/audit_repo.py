"""Репозиторий журнала аудита подписок.

Журнал только дополняется: методов изменения и удаления нет.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.db.models.audit_entry import AuditAction, AuditEntry
from subtracker.utils.timezone import to_naive_utc


class AuditRepository:
    """Репозиторий для таблицы subscription_history."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        subscription_id: int,
        action: AuditAction,
        details: dict[str, Any],
        created_at: datetime,
    ) -> AuditEntry:
        """Добавить запись в журнал.

        Returns:
            Созданная запись.
        """
        entry = AuditEntry(
            subscription_id=subscription_id,
            action=action,
            details=details,
            created_at=to_naive_utc(created_at),
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_subscription(
        self,
        subscription_id: int,
        *,
        action: AuditAction | None = None,
    ) -> list[AuditEntry]:
        """Записи подписки в порядке добавления.

        Args:
            subscription_id: ID подписки.
            action: Только записи с этим действием (опционально).
        """
        stmt = select(AuditEntry).where(AuditEntry.subscription_id == subscription_id)
        if action is not None:
            stmt = stmt.where(AuditEntry.action == action)
        stmt = stmt.order_by(AuditEntry.id.asc())

        result = await self._session.execute(stmt)
        return list(result.scalars().all())
