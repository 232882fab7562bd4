"""Репозиторий для работы с отправками напоминаний.

Основные операции:
- Поиск ожидающей отправки по (subscription_id, reminder_label)
- Создание записи перед постановкой в очередь
- Переходы статусов: SENT, SUPERSEDED, SKIPPED, FAILED
- Выборка созревших напоминаний для локальной очереди
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.db.models.reminder_dispatch import DispatchStatus, ReminderDispatch
from subtracker.engine.planner import ReminderType
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import to_naive_utc

logger = get_logger(__name__)


class ReminderDispatchRepository:
    """Репозиторий для работы с таблицей reminder_dispatches.

    Attributes:
        session: Асинхронная сессия SQLAlchemy.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, dispatch_id: int) -> ReminderDispatch | None:
        """Получить запись по ID."""
        return await self._session.get(ReminderDispatch, dispatch_id)

    async def get_pending(
        self,
        subscription_id: int,
        reminder_label: str,
    ) -> ReminderDispatch | None:
        """Найти ожидающую отправку для пары (подписка, метка)."""
        stmt = select(ReminderDispatch).where(
            ReminderDispatch.subscription_id == subscription_id,
            ReminderDispatch.reminder_label == reminder_label,
            ReminderDispatch.status == DispatchStatus.PENDING,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_pending_for_subscription(
        self,
        subscription_id: int,
    ) -> list[ReminderDispatch]:
        """Все ожидающие отправки подписки, ближайшие первыми."""
        stmt = (
            select(ReminderDispatch)
            .where(
                ReminderDispatch.subscription_id == subscription_id,
                ReminderDispatch.status == DispatchStatus.PENDING,
            )
            .order_by(ReminderDispatch.scheduled_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_subscription(
        self,
        subscription_id: int,
    ) -> list[ReminderDispatch]:
        """Все записи подписки в порядке создания."""
        stmt = (
            select(ReminderDispatch)
            .where(ReminderDispatch.subscription_id == subscription_id)
            .order_by(ReminderDispatch.id.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_due(
        self,
        now: datetime,
        *,
        limit: int = 100,
    ) -> list[ReminderDispatch]:
        """Созревшие ожидающие отправки (scheduled_at <= now)."""
        stmt = (
            select(ReminderDispatch)
            .where(
                ReminderDispatch.status == DispatchStatus.PENDING,
                ReminderDispatch.scheduled_at <= to_naive_utc(now),
            )
            .order_by(ReminderDispatch.scheduled_at.asc(), ReminderDispatch.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(  # noqa: PLR0913
        self,
        *,
        subscription_id: int,
        reminder_label: str,
        reminder_type: ReminderType,
        scheduled_at: datetime,
        renewal_date: datetime,
        timezone: str,
        recipient_email: str,
        recipient_name: str,
    ) -> ReminderDispatch:
        """Создать запись в статусе PENDING.

        Returns:
            Созданная запись.
        """
        dispatch = ReminderDispatch(
            subscription_id=subscription_id,
            reminder_label=reminder_label,
            reminder_type=reminder_type,
            scheduled_at=to_naive_utc(scheduled_at),
            renewal_date=to_naive_utc(renewal_date),
            timezone=timezone,
            recipient_email=recipient_email,
            recipient_name=recipient_name,
            status=DispatchStatus.PENDING,
        )
        self._session.add(dispatch)
        await self._session.flush()
        await self._session.refresh(dispatch)
        return dispatch

    async def set_run_id(self, dispatch: ReminderDispatch, run_id: str) -> None:
        """Сохранить ID задачи во внешней очереди."""
        dispatch.run_id = run_id
        await self._session.flush()

    async def record_failure(
        self,
        dispatch: ReminderDispatch,
        error: str,
        *,
        exhausted: bool,
    ) -> ReminderDispatch:
        """Записать неудачную попытку.

        Args:
            dispatch: Запись.
            error: Текст ошибки.
            exhausted: Попытки исчерпаны — перевести в FAILED.
        """
        dispatch.attempts += 1
        dispatch.last_error = error
        if exhausted:
            dispatch.status = DispatchStatus.FAILED
        await self._session.flush()

        logger.warning(
            "Ошибка отправки напоминания: id=%s, label=%s, attempts=%s, failed=%s",
            dispatch.id,
            dispatch.reminder_label,
            dispatch.attempts,
            exhausted,
        )
        return dispatch

    async def mark(
        self,
        dispatch: ReminderDispatch,
        status: DispatchStatus,
        *,
        sent_at: datetime | None = None,
        reason: str | None = None,
    ) -> ReminderDispatch:
        """Перевести запись в конечный статус.

        Args:
            dispatch: Запись.
            status: Новый статус (SENT, SUPERSEDED, SKIPPED, FAILED).
            sent_at: Момент отправки (для SENT).
            reason: Причина (для SUPERSEDED/SKIPPED/FAILED).
        """
        dispatch.status = status
        if sent_at is not None:
            dispatch.sent_at = to_naive_utc(sent_at)
        if reason is not None:
            dispatch.last_error = reason
        await self._session.flush()

        logger.debug(
            "Напоминание id=%s (%s) -> %s",
            dispatch.id,
            dispatch.reminder_label,
            status,
        )
        return dispatch
