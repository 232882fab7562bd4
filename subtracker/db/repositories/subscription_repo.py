"""Репозиторий для работы с подписками.

Основные операции:
- Создание подписки
- Поиск по ID и по владельцу
- Выборки для периодической сверки (истёкшие и продляемые)
- Условные обновления даты продления и статуса

Условные обновления — атомарный UPDATE с проверкой прочитанного
состояния в WHERE. Если другой процесс успел изменить подписку,
обновление не затрагивает ни одной строки.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.core.exceptions import PersistenceConflict
from subtracker.db.models.subscription import (
    Category,
    Currency,
    PaymentMethod,
    Subscription,
    SubscriptionStatus,
)
from subtracker.engine.recurrence import Frequency
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import to_naive_utc

logger = get_logger(__name__)


class SubscriptionRepository:
    """Репозиторий для работы с подписками.

    Используется SchedulingService и SweepService. Репозиторий не делает
    commit: границы транзакции определяет сервис.

    Attributes:
        session: Асинхронная сессия SQLAlchemy.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(  # noqa: PLR0913
        self,
        *,
        user_id: int,
        name: str,
        price: Decimal,
        currency: Currency,
        frequency: Frequency,
        category: Category,
        payment_method: PaymentMethod | None,
        auto_renew: bool,
        timezone: str,
        start_date: datetime,
        renewal_date: datetime,
    ) -> Subscription:
        """Создать подписку в статусе ACTIVE.

        Args:
            user_id: Владелец.
            name: Название.
            price: Цена.
            currency: Валюта.
            frequency: Периодичность.
            category: Категория.
            payment_method: Способ оплаты.
            auto_renew: Автопродление.
            timezone: Часовой пояс подписки.
            start_date: Дата начала (локальная полночь, любой UTC-datetime).
            renewal_date: Первая дата продления.

        Returns:
            Созданный объект Subscription.
        """
        subscription = Subscription(
            user_id=user_id,
            name=name,
            price=price,
            currency=currency,
            frequency=frequency,
            category=category,
            payment_method=payment_method,
            auto_renew=auto_renew,
            timezone=timezone,
            start_date=to_naive_utc(start_date),
            renewal_date=to_naive_utc(renewal_date),
            status=SubscriptionStatus.ACTIVE,
        )
        self._session.add(subscription)
        await self._session.flush()
        await self._session.refresh(subscription)

        logger.info(
            "Создана подписка: id=%s, user_id=%s, frequency=%s, renewal_date=%s",
            subscription.id,
            user_id,
            frequency,
            subscription.renewal_date,
        )

        return subscription

    async def get_by_id(self, subscription_id: int) -> Subscription | None:
        """Получить подписку по ID.

        Returns:
            Subscription или None если не найдена.
        """
        stmt = select(Subscription).where(Subscription.id == subscription_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_owner(self, user_id: int) -> list[Subscription]:
        """Все подписки владельца, ближайшие продления первыми."""
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.renewal_date.asc(), Subscription.id.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_expirable(
        self,
        cutoff: datetime,
        *,
        limit: int = 500,
    ) -> list[Subscription]:
        """Кандидаты на истечение: ACTIVE с renewal_date <= cutoff.

        Окончательное решение принимает classify_phase по часовому
        поясу каждой подписки, поэтому cutoff можно брать с запасом.

        Args:
            cutoff: Граница по дате продления.
            limit: Максимум записей за проход.
        """
        stmt = (
            select(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.renewal_date <= to_naive_utc(cutoff),
            )
            .order_by(Subscription.renewal_date.asc(), Subscription.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_auto_renewable(
        self,
        now: datetime,
        *,
        since: datetime | None = None,
        limit: int = 500,
    ) -> list[Subscription]:
        """Кандидаты на автопродление: ACTIVE, auto_renew, since < renewal_date <= now.

        Args:
            now: Текущий момент.
            since: Нижняя граница даты продления. Подписки, чей льготный
                период давно закончился, не занимают место в выборке.
            limit: Максимум записей за проход.
        """
        conditions = [
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.auto_renew.is_(True),
            Subscription.renewal_date <= to_naive_utc(now),
        ]
        if since is not None:
            conditions.append(Subscription.renewal_date > to_naive_utc(since))

        stmt = (
            select(Subscription)
            .where(*conditions)
            .order_by(Subscription.renewal_date.asc(), Subscription.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def advance_renewal(
        self,
        subscription: Subscription,
        *,
        expected_renewal_date: datetime,
        new_renewal_date: datetime,
        auto_renew: bool | None = None,
    ) -> Subscription:
        """Сдвинуть дату продления, если подписка не изменилась с момента чтения.

        Атомарный UPDATE: WHERE id=? AND status=ACTIVE AND renewal_date=expected.
        Из двух конкурирующих продлений одного периода успешно только одно.

        Args:
            subscription: Подписка.
            expected_renewal_date: Прочитанная дата продления.
            new_renewal_date: Новая дата продления.
            auto_renew: Новое значение флага автопродления (опционально).

        Returns:
            Обновлённая подписка.

        Raises:
            PersistenceConflict: Подписка изменена другим процессом.
        """
        values: dict[str, object] = {
            "renewal_date": to_naive_utc(new_renewal_date),
            "status": SubscriptionStatus.ACTIVE,
        }
        if auto_renew is not None:
            values["auto_renew"] = auto_renew

        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription.id,
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.renewal_date == to_naive_utc(expected_renewal_date),
            )
            .values(**values)
            .returning(Subscription.id)
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is None:
            raise PersistenceConflict(subscription.id, expected_renewal_date)

        await self._session.refresh(subscription)

        logger.info(
            "Дата продления сдвинута: id=%s, %s -> %s",
            subscription.id,
            to_naive_utc(expected_renewal_date),
            subscription.renewal_date,
        )

        return subscription

    async def expire_if_unchanged(
        self,
        subscription: Subscription,
        *,
        expected_renewal_date: datetime,
    ) -> bool:
        """Перевести подписку в EXPIRED, если она не изменилась с момента чтения.

        Returns:
            True если статус изменён, False если подписку уже изменили.
        """
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription.id,
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.renewal_date == to_naive_utc(expected_renewal_date),
            )
            .values(status=SubscriptionStatus.EXPIRED)
            .returning(Subscription.id)
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is None:
            return False

        await self._session.refresh(subscription)
        logger.info("Подписка истекла: id=%s", subscription.id)
        return True

    async def set_status(
        self,
        subscription: Subscription,
        status: SubscriptionStatus,
    ) -> Subscription:
        """Обновить статус подписки.

        Returns:
            Обновлённый объект Subscription.
        """
        subscription.status = status
        await self._session.flush()
        await self._session.refresh(subscription)

        logger.info("Обновлён статус подписки: id=%s, status=%s", subscription.id, status)

        return subscription
