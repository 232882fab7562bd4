"""Жизненный цикл подписки: создание, продление, отмена.

Единственная точка, которая пишет даты продления и запускает
постановку напоминаний. Вызывается из API (владелец) и из
периодической сверки (SweepService, owner_id=None).

Порядок операций при создании и продлении:
1. Проверки (периодичность, дата начала, владелец, статус) — до любых записей
2. Запись подписки + запись в журнале (created / renewed), commit
3. Фаза → план напоминаний → постановка в очередь
4. Запись remindersScheduled в журнале, commit

Очередь доставки не участвует в транзакции БД, поэтому напоминания
ставятся только после фиксации изменений подписки.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.config.constants import DEFAULT_TIMEZONE
from subtracker.config.yaml_config import ReminderPolicyConfig
from subtracker.core.clock import Clock, SystemClock
from subtracker.core.exceptions import (
    InvalidStartDateFormat,
    InvalidStatusTransition,
    NotAuthorized,
    StartDateInPast,
    SubscriptionNotFound,
)
from subtracker.db.models.audit_entry import AuditAction
from subtracker.db.models.subscription import (
    Category,
    Currency,
    PaymentMethod,
    Subscription,
    SubscriptionStatus,
)
from subtracker.db.models.user import User
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.db.repositories.user_repo import UserRepository
from subtracker.engine.phases import ReminderPhase, classify_phase
from subtracker.engine.planner import next_reminder, plan_reminders
from subtracker.engine.recurrence import next_renewal_date, parse_frequency
from subtracker.services.audit_service import AuditService
from subtracker.services.dispatch_service import (
    DispatchResult,
    Recipient,
    ReminderDispatcher,
)
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import (
    ensure_utc_aware,
    format_date,
    is_valid_timezone,
    local_day,
    local_midnight,
)

logger = get_logger(__name__)


class SubscriptionInput(BaseModel):
    """Данные новой подписки.

    Периодичность и дата начала проверяются сервисом
    (InvalidFrequency, InvalidStartDateFormat, StartDateInPast),
    остальные поля — здесь.
    """

    name: str = Field(min_length=2, max_length=100)
    price: Decimal = Field(ge=0)
    currency: Currency = Currency.USD
    frequency: str
    category: Category
    payment_method: PaymentMethod | None = Field(default=None, alias="paymentMethod")
    auto_renew: bool = Field(default=True, alias="autoRenew")
    timezone: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Проверить, что часовой пояс есть в базе IANA."""
        if v is not None and not is_valid_timezone(v):
            raise ValueError(f"Неизвестный часовой пояс: {v}")
        return v


@dataclass
class ScheduledSubscription:
    """Подписка после создания или продления.

    Attributes:
        subscription: Подписка.
        phase: Фаза на момент планирования.
        reminders: Результаты постановки напоминаний (по времени).
        next_reminder: Метка ближайшего напоминания.
        superseded: Сколько старых напоминаний заменено.
    """

    subscription: Subscription
    phase: ReminderPhase
    reminders: list[DispatchResult] = field(default_factory=list)
    next_reminder: str | None = None
    superseded: int = 0


@dataclass
class SubscriptionView:
    """Подписка для списка владельца (даты в часовом поясе подписки)."""

    subscription: Subscription
    start_date: str | None
    renewal_date: str | None
    next_reminder: str | None

    def to_dict(self) -> dict[str, Any]:
        sub = self.subscription
        return {
            "id": sub.id,
            "name": sub.name,
            "price": str(sub.price),
            "currency": sub.currency.value,
            "frequency": sub.frequency.value,
            "category": sub.category.value,
            "paymentMethod": sub.payment_method.value if sub.payment_method else None,
            "autoRenew": sub.auto_renew,
            "timezone": sub.timezone,
            "status": sub.status.value,
            "startDate": self.start_date,
            "renewalDate": self.renewal_date,
            "nextReminder": self.next_reminder,
        }


def parse_start_date(raw: str, timezone_name: str) -> date:
    """Разобрать дату начала: "YYYY-MM-DD" или ISO datetime.

    Datetime с часовым поясом переводится в часовой пояс подписки,
    без часового пояса — берётся его календарная дата.

    Raises:
        InvalidStartDateFormat: Строка не распознана.
    """
    value = raw.strip()
    if len(value) == 10:
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise InvalidStartDateFormat(raw) from e

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidStartDateFormat(raw) from e

    if parsed.tzinfo is None:
        return parsed.date()
    return local_day(parsed, timezone_name)


class SchedulingService:
    """Создание, продление и отмена подписок с планированием напоминаний.

    Attributes:
        _session: Асинхронная сессия SQLAlchemy.
        _dispatcher: Постановка напоминаний в очередь.
        _clock: Источник текущего времени.
        _policy: Политика напоминаний.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: ReminderDispatcher,
        *,
        clock: Clock | None = None,
        policy: ReminderPolicyConfig | None = None,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._policy = policy or ReminderPolicyConfig()
        self._subscription_repo = SubscriptionRepository(session)
        self._user_repo = UserRepository(session)
        self._reminder_repo = ReminderDispatchRepository(session)
        self._audit = AuditService(session, self._clock)

    # ==========================================================================
    # СОЗДАНИЕ
    # ==========================================================================

    async def create_subscription(
        self,
        owner_id: int,
        data: SubscriptionInput,
    ) -> ScheduledSubscription:
        """Создать подписку и запланировать напоминания.

        Args:
            owner_id: ID владельца.
            data: Данные подписки.

        Returns:
            Созданная подписка с планом напоминаний.

        Raises:
            NotAuthorized: Владелец не найден.
            InvalidFrequency: Неизвестная периодичность.
            InvalidStartDateFormat: Дата начала не распознана.
            StartDateInPast: Дата начала раньше сегодняшнего дня.
        """
        owner = await self._user_repo.get_by_id(owner_id)
        if owner is None:
            raise NotAuthorized(owner_id)

        frequency = parse_frequency(data.frequency)
        timezone_name = self._resolve_timezone(data.timezone, owner)

        now = self._clock.now()
        today = local_day(now, timezone_name)
        if data.start_date:
            start_day = parse_start_date(data.start_date, timezone_name)
            if start_day < today:
                raise StartDateInPast(start_day, today)
        else:
            start_day = today

        start_date = local_midnight(start_day, timezone_name)
        renewal_date = next_renewal_date(start_day, frequency, timezone_name)

        subscription = await self._subscription_repo.create(
            user_id=owner.id,
            name=data.name,
            price=data.price,
            currency=data.currency,
            frequency=frequency,
            category=data.category,
            payment_method=data.payment_method,
            auto_renew=data.auto_renew,
            timezone=timezone_name,
            start_date=start_date,
            renewal_date=renewal_date,
        )
        await self._audit.append(
            subscription.id,
            AuditAction.CREATED,
            {
                "name": subscription.name,
                "frequency": frequency.value,
                "timezone": timezone_name,
                "startDate": start_date.isoformat(),
                "renewalDate": renewal_date.isoformat(),
            },
        )
        await self._session.commit()

        return await self._schedule_reminders(subscription, owner)

    # ==========================================================================
    # ПРОДЛЕНИЕ
    # ==========================================================================

    async def renew_subscription(
        self,
        subscription_id: int,
        *,
        owner_id: int | None,
        auto_renew: bool | None = None,
        expected_renewal_date: datetime | None = None,
    ) -> ScheduledSubscription:
        """Продлить подписку на один период.

        Новая дата считается от текущей даты продления, а не от now:
        позднее продление не сокращает следующий период.

        Args:
            subscription_id: ID подписки.
            owner_id: ID владельца. None — системный вызов (сверка).
            auto_renew: Новое значение автопродления (опционально).
            expected_renewal_date: Дата продления, прочитанная вызывающим.
                По умолчанию — текущая дата загруженной подписки.

        Returns:
            Продлённая подписка с новым планом напоминаний.

        Raises:
            SubscriptionNotFound: Подписки нет.
            NotAuthorized: Вызывающий не владелец.
            InvalidStatusTransition: Подписка не в статусе ACTIVE.
            PersistenceConflict: Подписку уже изменил другой процесс.
        """
        subscription = await self._get_owned(subscription_id, owner_id)
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStatusTransition(subscription.id, subscription.status, "renew")

        previous = ensure_utc_aware(expected_renewal_date or subscription.renewal_date)
        new_renewal_date = next_renewal_date(
            previous, subscription.frequency, subscription.timezone
        )

        await self._subscription_repo.advance_renewal(
            subscription,
            expected_renewal_date=previous,
            new_renewal_date=new_renewal_date,
            auto_renew=auto_renew,
        )
        await self._audit.append(
            subscription.id,
            AuditAction.RENEWED,
            {
                "previousRenewalDate": previous.isoformat(),
                "renewalDate": new_renewal_date.isoformat(),
                "trigger": "sweep" if owner_id is None else "owner",
                "autoRenew": subscription.auto_renew,
            },
        )
        await self._session.commit()

        owner = await self._user_repo.get_by_id(subscription.user_id)
        return await self._schedule_reminders(subscription, owner)

    # ==========================================================================
    # ОТМЕНА И СПИСОК
    # ==========================================================================

    async def cancel_subscription(
        self,
        subscription_id: int,
        owner_id: int,
    ) -> Subscription:
        """Отменить подписку владельцем.

        Ожидающие напоминания заменяются. Если какое-то всё же будет
        доставлено, обработчик доставки увидит статус CANCELLED и пропустит его.

        Raises:
            SubscriptionNotFound: Подписки нет.
            NotAuthorized: Вызывающий не владелец.
            InvalidStatusTransition: Подписка уже не ACTIVE.
        """
        subscription = await self._get_owned(subscription_id, owner_id)
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStatusTransition(subscription.id, subscription.status, "cancel")

        await self._subscription_repo.set_status(subscription, SubscriptionStatus.CANCELLED)
        superseded = await self._dispatcher.supersede_pending(
            subscription.id, reason="cancelled"
        )
        await self._audit.append(
            subscription.id,
            AuditAction.CANCELLED,
            {"supersededReminders": superseded},
        )
        await self._session.commit()

        logger.info("Подписка %s отменена владельцем %s", subscription.id, owner_id)
        return subscription

    async def list_subscriptions(
        self,
        owner_id: int,
        viewer_id: int,
    ) -> list[SubscriptionView]:
        """Подписки владельца с датами в часовом поясе каждой подписки.

        Raises:
            NotAuthorized: Список запрашивает не владелец.
        """
        if owner_id != viewer_id:
            raise NotAuthorized(viewer_id)

        views = []
        for subscription in await self._subscription_repo.list_for_owner(owner_id):
            pending = await self._reminder_repo.list_pending_for_subscription(
                subscription.id
            )
            views.append(
                SubscriptionView(
                    subscription=subscription,
                    start_date=format_date(subscription.start_date, subscription.timezone),
                    renewal_date=format_date(
                        subscription.renewal_date, subscription.timezone
                    ),
                    next_reminder=pending[0].reminder_label if pending else None,
                )
            )
        return views

    # ==========================================================================
    # ВНУТРЕННИЕ МЕТОДЫ
    # ==========================================================================

    @staticmethod
    def _resolve_timezone(requested: str | None, owner: User) -> str:
        if requested:
            return requested
        if owner.timezone and is_valid_timezone(owner.timezone):
            return owner.timezone
        return DEFAULT_TIMEZONE

    async def _get_owned(
        self,
        subscription_id: int,
        owner_id: int | None,
    ) -> Subscription:
        subscription = await self._subscription_repo.get_by_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFound(subscription_id)
        if owner_id is not None and subscription.user_id != owner_id:
            raise NotAuthorized(owner_id, subscription_id)
        return subscription

    async def _schedule_reminders(
        self,
        subscription: Subscription,
        owner: User | None,
    ) -> ScheduledSubscription:
        """Построить план напоминаний и поставить его в очередь."""
        now = self._clock.now()
        phase = classify_phase(
            now,
            subscription.renewal_date,
            subscription.timezone,
            grace_period_days=self._policy.grace_period_days,
        )
        instructions = plan_reminders(
            subscription.id,
            phase,
            subscription.renewal_date,
            subscription.timezone,
            now,
            pre_renewal_offsets=self._policy.pre_renewal_offsets,
            grace_period_offsets=self._policy.grace_period_offsets,
        )

        superseded = await self._dispatcher.supersede_pending(
            subscription.id,
            keep_labels={instruction.reminder_label for instruction in instructions},
            reason="replanned",
        )

        results: list[DispatchResult] = []
        if owner is None:
            logger.warning(
                "Владелец подписки %s не найден — напоминания не поставлены",
                subscription.id,
            )
        else:
            recipient = Recipient(email=owner.email, name=owner.name)
            for instruction in instructions:
                results.append(
                    await self._dispatcher.dispatch(
                        instruction,
                        recipient,
                        renewal_date=subscription.renewal_date,
                        timezone_name=subscription.timezone,
                    )
                )

        upcoming = next_reminder(instructions)
        await self._audit.append(
            subscription.id,
            AuditAction.REMINDERS_SCHEDULED,
            {
                "phase": phase.value,
                "renewalDate": ensure_utc_aware(subscription.renewal_date).isoformat(),
                "reminders": [result.to_dict() for result in results],
                "supersededReminders": superseded,
                "nextReminder": upcoming,
            },
        )
        await self._session.commit()

        logger.info(
            "Подписка %s: фаза %s, напоминаний поставлено %s, ближайшее %s",
            subscription.id,
            phase,
            len(results),
            upcoming,
        )

        return ScheduledSubscription(
            subscription=subscription,
            phase=phase,
            reminders=results,
            next_reminder=upcoming,
            superseded=superseded,
        )
