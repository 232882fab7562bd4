"""Тесты для SweepService — периодическая сверка подписок.

Тестируемая функциональность:
1. Истечение подписок после льготного периода (граница — истечение)
2. Автопродление в льготном периоде
3. Изоляция ошибок: сбой одной подписки не останавливает сверку
4. Повтор продления при конфликте и исчерпание попыток
5. Повторный запуск ничего не меняет
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.config.yaml_config import ReminderPolicyConfig
from subtracker.core.clock import FrozenClock
from subtracker.core.exceptions import PersistenceConflict
from subtracker.db.models.audit_entry import AuditAction
from subtracker.db.models.reminder_dispatch import DispatchStatus
from subtracker.db.models.subscription import Category, Currency, SubscriptionStatus
from subtracker.db.models.user import User
from subtracker.db.repositories.audit_repo import AuditRepository
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.engine.recurrence import Frequency
from subtracker.services.scheduling_service import SchedulingService, SubscriptionInput
from subtracker.services.sweep_service import SweepReport, SweepService


async def create(
    service: SchedulingService,
    owner_id: int,
    *,
    frequency: str = "monthly",
    auto_renew: bool = True,
    name: str = "Кинотеатр",
) -> int:
    result = await service.create_subscription(
        owner_id,
        SubscriptionInput(
            name=name,
            price=Decimal("9.99"),
            frequency=frequency,
            category="entertainment",
            autoRenew=auto_renew,
        ),
    )
    return result.subscription.id


async def get_status(db_session: AsyncSession, subscription_id: int) -> SubscriptionStatus:
    subscription = await SubscriptionRepository(db_session).get_by_id(subscription_id)
    assert subscription is not None
    return subscription.status


# ==============================================================================
# ИСТЕЧЕНИЕ
# ==============================================================================


async def test_grace_end_boundary_expires_instead_of_renewing(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: ровно в конце льготного периода подписка истекает, даже с автопродлением."""
    subscription_id = await create(scheduling_service, test_user.id)
    clock.set(datetime(2025, 6, 8, tzinfo=UTC))  # 1 июня + 7 дней

    report = await sweep_service.run()

    assert report.expired == 1
    assert report.renewed == 0
    assert report.failed == 0
    assert await get_status(db_session, subscription_id) == SubscriptionStatus.EXPIRED

    entries = await AuditRepository(db_session).list_for_subscription(
        subscription_id, action=AuditAction.EXPIRED
    )
    assert len(entries) == 1
    assert entries[0].details["gracePeriodDays"] == 7
    assert entries[0].details["renewalDate"] == "2025-06-01T00:00:00+00:00"


async def test_expired_subscription_reminders_superseded(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: при истечении ожидающие напоминания заменяются."""
    subscription_id = await create(scheduling_service, test_user.id, auto_renew=False)
    clock.set(datetime(2025, 6, 20, tzinfo=UTC))

    report = await sweep_service.run()

    assert report.expired == 1
    repo = ReminderDispatchRepository(db_session)
    assert await repo.list_pending_for_subscription(subscription_id) == []
    rows = await repo.list_for_subscription(subscription_id)
    assert {row.status for row in rows} == {DispatchStatus.SUPERSEDED}
    assert {row.last_error for row in rows} == {"expired"}


async def test_subscription_in_grace_without_auto_renew_is_untouched(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: без автопродления подписка в льготном периоде остаётся ACTIVE."""
    subscription_id = await create(scheduling_service, test_user.id, auto_renew=False)
    clock.set(datetime(2025, 6, 4, tzinfo=UTC))

    report = await sweep_service.run()

    assert report.to_dict() == {
        "expired": 0,
        "renewed": 0,
        "skipped": 0,
        "failed": 0,
        "errors": {},
    }
    assert await get_status(db_session, subscription_id) == SubscriptionStatus.ACTIVE


# ==============================================================================
# АВТОПРОДЛЕНИЕ
# ==============================================================================


async def test_auto_renew_in_grace_period(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: подписка с автопродлением в льготном периоде продлевается сверкой."""
    subscription_id = await create(scheduling_service, test_user.id)
    clock.set(datetime(2025, 6, 4, tzinfo=UTC))

    report = await sweep_service.run()

    assert report.renewed == 1
    assert report.expired == 0

    subscription = await SubscriptionRepository(db_session).get_by_id(subscription_id)
    assert subscription is not None
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.renewal_date == datetime(2025, 7, 1)

    entries = await AuditRepository(db_session).list_for_subscription(
        subscription_id, action=AuditAction.RENEWED
    )
    assert len(entries) == 1
    assert entries[0].details["trigger"] == "sweep"


async def test_overdue_rows_do_not_crowd_out_renewals(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    dispatcher,
    clock: FrozenClock,
    policy: ReminderPolicyConfig,
    test_user: User,
) -> None:
    """Тест: просроченные подписки не вытесняют из выборки подписки в льготе."""
    owner_id = test_user.id
    in_grace_id = await create(scheduling_service, owner_id)
    repo = SubscriptionRepository(db_session)
    for day in (1, 2):
        await repo.create(
            user_id=owner_id,
            name=f"Забытая {day}",
            price=Decimal("1.00"),
            currency=Currency.USD,
            frequency=Frequency.MONTHLY,
            category=Category.OTHER,
            payment_method=None,
            auto_renew=True,
            timezone="UTC",
            start_date=datetime(2025, 3, day, tzinfo=UTC),
            renewal_date=datetime(2025, 4, day, tzinfo=UTC),
        )
    await db_session.commit()
    clock.set(datetime(2025, 6, 3, tzinfo=UTC))
    sweep = SweepService(
        db_session,
        scheduling_service,
        dispatcher,
        clock=clock,
        policy=policy,
        batch_limit=1,
    )

    report = await sweep.run()

    # За проход истекает одна просроченная подписка, вторая остаётся ACTIVE
    assert report.expired == 1
    assert report.renewed == 1
    subscription = await repo.get_by_id(in_grace_id)
    assert subscription is not None
    assert subscription.renewal_date == datetime(2025, 7, 1)


async def test_yearly_subscription_renewed_after_a_year(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: годовая подписка с 1 января, через 366 дней — продление до 2027 года."""
    clock.set(datetime(2025, 1, 1, tzinfo=UTC))
    subscription_id = await create(scheduling_service, test_user.id, frequency="yearly")
    clock.advance(days=366)

    report = await sweep_service.run()

    assert report.renewed == 1
    subscription = await SubscriptionRepository(db_session).get_by_id(subscription_id)
    assert subscription is not None
    assert subscription.renewal_date == datetime(2027, 1, 1)

    repo = ReminderDispatchRepository(db_session)
    pending = await repo.list_pending_for_subscription(subscription_id)
    assert [row.scheduled_at for row in pending] == [
        datetime(2026, 12, 25),
        datetime(2026, 12, 27),
        datetime(2026, 12, 30),
        datetime(2026, 12, 31),
    ]
    rows = await repo.list_for_subscription(subscription_id)
    assert len(rows) == 8
    assert sum(row.status == DispatchStatus.SUPERSEDED for row in rows) == 4

    # Повторный запуск ничего не меняет
    second = await sweep_service.run()

    assert second == SweepReport()
    entries = await AuditRepository(db_session).list_for_subscription(
        subscription_id, action=AuditAction.RENEWED
    )
    assert len(entries) == 1


# ==============================================================================
# ОШИБКИ И КОНФЛИКТЫ
# ==============================================================================


async def test_failure_of_one_subscription_does_not_stop_sweep(
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: ошибка продления одной подписки — остальные обрабатываются."""
    owner_id = test_user.id
    broken_id = await create(scheduling_service, owner_id, name="Сломанная")
    healthy_id = await create(scheduling_service, owner_id, name="Рабочая")
    clock.set(datetime(2025, 6, 4, tzinfo=UTC))

    original = scheduling_service.renew_subscription

    async def renew(subscription_id: int, **kwargs: object):
        if subscription_id == broken_id:
            raise RuntimeError("database is locked")
        return await original(subscription_id, **kwargs)

    with patch.object(scheduling_service, "renew_subscription", side_effect=renew):
        report = await sweep_service.run()

    assert report.renewed == 1
    assert report.failed == 1
    assert report.errors == {broken_id: "database is locked"}
    assert healthy_id not in report.errors


async def test_conflict_is_retried(
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: PersistenceConflict — подписка перечитывается и продление повторяется."""
    subscription_id = await create(scheduling_service, test_user.id)
    clock.set(datetime(2025, 6, 4, tzinfo=UTC))
    conflict = PersistenceConflict(subscription_id, datetime(2025, 6, 1, tzinfo=UTC))

    with patch.object(
        scheduling_service, "renew_subscription", side_effect=[conflict, None]
    ) as mock_renew:
        report = await sweep_service.run()

    assert mock_renew.await_count == 2
    assert report.renewed == 1
    assert report.failed == 0


async def test_conflict_retry_budget_exhausted(
    scheduling_service: SchedulingService,
    sweep_service: SweepService,
    clock: FrozenClock,
    policy: ReminderPolicyConfig,
    test_user: User,
) -> None:
    """Тест: конфликт повторяется retry_budget раз — подписка считается неудачной."""
    subscription_id = await create(scheduling_service, test_user.id)
    clock.set(datetime(2025, 6, 4, tzinfo=UTC))
    conflict = PersistenceConflict(subscription_id, datetime(2025, 6, 1, tzinfo=UTC))

    with patch.object(
        scheduling_service, "renew_subscription", side_effect=conflict
    ) as mock_renew:
        report = await sweep_service.run()

    assert mock_renew.await_count == policy.retry_budget
    assert report.renewed == 0
    assert report.failed == 1
    assert subscription_id in report.errors
