"""Тесты для SchedulingService — создание, продление, отмена, список.

Модуль тестирует:
- create_subscription() — даты, часовой пояс, напоминания, журнал, ошибки ввода
- renew_subscription() — продление от даты продления, конкурирующие продления
- cancel_subscription() — замена напоминаний, переходы статусов
- list_subscriptions() — даты в часовом поясе подписки, проверка доступа
"""

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from subtracker.config.yaml_config import ReminderPolicyConfig
from subtracker.core.clock import FrozenClock
from subtracker.core.exceptions import (
    InvalidFrequency,
    InvalidStartDateFormat,
    InvalidStatusTransition,
    NotAuthorized,
    PersistenceConflict,
    StartDateInPast,
    SubscriptionNotFound,
)
from subtracker.db.models.audit_entry import AuditAction
from subtracker.db.models.reminder_dispatch import DispatchStatus
from subtracker.db.models.subscription import SubscriptionStatus
from subtracker.db.models.user import User
from subtracker.db.models_base import Base
from subtracker.db.repositories.audit_repo import AuditRepository
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.engine.phases import ReminderPhase
from subtracker.services.dispatch_service import DispatchOutcome, ReminderDispatcher
from subtracker.services.scheduling_service import (
    SchedulingService,
    SubscriptionInput,
    parse_start_date,
)


def make_input(**overrides: object) -> SubscriptionInput:
    data: dict[str, object] = {
        "name": "Кинотеатр",
        "price": Decimal("9.99"),
        "frequency": "monthly",
        "category": "entertainment",
    }
    data.update(overrides)
    return SubscriptionInput(**data)


# ==============================================================================
# СОЗДАНИЕ
# ==============================================================================


async def test_create_subscription_schedules_reminders(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    boundary,
    test_user: User,
) -> None:
    """Тест: месячная подписка с 1 мая — продление 1 июня, 4 напоминания."""
    result = await scheduling_service.create_subscription(test_user.id, make_input())

    subscription = result.subscription
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.timezone == "UTC"
    assert subscription.start_date == datetime(2025, 5, 1)
    assert subscription.renewal_date == datetime(2025, 6, 1)

    assert result.phase is ReminderPhase.PRE_RENEWAL
    assert [r.instruction.reminder_label for r in result.reminders] == [
        "7-day-pre-renewal",
        "5-day-pre-renewal",
        "2-day-pre-renewal",
        "1-day-pre-renewal",
    ]
    assert all(r.outcome == DispatchOutcome.SCHEDULED for r in result.reminders)
    assert result.next_reminder == "7-day-pre-renewal"
    assert len(boundary.scheduled) == 4
    assert boundary.scheduled[0][1] == datetime(2025, 5, 25, tzinfo=UTC)

    audit = AuditRepository(db_session)
    entries = await audit.list_for_subscription(subscription.id)
    assert [entry.action for entry in entries] == [
        AuditAction.CREATED,
        AuditAction.REMINDERS_SCHEDULED,
    ]
    assert entries[0].details["renewalDate"] == "2025-06-01T00:00:00+00:00"
    scheduled = entries[1].details
    assert scheduled["phase"] == "pre-renewal"
    assert scheduled["nextReminder"] == "7-day-pre-renewal"
    assert len(scheduled["reminders"]) == 4
    assert scheduled["reminders"][0]["outcome"] == "scheduled"


async def test_create_subscription_uses_owner_timezone(
    scheduling_service: SchedulingService,
    other_user: User,
) -> None:
    """Тест: без timezone берётся часовой пояс владельца (Москва, UTC+3)."""
    result = await scheduling_service.create_subscription(other_user.id, make_input())

    subscription = result.subscription
    assert subscription.timezone == "Europe/Moscow"
    # Полночь 1 мая по Москве = 30 апреля 21:00 UTC
    assert subscription.start_date == datetime(2025, 4, 30, 21, 0)
    assert subscription.renewal_date == datetime(2025, 5, 31, 21, 0)


async def test_create_subscription_explicit_timezone_and_start_date(
    scheduling_service: SchedulingService,
    test_user: User,
) -> None:
    """Тест: явные timezone и startDate, годовая периодичность."""
    result = await scheduling_service.create_subscription(
        test_user.id,
        make_input(frequency="yearly", timezone="Asia/Tokyo", startDate="2025-05-20"),
    )

    subscription = result.subscription
    assert subscription.timezone == "Asia/Tokyo"
    assert subscription.start_date == datetime(2025, 5, 19, 15, 0)
    assert subscription.renewal_date == datetime(2026, 5, 19, 15, 0)


async def test_create_subscription_start_date_in_past(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    boundary,
    test_user: User,
) -> None:
    """Тест: дата начала раньше сегодняшнего дня — ошибка, ничего не записано."""
    with pytest.raises(StartDateInPast):
        await scheduling_service.create_subscription(
            test_user.id, make_input(startDate="2025-04-30")
        )

    assert await SubscriptionRepository(db_session).list_for_owner(test_user.id) == []
    assert boundary.scheduled == []


@pytest.mark.parametrize("raw", ["01/05/2025", "not-a-date", "2025-13-45T00:00"])
async def test_create_subscription_bad_start_date_format(
    scheduling_service: SchedulingService,
    test_user: User,
    raw: str,
) -> None:
    """Тест: нераспознанная дата начала — InvalidStartDateFormat."""
    with pytest.raises(InvalidStartDateFormat):
        await scheduling_service.create_subscription(
            test_user.id, make_input(startDate=raw)
        )


async def test_create_subscription_invalid_frequency(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    test_user: User,
) -> None:
    """Тест: неизвестная периодичность — InvalidFrequency до записи в БД."""
    with pytest.raises(InvalidFrequency):
        await scheduling_service.create_subscription(
            test_user.id, make_input(frequency="fortnightly")
        )

    assert await SubscriptionRepository(db_session).list_for_owner(test_user.id) == []


async def test_create_subscription_unknown_owner(
    scheduling_service: SchedulingService,
) -> None:
    """Тест: несуществующий владелец — NotAuthorized."""
    with pytest.raises(NotAuthorized):
        await scheduling_service.create_subscription(9999, make_input())


def test_subscription_input_rejects_unknown_timezone() -> None:
    """Тест: неизвестный часовой пояс отклоняется при валидации данных."""
    with pytest.raises(ValueError, match="часовой пояс"):
        make_input(timezone="Mars/Olympus")


def test_parse_start_date_datetime_converted_to_local_day() -> None:
    """Тест: ISO datetime с часовым поясом переводится в день подписки."""
    assert parse_start_date("2025-05-31T22:30:00Z", "Europe/Moscow") == date(2025, 6, 1)
    assert parse_start_date("2025-05-31T22:30:00", "Europe/Moscow") == date(2025, 5, 31)
    assert parse_start_date("2025-05-31", "UTC") == date(2025, 5, 31)


# ==============================================================================
# ПРОДЛЕНИЕ
# ==============================================================================


async def test_renew_subscription_advances_from_renewal_date(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    boundary,
    clock: FrozenClock,
    test_user: User,
) -> None:
    """Тест: продление считается от даты продления, старые напоминания заменены."""
    created = await scheduling_service.create_subscription(test_user.id, make_input())
    subscription_id = created.subscription.id
    clock.set(datetime(2025, 6, 3, tzinfo=UTC))

    renewed = await scheduling_service.renew_subscription(
        subscription_id, owner_id=test_user.id, auto_renew=False
    )

    subscription = renewed.subscription
    assert subscription.renewal_date == datetime(2025, 7, 1)
    assert subscription.auto_renew is False
    assert renewed.phase is ReminderPhase.PRE_RENEWAL
    assert renewed.next_reminder == "7-day-pre-renewal"

    repo = ReminderDispatchRepository(db_session)
    pending = await repo.list_pending_for_subscription(subscription_id)
    assert [row.scheduled_at for row in pending] == [
        datetime(2025, 6, 24),
        datetime(2025, 6, 26),
        datetime(2025, 6, 29),
        datetime(2025, 6, 30),
    ]
    rows = await repo.list_for_subscription(subscription_id)
    superseded = [row for row in rows if row.status == DispatchStatus.SUPERSEDED]
    assert len(superseded) == 4
    assert len(boundary.cancelled) == 4

    entries = await AuditRepository(db_session).list_for_subscription(
        subscription_id, action=AuditAction.RENEWED
    )
    assert len(entries) == 1
    assert entries[0].details == {
        "previousRenewalDate": "2025-06-01T00:00:00+00:00",
        "renewalDate": "2025-07-01T00:00:00+00:00",
        "trigger": "owner",
        "autoRenew": False,
    }


async def test_concurrent_renewals_only_one_succeeds(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    test_user: User,
) -> None:
    """Тест: два продления одного периода — одно успешно, второе PersistenceConflict."""
    created = await scheduling_service.create_subscription(test_user.id, make_input())
    subscription_id = created.subscription.id
    observed = datetime(2025, 6, 1, tzinfo=UTC)

    await scheduling_service.renew_subscription(
        subscription_id, owner_id=test_user.id, expected_renewal_date=observed
    )
    with pytest.raises(PersistenceConflict) as exc_info:
        await scheduling_service.renew_subscription(
            subscription_id, owner_id=test_user.id, expected_renewal_date=observed
        )

    assert exc_info.value.retryable is True
    subscription = await SubscriptionRepository(db_session).get_by_id(subscription_id)
    assert subscription is not None
    assert subscription.renewal_date == datetime(2025, 7, 1)

    entries = await AuditRepository(db_session).list_for_subscription(
        subscription_id, action=AuditAction.RENEWED
    )
    assert len(entries) == 1


@pytest_asyncio.fixture
async def file_session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Фабрика сессий файловой SQLite: у каждой сессии своё соединение."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'renewals.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def test_parallel_owner_renewals_advance_once(
    file_session_factory: async_sessionmaker[AsyncSession],
    boundary,
    notifier,
    clock: FrozenClock,
    policy: ReminderPolicyConfig,
) -> None:
    """Тест: два независимых запроса продления в разных сессиях.

    Каждый сам читает дату продления. Условный UPDATE пропускает
    только один, второй получает PersistenceConflict.
    """

    def make_service(session: AsyncSession) -> SchedulingService:
        dispatcher = ReminderDispatcher(
            session, boundary, notifier, clock=clock, policy=policy
        )
        return SchedulingService(session, dispatcher, clock=clock, policy=policy)

    async with file_session_factory() as session:
        owner = User(email="owner@example.com", name="Анна", timezone="UTC")
        session.add(owner)
        await session.commit()
        owner_id = owner.id
        created = await make_service(session).create_subscription(owner_id, make_input())
        subscription_id = created.subscription.id

    # Оба запроса успевают прочитать подписку до первой записи
    both_read = asyncio.Barrier(2)
    advance_renewal = SubscriptionRepository.advance_renewal

    async def advance_after_both_read(self, *args, **kwargs):
        await both_read.wait()
        return await advance_renewal(self, *args, **kwargs)

    async def renew() -> str:
        async with file_session_factory() as session:
            try:
                await make_service(session).renew_subscription(
                    subscription_id, owner_id=owner_id
                )
            except PersistenceConflict:
                return "conflict"
            return "ok"

    with patch.object(SubscriptionRepository, "advance_renewal", advance_after_both_read):
        results = await asyncio.gather(renew(), renew())

    assert sorted(results) == ["conflict", "ok"]

    async with file_session_factory() as session:
        subscription = await SubscriptionRepository(session).get_by_id(subscription_id)
        assert subscription is not None
        assert subscription.renewal_date == datetime(2025, 7, 1)

        entries = await AuditRepository(session).list_for_subscription(
            subscription_id, action=AuditAction.RENEWED
        )
        assert len(entries) == 1


async def test_renew_subscription_checks_owner(
    scheduling_service: SchedulingService,
    test_user: User,
    other_user: User,
) -> None:
    """Тест: чужую подписку продлить нельзя, несуществующую — SubscriptionNotFound."""
    created = await scheduling_service.create_subscription(test_user.id, make_input())

    with pytest.raises(NotAuthorized):
        await scheduling_service.renew_subscription(
            created.subscription.id, owner_id=other_user.id
        )
    with pytest.raises(SubscriptionNotFound):
        await scheduling_service.renew_subscription(9999, owner_id=test_user.id)


# ==============================================================================
# ОТМЕНА
# ==============================================================================


async def test_cancel_subscription_supersedes_pending(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    boundary,
    test_user: User,
) -> None:
    """Тест: отмена заменяет все ожидающие напоминания и пишет журнал."""
    created = await scheduling_service.create_subscription(test_user.id, make_input())
    subscription_id = created.subscription.id

    cancelled = await scheduling_service.cancel_subscription(subscription_id, test_user.id)

    assert cancelled.status == SubscriptionStatus.CANCELLED
    repo = ReminderDispatchRepository(db_session)
    assert await repo.list_pending_for_subscription(subscription_id) == []
    assert sorted(boundary.cancelled) == ["run-1", "run-2", "run-3", "run-4"]

    entries = await AuditRepository(db_session).list_for_subscription(
        subscription_id, action=AuditAction.CANCELLED
    )
    assert entries[0].details == {"supersededReminders": 4}


async def test_cancelled_subscription_rejects_further_transitions(
    scheduling_service: SchedulingService,
    test_user: User,
) -> None:
    """Тест: из CANCELLED нельзя ни продлить, ни отменить повторно."""
    created = await scheduling_service.create_subscription(test_user.id, make_input())
    subscription_id = created.subscription.id
    await scheduling_service.cancel_subscription(subscription_id, test_user.id)

    with pytest.raises(InvalidStatusTransition) as exc_info:
        await scheduling_service.renew_subscription(subscription_id, owner_id=test_user.id)
    assert exc_info.value.action == "renew"

    with pytest.raises(InvalidStatusTransition):
        await scheduling_service.cancel_subscription(subscription_id, test_user.id)


# ==============================================================================
# СПИСОК
# ==============================================================================


async def test_list_subscriptions_formats_dates_in_subscription_timezone(
    scheduling_service: SchedulingService,
    other_user: User,
) -> None:
    """Тест: даты в списке — календарные дни в часовом поясе подписки."""
    await scheduling_service.create_subscription(other_user.id, make_input())

    views = await scheduling_service.list_subscriptions(other_user.id, other_user.id)

    assert len(views) == 1
    data = views[0].to_dict()
    assert data["startDate"] == "2025-05-01"
    assert data["renewalDate"] == "2025-06-01"
    assert data["nextReminder"] == "7-day-pre-renewal"
    assert data["timezone"] == "Europe/Moscow"
    assert data["frequency"] == "monthly"
    assert data["status"] == "active"
    assert data["autoRenew"] is True


async def test_list_subscriptions_requires_owner(
    scheduling_service: SchedulingService,
    test_user: User,
    other_user: User,
) -> None:
    """Тест: чужой список подписок — NotAuthorized."""
    with pytest.raises(NotAuthorized):
        await scheduling_service.list_subscriptions(test_user.id, other_user.id)
