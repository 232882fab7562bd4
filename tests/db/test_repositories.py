"""Тесты для репозиториев БД.

Модуль тестирует:
- UserRepository — создание и поиск по адресу
- SubscriptionRepository — условные обновления (advance_renewal, expire_if_unchanged),
  выборки для сверки
- ReminderDispatchRepository — уникальность ожидающей записи, созревшие напоминания
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.core.exceptions import PersistenceConflict
from subtracker.db.models.reminder_dispatch import DispatchStatus
from subtracker.db.models.subscription import (
    Category,
    Currency,
    Subscription,
    SubscriptionStatus,
)
from subtracker.db.models.user import User
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.db.repositories.user_repo import UserRepository
from subtracker.engine.planner import ReminderType
from subtracker.engine.recurrence import Frequency

JUNE_1 = datetime(2025, 6, 1, tzinfo=UTC)
JULY_1 = datetime(2025, 7, 1, tzinfo=UTC)


async def make_subscription(
    db_session: AsyncSession,
    user: User,
    *,
    renewal_date: datetime = JUNE_1,
    auto_renew: bool = True,
) -> Subscription:
    subscription = await SubscriptionRepository(db_session).create(
        user_id=user.id,
        name="Новости",
        price=Decimal("4.50"),
        currency=Currency.GBP,
        frequency=Frequency.MONTHLY,
        category=Category.NEWS,
        payment_method=None,
        auto_renew=auto_renew,
        timezone="UTC",
        start_date=datetime(2025, 5, 1, tzinfo=UTC),
        renewal_date=renewal_date,
    )
    await db_session.commit()
    return subscription


# ==============================================================================
# ПОЛЬЗОВАТЕЛИ
# ==============================================================================


async def test_user_repo_email_is_case_insensitive(db_session: AsyncSession) -> None:
    """Тест: адрес хранится в нижнем регистре и ищется без учёта регистра."""
    repo = UserRepository(db_session)

    user = await repo.create("  Mail@Example.COM ", "Вера", timezone="Asia/Tokyo")

    assert user.email == "mail@example.com"
    found = await repo.get_by_email("MAIL@example.com")
    assert found is not None
    assert found.id == user.id
    assert await repo.get_by_email("nobody@example.com") is None


async def test_user_subscriptions_are_never_loaded_implicitly(test_user: User) -> None:
    """Тест: подписки владельца не подгружаются неявно, только явным запросом."""
    assert User.subscriptions.property.lazy == "raise"

    with pytest.raises(InvalidRequestError):
        _ = test_user.subscriptions


# ==============================================================================
# ПОДПИСКИ
# ==============================================================================


async def test_advance_renewal_is_conditional(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: второе продление с той же ожидаемой датой — PersistenceConflict."""
    repo = SubscriptionRepository(db_session)
    subscription = await make_subscription(db_session, test_user)

    await repo.advance_renewal(
        subscription, expected_renewal_date=JUNE_1, new_renewal_date=JULY_1
    )
    assert subscription.renewal_date == datetime(2025, 7, 1)

    with pytest.raises(PersistenceConflict) as exc_info:
        await repo.advance_renewal(
            subscription,
            expected_renewal_date=JUNE_1,
            new_renewal_date=datetime(2025, 8, 1, tzinfo=UTC),
        )

    assert exc_info.value.subscription_id == subscription.id
    assert subscription.renewal_date == datetime(2025, 7, 1)


async def test_advance_renewal_rejects_inactive(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: отменённую подписку условный UPDATE не продлевает."""
    repo = SubscriptionRepository(db_session)
    subscription = await make_subscription(db_session, test_user)
    await repo.set_status(subscription, SubscriptionStatus.CANCELLED)

    with pytest.raises(PersistenceConflict):
        await repo.advance_renewal(
            subscription, expected_renewal_date=JUNE_1, new_renewal_date=JULY_1
        )


async def test_expire_if_unchanged(db_session: AsyncSession, test_user: User) -> None:
    """Тест: истечение только если дата продления не изменилась."""
    repo = SubscriptionRepository(db_session)
    subscription = await make_subscription(db_session, test_user)

    assert await repo.expire_if_unchanged(subscription, expected_renewal_date=JULY_1) is False
    assert subscription.status == SubscriptionStatus.ACTIVE

    assert await repo.expire_if_unchanged(subscription, expected_renewal_date=JUNE_1) is True
    assert subscription.status == SubscriptionStatus.EXPIRED


async def test_sweep_queries_filter_candidates(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: выборки для сверки учитывают статус, дату и автопродление."""
    repo = SubscriptionRepository(db_session)
    due = await make_subscription(db_session, test_user)
    manual = await make_subscription(db_session, test_user, auto_renew=False)
    future = await make_subscription(db_session, test_user, renewal_date=JULY_1)
    cancelled = await make_subscription(db_session, test_user)
    await repo.set_status(cancelled, SubscriptionStatus.CANCELLED)
    now = datetime(2025, 6, 10, tzinfo=UTC)

    expirable = await repo.find_expirable(now)
    renewable = await repo.find_auto_renewable(now)

    assert [s.id for s in expirable] == [due.id, manual.id]
    assert [s.id for s in renewable] == [due.id]
    assert future.id not in {s.id for s in expirable}
    assert await repo.find_expirable(now, limit=1) == [due]


async def test_find_auto_renewable_skips_long_expired_rows(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: нижняя граница отсекает подписки, чей льготный период давно прошёл."""
    repo = SubscriptionRepository(db_session)
    stale = await make_subscription(
        db_session, test_user, renewal_date=datetime(2025, 4, 1, tzinfo=UTC)
    )
    in_grace = await make_subscription(db_session, test_user)
    now = datetime(2025, 6, 3, tzinfo=UTC)

    unbounded = await repo.find_auto_renewable(now, limit=1)
    bounded = await repo.find_auto_renewable(
        now, since=datetime(2025, 5, 25, tzinfo=UTC), limit=1
    )

    assert [s.id for s in unbounded] == [stale.id]
    assert [s.id for s in bounded] == [in_grace.id]


# ==============================================================================
# НАПОМИНАНИЯ
# ==============================================================================


async def _create_dispatch(
    repo: ReminderDispatchRepository,
    subscription_id: int,
    label: str,
    scheduled_at: datetime,
):
    return await repo.create(
        subscription_id=subscription_id,
        reminder_label=label,
        reminder_type=ReminderType.PRE_RENEWAL,
        scheduled_at=scheduled_at,
        renewal_date=JUNE_1,
        timezone="UTC",
        recipient_email="owner@example.com",
        recipient_name="Анна",
    )


async def test_only_one_pending_dispatch_per_label(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: вторая PENDING-запись с той же меткой нарушает уникальный индекс."""
    subscription = await make_subscription(db_session, test_user)
    subscription_id = subscription.id
    repo = ReminderDispatchRepository(db_session)
    first = await _create_dispatch(
        repo, subscription_id, "1-day-pre-renewal", datetime(2025, 5, 31, tzinfo=UTC)
    )

    # После замены новая запись с той же меткой допустима
    await repo.mark(first, DispatchStatus.SUPERSEDED, reason="replanned")
    await _create_dispatch(
        repo, subscription_id, "1-day-pre-renewal", datetime(2025, 5, 31, tzinfo=UTC)
    )
    await db_session.commit()

    with pytest.raises(IntegrityError):
        await _create_dispatch(
            repo, subscription_id, "1-day-pre-renewal", datetime(2025, 5, 31, tzinfo=UTC)
        )
    await db_session.rollback()


async def test_find_due_returns_pending_in_order(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: созревшие PENDING-записи по времени, остальные не попадают."""
    subscription = await make_subscription(db_session, test_user)
    repo = ReminderDispatchRepository(db_session)
    late = await _create_dispatch(
        repo, subscription.id, "2-day-pre-renewal", datetime(2025, 5, 30, tzinfo=UTC)
    )
    early = await _create_dispatch(
        repo, subscription.id, "7-day-pre-renewal", datetime(2025, 5, 25, tzinfo=UTC)
    )
    sent = await _create_dispatch(
        repo, subscription.id, "5-day-pre-renewal", datetime(2025, 5, 27, tzinfo=UTC)
    )
    await _create_dispatch(
        repo, subscription.id, "1-day-pre-renewal", datetime(2025, 5, 31, tzinfo=UTC)
    )
    await repo.mark(sent, DispatchStatus.SENT, sent_at=datetime(2025, 5, 27, tzinfo=UTC))

    due = await repo.find_due(datetime(2025, 5, 30, tzinfo=UTC))

    assert [d.id for d in due] == [early.id, late.id]
    assert sent.sent_at == datetime(2025, 5, 27)


async def test_record_failure_marks_failed_when_exhausted(
    db_session: AsyncSession,
    test_user: User,
) -> None:
    """Тест: неудачные попытки считаются, исчерпание переводит в FAILED."""
    subscription = await make_subscription(db_session, test_user)
    repo = ReminderDispatchRepository(db_session)
    dispatch = await _create_dispatch(
        repo, subscription.id, "1-day-pre-renewal", datetime(2025, 5, 31, tzinfo=UTC)
    )

    await repo.record_failure(dispatch, "timeout", exhausted=False)
    assert dispatch.attempts == 1
    assert dispatch.is_pending

    await repo.record_failure(dispatch, "timeout", exhausted=True)
    assert dispatch.attempts == 2
    assert dispatch.status == DispatchStatus.FAILED
    assert dispatch.last_error == "timeout"
