"""Периодическая сверка подписок.

Запускается планировщиком раз в сутки (см. scheduler/tasks.py).

Два прохода, строго по порядку:
1. Истечение — ACTIVE подписки, у которых закончился льготный период,
   переводятся в EXPIRED, ожидающие напоминания заменяются
2. Автопродление — ACTIVE подписки с auto_renew в льготном периоде
   продлеваются через SchedulingService (owner_id=None)

Граница: renewal_date + grace == now — подписка истекает, а не продлевается.
Окончательное решение о фазе принимает classify_phase, выборки из БД
берутся с запасом.

Каждая подписка обрабатывается изолированно: ошибка логируется,
транзакция откатывается, подписка считается неудачной, сверка продолжается.
Повторный запуск безопасен: подписки, которые уже истекли или продлены,
в выборку не попадают.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.config.yaml_config import ReminderPolicyConfig
from subtracker.core.clock import Clock, SystemClock
from subtracker.core.exceptions import PersistenceConflict
from subtracker.db.models.audit_entry import AuditAction
from subtracker.db.models.subscription import Subscription
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.engine.phases import ReminderPhase, classify_phase
from subtracker.services.audit_service import AuditService
from subtracker.services.dispatch_service import ReminderDispatcher
from subtracker.services.scheduling_service import SchedulingService
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import ensure_utc_aware

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Итог одного прохода сверки.

    Attributes:
        expired: Сколько подписок истекло.
        renewed: Сколько подписок продлено.
        skipped: Сколько кандидатов пропущено (фаза не подошла,
            подписку изменил другой процесс).
        failed: Сколько подписок обработать не удалось.
        errors: Ошибки по ID подписки.
    """

    expired: int = 0
    renewed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "expired": self.expired,
            "renewed": self.renewed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": dict(self.errors),
        }


class SweepService:
    """Сверка подписок: истечение и автопродление.

    Attributes:
        _session: Асинхронная сессия SQLAlchemy.
        _scheduling: Сервис продления (единственный, кто пишет даты продления).
        _dispatcher: Замена напоминаний истёкших подписок.
        _clock: Источник текущего времени.
        _policy: Политика напоминаний (льготный период, попытки).
        _batch_limit: Максимум подписок за один проход.
    """

    def __init__(
        self,
        session: AsyncSession,
        scheduling_service: SchedulingService,
        dispatcher: ReminderDispatcher,
        *,
        clock: Clock | None = None,
        policy: ReminderPolicyConfig | None = None,
        batch_limit: int = 500,
    ) -> None:
        self._session = session
        self._scheduling = scheduling_service
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._policy = policy or ReminderPolicyConfig()
        self._batch_limit = batch_limit
        self._repo = SubscriptionRepository(session)
        self._audit = AuditService(session, self._clock)

    async def run(self) -> SweepReport:
        """Выполнить сверку: сначала истечение, затем автопродление."""
        report = SweepReport()
        now = self._clock.now()

        logger.info("Запуск сверки подписок (now=%s)", now.isoformat())

        await self._expire_pass(now, report)
        await self._renew_pass(now, report)

        logger.info(
            "Сверка завершена: истекло=%d, продлено=%d, пропущено=%d, неудачно=%d",
            report.expired,
            report.renewed,
            report.skipped,
            report.failed,
        )
        return report

    # ==========================================================================
    # ИСТЕЧЕНИЕ
    # ==========================================================================

    async def _expire_pass(self, now: datetime, report: SweepReport) -> None:
        # Запас в сутки покрывает любые часовые пояса
        cutoff = now - timedelta(days=self._policy.grace_period_days - 1)
        candidates = await self._repo.find_expirable(cutoff, limit=self._batch_limit)
        # После rollback объекты сессии устаревают, поэтому работаем по ID
        candidate_ids = [subscription.id for subscription in candidates]

        logger.info("Кандидатов на истечение: %d", len(candidate_ids))

        for subscription_id in candidate_ids:
            try:
                subscription = await self._repo.get_by_id(subscription_id)
                if subscription is None or not self._in_phase(
                    subscription, now, ReminderPhase.EXPIRED
                ):
                    report.skipped += 1
                    continue

                if await self._expire(subscription):
                    report.expired += 1
                else:
                    report.skipped += 1
            except Exception as e:
                await self._session.rollback()
                report.failed += 1
                report.errors[subscription_id] = str(e)
                logger.exception("Ошибка при истечении подписки id=%d", subscription_id)

    async def _expire(self, subscription: Subscription) -> bool:
        """Перевести подписку в EXPIRED и заменить её напоминания."""
        renewal_date = ensure_utc_aware(subscription.renewal_date)
        changed = await self._repo.expire_if_unchanged(
            subscription, expected_renewal_date=renewal_date
        )
        if not changed:
            logger.info(
                "Подписка id=%d изменена другим процессом — истечение пропущено",
                subscription.id,
            )
            await self._session.rollback()
            return False

        superseded = await self._dispatcher.supersede_pending(
            subscription.id, reason="expired"
        )
        await self._audit.append(
            subscription.id,
            AuditAction.EXPIRED,
            {
                "renewalDate": renewal_date.isoformat(),
                "gracePeriodDays": self._policy.grace_period_days,
                "supersededReminders": superseded,
            },
        )
        await self._session.commit()
        return True

    # ==========================================================================
    # АВТОПРОДЛЕНИЕ
    # ==========================================================================

    async def _renew_pass(self, now: datetime, report: SweepReport) -> None:
        # Запас в сутки, как и при истечении; фазу проверяет _in_phase
        since = now - timedelta(days=self._policy.grace_period_days + 1)
        candidates = await self._repo.find_auto_renewable(
            now, since=since, limit=self._batch_limit
        )
        candidate_ids = [subscription.id for subscription in candidates]

        logger.info("Кандидатов на автопродление: %d", len(candidate_ids))

        for subscription_id in candidate_ids:
            try:
                if await self._renew_with_retry(subscription_id, now):
                    report.renewed += 1
                else:
                    report.skipped += 1
            except Exception as e:
                await self._session.rollback()
                report.failed += 1
                report.errors[subscription_id] = str(e)
                logger.exception(
                    "Ошибка при автопродлении подписки id=%d", subscription_id
                )

    async def _renew_with_retry(self, subscription_id: int, now: datetime) -> bool:
        """Продлить подписку, перечитывая её при конфликте.

        Returns:
            True если продлена, False если подписка больше не подходит.

        Raises:
            PersistenceConflict: Конфликт повторился больше retry_budget раз.
        """
        subscription = await self._repo.get_by_id(subscription_id)
        attempts = 0

        while True:
            if (
                subscription is None
                or not subscription.auto_renew
                or not self._in_phase(subscription, now, ReminderPhase.GRACE_PERIOD)
            ):
                return False

            try:
                await self._scheduling.renew_subscription(
                    subscription.id,
                    owner_id=None,
                    expected_renewal_date=ensure_utc_aware(subscription.renewal_date),
                )
            except PersistenceConflict:
                attempts += 1
                await self._session.rollback()
                if attempts >= self._policy.retry_budget:
                    raise
                logger.warning(
                    "Конфликт при продлении подписки id=%d (попытка %d/%d) — перечитываем",
                    subscription_id,
                    attempts,
                    self._policy.retry_budget,
                )
                await self._session.refresh(subscription)
                continue

            return True

    def _in_phase(
        self,
        subscription: Subscription,
        now: datetime,
        phase: ReminderPhase,
    ) -> bool:
        if not subscription.is_active:
            return False
        current = classify_phase(
            now,
            subscription.renewal_date,
            subscription.timezone,
            grace_period_days=self._policy.grace_period_days,
        )
        return current == phase
