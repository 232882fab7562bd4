"""Задачи планировщика.

Этот модуль содержит функции, которые периодически выполняются
планировщиком APScheduler:

1. run_subscription_sweep — ежедневная сверка подписок
   (истечение + автопродление, см. services/sweep_service.py)
2. deliver_due_reminders — доставка напоминаний из локальной очереди

Как работает локальная очередь:
1. Напоминание записывается в reminder_dispatches со статусом PENDING
2. Каждые sweep.delivery_interval_seconds ищем записи с scheduled_at <= now
3. Для каждой вызываем тот же обработчик, что и webhook QStash
4. Неудачная отправка остаётся PENDING до исчерпания попыток

Важно: Все задачи должны быть идемпотентными (безопасно запускать повторно).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from subtracker.core.clock import Clock, SystemClock
from subtracker.core.exceptions import DeliveryFailed
from subtracker.db.base import DatabaseSession
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.services import create_dispatcher, create_sweep_service
from subtracker.services.dispatch_service import DeliveryStatus, payload_from_dispatch
from subtracker.utils.logging import get_logger

if TYPE_CHECKING:
    from subtracker.config.yaml_config import YamlConfig
    from subtracker.providers.dispatch.base import BaseDispatchBoundary
    from subtracker.services.sweep_service import SweepReport

logger = get_logger(__name__)

# Максимум напоминаний за один опрос локальной очереди
DELIVERY_BATCH_SIZE = 100


async def run_subscription_sweep(
    yaml_config: YamlConfig,
    boundary: BaseDispatchBoundary | None = None,
    clock: Clock | None = None,
) -> SweepReport:
    """Выполнить ежедневную сверку подписок.

    Args:
        yaml_config: YAML-конфигурация.
        boundary: Очередь доставки (опционально, по настройкам).
        clock: Источник времени (опционально).

    Returns:
        Итог сверки.
    """
    async with DatabaseSession() as session:
        dispatcher = create_dispatcher(
            session, boundary=boundary, clock=clock, yaml_config=yaml_config
        )
        service = create_sweep_service(
            session, dispatcher=dispatcher, clock=clock, yaml_config=yaml_config
        )
        return await service.run()


async def deliver_due_reminders(
    yaml_config: YamlConfig,
    boundary: BaseDispatchBoundary | None = None,
    clock: Clock | None = None,
) -> dict[str, int]:
    """Доставить напоминания локальной очереди, время которых наступило.

    Используется только с DISPATCH__BACKEND=local: QStash сам вызывает webhook.

    Args:
        yaml_config: YAML-конфигурация.
        boundary: Очередь доставки (опционально, по настройкам).
        clock: Источник времени (опционально).

    Returns:
        Статистика: всего, отправлено, пропущено, неудачно.
    """
    clock = clock or SystemClock()
    stats = {"total": 0, "sent": 0, "skipped": 0, "failed": 0}

    async with DatabaseSession() as session:
        repo = ReminderDispatchRepository(session)
        dispatcher = create_dispatcher(
            session, boundary=boundary, clock=clock, yaml_config=yaml_config
        )

        due = await repo.find_due(clock.now(), limit=DELIVERY_BATCH_SIZE)
        # Данные берём сразу: после ошибки объекты сессии устаревают
        payloads = [(dispatch.id, payload_from_dispatch(dispatch)) for dispatch in due]
        stats["total"] = len(payloads)

        if not payloads:
            return stats

        logger.info("Напоминаний к доставке: %d", stats["total"])

        for dispatch_id, payload in payloads:
            try:
                outcome = await dispatcher.handle_delivery(payload)
            except DeliveryFailed as e:
                stats["failed"] += 1
                logger.warning("Напоминание id=%d не доставлено: %s", dispatch_id, e)
                continue
            except Exception:
                await session.rollback()
                stats["failed"] += 1
                logger.exception("Ошибка при доставке напоминания id=%d", dispatch_id)
                continue

            if outcome.status == DeliveryStatus.SENT:
                stats["sent"] += 1
            else:
                stats["skipped"] += 1

        logger.info(
            "Доставка напоминаний завершена: всего=%d, отправлено=%d, "
            "пропущено=%d, неудачно=%d",
            stats["total"],
            stats["sent"],
            stats["skipped"],
            stats["failed"],
        )

    return stats
