"""Управление планировщиком APScheduler.

Этот модуль предоставляет функции для:
- Создания и настройки планировщика
- Регистрации периодических задач
- Запуска и остановки планировщика

APScheduler используется для:
- Ежедневной сверки подписок (истечение + автопродление)
- Опроса локальной очереди напоминаний (только DISPATCH__BACKEND=local)

Интеграция с FastAPI:
    Планировщик запускается в lifespan FastAPI приложения.
    При остановке приложения планировщик корректно завершается.

Пример использования:
    from subtracker.scheduler import create_scheduler, start_scheduler, stop_scheduler

    scheduler = create_scheduler(yaml_config, boundary)
    start_scheduler(scheduler)
    ...
    stop_scheduler(scheduler)
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from subtracker.config.yaml_config import YamlConfig
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.providers.dispatch.local import LocalJobQueue
from subtracker.scheduler.tasks import deliver_due_reminders, run_subscription_sweep
from subtracker.utils.logging import get_logger

logger = get_logger(__name__)


def create_scheduler(
    yaml_config: YamlConfig,
    boundary: BaseDispatchBoundary,
) -> AsyncIOScheduler:
    """Создать и настроить планировщик задач.

    Планировщик НЕ запускается автоматически — нужно вызвать start_scheduler().

    Расписание задач:
    - run_subscription_sweep: ежедневно в sweep.hour:sweep.minute UTC
    - deliver_due_reminders: каждые sweep.delivery_interval_seconds секунд
      (только для локальной очереди)

    Args:
        yaml_config: YAML-конфигурация.
        boundary: Очередь доставки напоминаний.

    Returns:
        Настроенный экземпляр AsyncIOScheduler (не запущенный).
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    sweep = yaml_config.sweep

    scheduler.add_job(
        run_subscription_sweep,
        trigger=CronTrigger(hour=sweep.hour, minute=sweep.minute),
        kwargs={"yaml_config": yaml_config, "boundary": boundary},
        id="run_subscription_sweep",
        name=f"Сверка подписок ({sweep.hour:02d}:{sweep.minute:02d} UTC)",
        replace_existing=True,
    )

    # QStash вызывает webhook сам, опрос нужен только локальной очереди
    if isinstance(boundary, LocalJobQueue):
        scheduler.add_job(
            deliver_due_reminders,
            trigger=IntervalTrigger(seconds=sweep.delivery_interval_seconds),
            kwargs={"yaml_config": yaml_config, "boundary": boundary},
            id="deliver_due_reminders",
            name=f"Доставка напоминаний (каждые {sweep.delivery_interval_seconds} сек)",
            replace_existing=True,
        )

    logger.info(
        "Планировщик создан с %d задачами",
        len(scheduler.get_jobs()),
    )

    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Запустить планировщик.

    Планировщик работает в фоне и не блокирует event loop.

    Args:
        scheduler: Экземпляр AsyncIOScheduler.
    """
    if scheduler.running:
        logger.warning("Планировщик уже запущен")
        return

    scheduler.start()
    logger.info("Планировщик запущен")

    for job in scheduler.get_jobs():
        logger.debug("  - %s: %s", job.id, job.next_run_time)


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Остановить планировщик.

    Вызывается при остановке FastAPI приложения.

    Args:
        scheduler: Экземпляр AsyncIOScheduler.
    """
    if not scheduler.running:
        logger.debug("Планировщик не запущен, пропускаем остановку")
        return

    scheduler.shutdown(wait=False)
    logger.info("Планировщик остановлен")
