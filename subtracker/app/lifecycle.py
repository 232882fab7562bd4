"""Управление жизненным циклом приложения.

Класс ApplicationLifecycle инкапсулирует всю логику startup и shutdown:
- Проверка миграций БД
- Создание очереди доставки напоминаний и отправителя уведомлений
- Запуск планировщика
- Корректная остановка всех компонентов
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from subtracker.db.base import dispose_engine, get_engine
from subtracker.db.migrations import check_migrations
from subtracker.providers.dispatch import create_dispatch_boundary
from subtracker.providers.notifications import LogNotifier
from subtracker.scheduler import create_scheduler, start_scheduler, stop_scheduler
from subtracker.utils.logging import get_logger

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from fastapi import FastAPI

    from subtracker.config.settings import Settings
    from subtracker.config.yaml_config import YamlConfig
    from subtracker.providers.dispatch.base import BaseDispatchBoundary
    from subtracker.providers.notifications.base import BaseNotifier

logger = get_logger(__name__)


class ApplicationLifecycle:
    """Управление жизненным циклом приложения.

    Attributes:
        settings: Настройки приложения из .env
        yaml_config: Конфигурация из config.yaml
        boundary: Очередь доставки напоминаний (создаётся при startup)
        notifier: Отправитель уведомлений (создаётся при startup)
        scheduler: APScheduler instance для сверки и доставки
    """

    def __init__(
        self,
        settings: Settings,
        yaml_config: YamlConfig,
        *,
        enable_scheduler: bool = True,
    ) -> None:
        """Инициализировать lifecycle manager.

        Args:
            settings: Настройки приложения из .env
            yaml_config: Конфигурация из config.yaml
            enable_scheduler: Запускать ли планировщик (в тестах — нет)
        """
        self.settings = settings
        self.yaml_config = yaml_config
        self.enable_scheduler = enable_scheduler

        self.boundary: BaseDispatchBoundary | None = None
        self.notifier: BaseNotifier | None = None
        self.scheduler: AsyncIOScheduler | None = None

    async def startup(self, app: FastAPI) -> None:
        """Выполнить startup приложения.

        1. Проверка миграций БД
        2. Очередь доставки и отправитель уведомлений
        3. Планировщик (сверка подписок, опрос локальной очереди)

        Args:
            app: FastAPI приложение для сохранения компонентов в app.state
        """
        logger.info("Запуск приложения...")

        # Выводим предупреждение если миграции не применены
        await check_migrations(get_engine())

        self.boundary = create_dispatch_boundary(self.settings)
        self.notifier = LogNotifier()
        app.state.dispatch_boundary = self.boundary
        app.state.notifier = self.notifier
        logger.info("Очередь доставки напоминаний: %s", self.boundary.name)

        if self.enable_scheduler:
            await self._start_scheduler(app)

        logger.info("✅ Приложение запущено успешно")

    async def shutdown(self) -> None:
        """Выполнить shutdown приложения.

        Останавливает все компоненты в обратном порядке:
        1. Планировщик
        2. Очередь доставки (HTTP-клиент)
        3. Пул соединений БД
        """
        logger.info("Остановка приложения...")

        if self.scheduler is not None:
            stop_scheduler(self.scheduler)

        if self.boundary is not None:
            await self.boundary.close()
            logger.debug("Очередь доставки закрыта")

        await dispose_engine()
        logger.debug("Соединения с БД закрыты")

        logger.info("✅ Приложение остановлено")

    async def _start_scheduler(self, app: FastAPI) -> None:
        """Запустить планировщик задач.

        Args:
            app: FastAPI приложение для сохранения scheduler в app.state
        """
        assert self.boundary is not None

        self.scheduler = create_scheduler(self.yaml_config, self.boundary)
        start_scheduler(self.scheduler)

        # Сохраняем scheduler в app.state для возможного доступа из API
        app.state.scheduler = self.scheduler
