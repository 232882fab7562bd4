"""Factory для создания FastAPI приложения.

Функция create_app() создаёт и настраивает FastAPI app:
- Подключает все роутеры (subscriptions, workflows, health)
- Настраивает CORS middleware для безопасности
- Подключает lifecycle manager
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from subtracker.api import health_router, subscriptions_router, workflows_router
from subtracker.app.lifecycle import ApplicationLifecycle
from subtracker.config.settings import settings
from subtracker.config.yaml_config import yaml_config
from subtracker.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(*, enable_scheduler: bool = True) -> FastAPI:
    """Создать и настроить FastAPI приложение.

    Args:
        enable_scheduler: Запускать ли планировщик при startup.

    Returns:
        Настроенное FastAPI приложение готовое к запуску
    """
    lifecycle = ApplicationLifecycle(
        settings, yaml_config, enable_scheduler=enable_scheduler
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        """Управление жизненным циклом приложения.

        Args:
            app: FastAPI приложение

        Yields:
            None: Приложение работает между startup и shutdown
        """
        await lifecycle.startup(app)

        yield

        await lifecycle.shutdown()

    app = FastAPI(
        title="Subtracker",
        description="Учёт подписок и напоминания о продлении",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS нужен для защиты от вредоносных сайтов, делающих запросы к API.
    # Порядок middleware в FastAPI обратный: последний добавленный выполняется первым.
    if settings.cors.is_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors.allow_origins,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )
        logger.info(
            "CORS включён для доменов: %s",
            ", ".join(settings.cors.allow_origins),
        )

    # Subscriptions API: /api/v1/subscriptions
    app.include_router(subscriptions_router)

    # Webhook доставки напоминаний: /api/v1/workflows/subscription/reminder-task
    app.include_router(workflows_router)

    # Health check API: /health
    app.include_router(health_router)

    return app
