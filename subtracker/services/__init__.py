"""Сервисы приложения.

Этот пакет содержит бизнес-логику приложения.

Сервисы:
- SchedulingService — создание, продление и отмена подписок, планирование напоминаний.
- ReminderDispatcher — постановка напоминаний в очередь и обработка доставки.
- SweepService — ежедневная сверка: истечение и автопродление.
- AuditService — журнал изменений подписок.

Фабрики create_* собирают сервисы с глобальной конфигурацией
(settings, yaml_config). В тестах сервисы создаются напрямую.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.config.yaml_config import YamlConfig
from subtracker.core.clock import Clock
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.providers.notifications.base import BaseNotifier
from subtracker.services.audit_service import AuditService
from subtracker.services.dispatch_service import ReminderDispatcher
from subtracker.services.scheduling_service import (
    ScheduledSubscription,
    SchedulingService,
    SubscriptionInput,
    SubscriptionView,
)
from subtracker.services.sweep_service import SweepReport, SweepService

__all__ = [
    "AuditService",
    "ReminderDispatcher",
    "ScheduledSubscription",
    "SchedulingService",
    "SubscriptionInput",
    "SubscriptionView",
    "SweepReport",
    "SweepService",
    "create_dispatcher",
    "create_scheduling_service",
    "create_sweep_service",
]


def _get_yaml_config(yaml_config: YamlConfig | None) -> YamlConfig:
    if yaml_config is None:
        from subtracker.config.yaml_config import yaml_config as global_yaml_config

        return global_yaml_config
    return yaml_config


def create_dispatcher(
    session: AsyncSession,
    *,
    boundary: BaseDispatchBoundary | None = None,
    notifier: BaseNotifier | None = None,
    clock: Clock | None = None,
    yaml_config: YamlConfig | None = None,
) -> ReminderDispatcher:
    """Создать экземпляр ReminderDispatcher (factory function).

    Очередь доставки выбирается по settings.dispatch, если не передана явно.
    Уведомления по умолчанию пишутся в лог (LogNotifier).

    Args:
        session: Асинхронная сессия SQLAlchemy.
        boundary: Очередь доставки (опционально).
        notifier: Отправитель уведомлений (опционально).
        clock: Источник времени (опционально).
        yaml_config: YAML-конфигурация (опционально, берётся из глобальной).

    Returns:
        Настроенный экземпляр ReminderDispatcher.
    """
    config = _get_yaml_config(yaml_config)

    if boundary is None:
        from subtracker.config.settings import settings
        from subtracker.providers.dispatch import create_dispatch_boundary

        boundary = create_dispatch_boundary(settings)

    if notifier is None:
        from subtracker.providers.notifications import LogNotifier

        notifier = LogNotifier()

    return ReminderDispatcher(
        session,
        boundary,
        notifier,
        clock=clock,
        policy=config.reminders,
    )


def create_scheduling_service(
    session: AsyncSession,
    *,
    dispatcher: ReminderDispatcher | None = None,
    clock: Clock | None = None,
    yaml_config: YamlConfig | None = None,
) -> SchedulingService:
    """Создать экземпляр SchedulingService (factory function).

    Example:
        async with DatabaseSession() as session:
            service = create_scheduling_service(session)
            result = await service.create_subscription(user_id, data)
    """
    config = _get_yaml_config(yaml_config)
    if dispatcher is None:
        dispatcher = create_dispatcher(session, clock=clock, yaml_config=config)

    return SchedulingService(
        session,
        dispatcher,
        clock=clock,
        policy=config.reminders,
    )


def create_sweep_service(
    session: AsyncSession,
    *,
    dispatcher: ReminderDispatcher | None = None,
    clock: Clock | None = None,
    yaml_config: YamlConfig | None = None,
) -> SweepService:
    """Создать экземпляр SweepService (factory function).

    Сверка и продление используют один и тот же ReminderDispatcher.
    """
    config = _get_yaml_config(yaml_config)
    if dispatcher is None:
        dispatcher = create_dispatcher(session, clock=clock, yaml_config=config)

    scheduling = SchedulingService(
        session,
        dispatcher,
        clock=clock,
        policy=config.reminders,
    )
    return SweepService(
        session,
        scheduling,
        dispatcher,
        clock=clock,
        policy=config.reminders,
        batch_limit=config.sweep.batch_limit,
    )
