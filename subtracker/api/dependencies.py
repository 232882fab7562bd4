"""Зависимости FastAPI для роутеров подписок и webhook.

Очередь доставки и отправитель уведомлений создаются при старте
приложения (ApplicationLifecycle) и хранятся в app.state.
В тестах зависимости подменяются через app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.core.clock import Clock, SystemClock
from subtracker.db.base import get_session
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.providers.notifications import BaseNotifier, LogNotifier
from subtracker.services import create_dispatcher, create_scheduling_service
from subtracker.services.dispatch_service import ReminderDispatcher
from subtracker.services.scheduling_service import SchedulingService


def get_clock() -> Clock:
    """Источник текущего времени."""
    return SystemClock()


async def get_dispatch_boundary(request: Request) -> BaseDispatchBoundary:
    """Получить очередь доставки из app.state.

    Raises:
        HTTPException: Если очередь не инициализирована.
    """
    boundary = getattr(request.app.state, "dispatch_boundary", None)
    if boundary is None:
        raise HTTPException(
            status_code=500,
            detail="Dispatch boundary not available",
        )
    return boundary


async def get_notifier(request: Request) -> BaseNotifier:
    """Получить отправителя уведомлений из app.state (по умолчанию — лог)."""
    notifier = getattr(request.app.state, "notifier", None)
    return notifier if notifier is not None else LogNotifier()


async def get_dispatcher(
    session: Annotated[AsyncSession, Depends(get_session)],
    boundary: Annotated[BaseDispatchBoundary, Depends(get_dispatch_boundary)],
    notifier: Annotated[BaseNotifier, Depends(get_notifier)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> ReminderDispatcher:
    return create_dispatcher(session, boundary=boundary, notifier=notifier, clock=clock)


async def get_scheduling_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    dispatcher: Annotated[ReminderDispatcher, Depends(get_dispatcher)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SchedulingService:
    return create_scheduling_service(session, dispatcher=dispatcher, clock=clock)


async def get_current_user_id(
    x_user_id: Annotated[int | None, Header(alias="X-User-Id")] = None,
) -> int:
    """ID пользователя из заголовка X-User-Id.

    Заголовок выставляет внешний сервис аутентификации.

    Raises:
        HTTPException: Заголовок не передан.
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=401,
            detail="X-User-Id header required",
        )
    return x_user_id
