"""API подписок.

Эндпоинты:
- POST /api/v1/subscriptions — создать подписку
- POST /api/v1/subscriptions/renew — продлить подписку
- GET /api/v1/subscriptions/user/{user_id} — подписки владельца
- PUT /api/v1/subscriptions/{subscription_id}/cancel — отменить подписку

Владелец определяется по заголовку X-User-Id.

Ошибки:
- 400 — неизвестная периодичность, некорректная или прошедшая дата начала
- 401 — не передан X-User-Id
- 403 — подписка или список принадлежат другому пользователю
- 404 — подписка не найдена
- 409 — подписка не в статусе ACTIVE или изменена параллельно
"""

from collections.abc import Callable
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from subtracker.api.dependencies import get_current_user_id, get_scheduling_service
from subtracker.core.exceptions import (
    InvalidFrequency,
    InvalidStartDateFormat,
    InvalidStatusTransition,
    NotAuthorized,
    PersistenceConflict,
    StartDateInPast,
    SubscriptionError,
    SubscriptionNotFound,
)
from subtracker.services.scheduling_service import (
    ScheduledSubscription,
    SchedulingService,
    SubscriptionInput,
    SubscriptionView,
)
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import format_date

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])

THandler = TypeVar("THandler", bound=Callable[..., Any])

# Соответствие ошибок подписок HTTP-статусам
ERROR_STATUS_CODES: dict[type[SubscriptionError], int] = {
    InvalidFrequency: 400,
    InvalidStartDateFormat: 400,
    StartDateInPast: 400,
    NotAuthorized: 403,
    SubscriptionNotFound: 404,
    InvalidStatusTransition: 409,
    PersistenceConflict: 409,
}


def typed_post(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.post."""
    return router.post(*args, **kwargs)


def typed_get(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.get."""
    return router.get(*args, **kwargs)


def typed_put(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.put."""
    return router.put(*args, **kwargs)


class RenewRequest(BaseModel):
    """Запрос на продление подписки."""

    subscription_id: int = Field(alias="subscriptionId")
    auto_renew: bool | None = Field(default=None, alias="autoRenew")

    model_config = {"populate_by_name": True}


def _to_http_error(error: SubscriptionError) -> HTTPException:
    status_code = 400
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.message)


def _scheduled_response(result: ScheduledSubscription) -> dict[str, Any]:
    subscription = result.subscription
    view = SubscriptionView(
        subscription=subscription,
        start_date=format_date(subscription.start_date, subscription.timezone),
        renewal_date=format_date(subscription.renewal_date, subscription.timezone),
        next_reminder=result.next_reminder,
    )
    return {
        "subscription": view.to_dict(),
        "phase": result.phase.value,
        "reminders": [reminder.to_dict() for reminder in result.reminders],
        "nextReminder": result.next_reminder,
    }


@typed_post("", status_code=201)
async def create_subscription(
    data: SubscriptionInput,
    user_id: Annotated[int, Depends(get_current_user_id)],
    service: Annotated[SchedulingService, Depends(get_scheduling_service)],
) -> dict[str, Any]:
    """Создать подписку и запланировать напоминания.

    Returns:
        Подписка, фаза, поставленные напоминания и ближайшее из них.
    """
    try:
        result = await service.create_subscription(user_id, data)
    except SubscriptionError as e:
        logger.info("Подписка не создана: user_id=%s, %s", user_id, e)
        raise _to_http_error(e) from e

    return _scheduled_response(result)


@typed_post("/renew")
async def renew_subscription(
    data: RenewRequest,
    user_id: Annotated[int, Depends(get_current_user_id)],
    service: Annotated[SchedulingService, Depends(get_scheduling_service)],
) -> dict[str, Any]:
    """Продлить подписку на один период от текущей даты продления."""
    try:
        result = await service.renew_subscription(
            data.subscription_id,
            owner_id=user_id,
            auto_renew=data.auto_renew,
        )
    except SubscriptionError as e:
        logger.info(
            "Подписка %s не продлена: user_id=%s, %s",
            data.subscription_id,
            user_id,
            e,
        )
        raise _to_http_error(e) from e

    return _scheduled_response(result)


@typed_get("/user/{owner_id}")
async def list_subscriptions(
    owner_id: int,
    user_id: Annotated[int, Depends(get_current_user_id)],
    service: Annotated[SchedulingService, Depends(get_scheduling_service)],
) -> dict[str, Any]:
    """Подписки пользователя (только свои)."""
    try:
        views = await service.list_subscriptions(owner_id, user_id)
    except SubscriptionError as e:
        raise _to_http_error(e) from e

    return {"subscriptions": [view.to_dict() for view in views]}


@typed_put("/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: int,
    user_id: Annotated[int, Depends(get_current_user_id)],
    service: Annotated[SchedulingService, Depends(get_scheduling_service)],
) -> dict[str, Any]:
    """Отменить подписку."""
    try:
        subscription = await service.cancel_subscription(subscription_id, user_id)
    except SubscriptionError as e:
        raise _to_http_error(e) from e

    return {"id": subscription.id, "status": subscription.status.value}
