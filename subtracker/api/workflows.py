"""Webhook доставки напоминаний.

POST /api/v1/workflows/subscription/reminder-task

Вызывается очередью доставки (QStash) в момент scheduled_at или позже.
Тело — данные напоминания в виде JSON-объекта или обёртки QStash
([{"body": "<base64 json>"}]).

Для QStash вызов подписан заголовком Upstash-Signature, подпись
проверяет очередь доставки до разбора тела.

Коды ответа:
- 200 — напоминание отправлено или пропущено (неактуально)
- 400 — некорректные данные, повтор бесполезен
- 401 — подпись отсутствует или невалидна
- 503 — уведомление не отправлено, очередь должна повторить вызов
"""

from collections.abc import Callable
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request

from subtracker.api.dependencies import get_dispatch_boundary, get_dispatcher
from subtracker.core.exceptions import DeliveryFailed, MalformedReminderPayload
from subtracker.providers.dispatch import WEBHOOK_PATH
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.services.dispatch_service import ReminderDispatcher
from subtracker.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["workflows"])

THandler = TypeVar("THandler", bound=Callable[..., Any])


def typed_post(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.post."""
    return router.post(*args, **kwargs)


@typed_post(WEBHOOK_PATH)
async def reminder_task(
    request: Request,
    boundary: Annotated[BaseDispatchBoundary, Depends(get_dispatch_boundary)],
    dispatcher: Annotated[ReminderDispatcher, Depends(get_dispatcher)],
) -> dict[str, Any]:
    """Обработать доставку напоминания.

    Args:
        request: HTTP-запрос от очереди доставки.
        boundary: Очередь доставки (проверяет подпись вызова).
        dispatcher: Обработчик напоминаний.

    Returns:
        Статус обработки и причина пропуска.

    Raises:
        HTTPException: 400 при некорректных данных, 401 при невалидной
            подписи, 503 при сбое отправки.
    """
    body = await request.body()
    signature = request.headers.get("Upstash-Signature", "")
    if not await boundary.verify_webhook(body, signature):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = await request.json()
    except ValueError as e:
        logger.warning("Webhook напоминания: тело не является JSON")
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e

    try:
        outcome = await dispatcher.handle_delivery(payload)
    except MalformedReminderPayload as e:
        logger.warning("Webhook напоминания: некорректные данные: %s", e.message)
        raise HTTPException(status_code=400, detail=e.message) from e
    except DeliveryFailed as e:
        logger.warning("Webhook напоминания: отправка не удалась: %s", e)
        raise HTTPException(status_code=503, detail=str(e)) from e

    return {
        "status": outcome.status.value,
        "reason": outcome.reason,
        "dispatchId": outcome.dispatch_id,
    }
