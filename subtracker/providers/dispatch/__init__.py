"""Очереди отложенной доставки напоминаний.

Выбор очереди — DISPATCH__BACKEND (local | qstash).
"""

from typing import TYPE_CHECKING

from subtracker.config.models import DispatchBackend
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.providers.dispatch.local import LocalJobQueue
from subtracker.providers.dispatch.qstash import QStashDispatchBoundary
from subtracker.utils.logging import get_logger

if TYPE_CHECKING:
    from subtracker.config.settings import Settings

__all__ = [
    "WEBHOOK_PATH",
    "BaseDispatchBoundary",
    "LocalJobQueue",
    "QStashDispatchBoundary",
    "create_dispatch_boundary",
]

logger = get_logger(__name__)

# Путь webhook доставки напоминаний (см. api/workflows.py)
WEBHOOK_PATH = "/api/v1/workflows/subscription/reminder-task"


def create_dispatch_boundary(settings: "Settings") -> BaseDispatchBoundary:
    """Создать очередь доставки по настройкам.

    Если выбран QStash, но не хватает токена, ключа подписи или
    публичного адреса, используется локальная очередь (с предупреждением
    в логе).
    """
    dispatch = settings.dispatch

    if dispatch.backend == DispatchBackend.QSTASH:
        if dispatch.has_qstash and settings.app.base_url:
            return QStashDispatchBoundary(
                base_url=dispatch.qstash_url,
                token=dispatch.qstash_token.get_secret_value(),  # type: ignore[union-attr]
                callback_url=settings.app.base_url.rstrip("/") + WEBHOOK_PATH,
                signing_keys=tuple(
                    key.get_secret_value()
                    for key in (
                        dispatch.qstash_current_signing_key,
                        dispatch.qstash_next_signing_key,
                    )
                    if key is not None
                ),
                timeout=dispatch.timeout_seconds,
            )
        logger.warning(
            "QStash выбран, но не настроен (нужны DISPATCH__QSTASH_TOKEN, "
            "DISPATCH__QSTASH_CURRENT_SIGNING_KEY и APP__BASE_URL) — "
            "используется локальная очередь"
        )

    return LocalJobQueue()
