"""Базовый адаптер очереди доставки напоминаний.

Очередь получает данные напоминания и момент "не раньше", а затем
хотя бы один раз вызывает обработчик доставки в этот момент или позже.
Сервису неважно, как устроена очередь: локальная таблица с опросом
или внешний сервис вроде Upstash QStash.

Паттерн: Adapter (GoF) + Strategy
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any


class BaseDispatchBoundary(ABC):
    """Абстрактная очередь отложенной доставки.

    Для добавления новой очереди:
    1. Создайте класс, наследующий BaseDispatchBoundary
    2. Реализуйте schedule() и cancel()
    3. Добавьте вариант в DispatchBackend и create_dispatch_boundary()
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Название очереди (для логов и ошибок)."""

    @abstractmethod
    async def schedule(
        self,
        payload: dict[str, Any],
        not_before: datetime,
        retries: int,
    ) -> str:
        """Поставить напоминание в очередь.

        Ждёт только подтверждения постановки, не доставки.

        Args:
            payload: Данные напоминания (JSON-совместимые).
            not_before: Момент, не раньше которого доставлять (aware UTC).
            retries: Сколько раз очередь повторяет неудачную доставку.

        Returns:
            ID задачи в очереди (run_id).

        Raises:
            DeliveryFailed: Очередь недоступна (восстановимая ошибка).
        """

    @abstractmethod
    async def cancel(self, run_id: str) -> bool:
        """Отменить задачу.

        Returns:
            True если задача отменена, False если очередь её уже не знает.
        """

    async def verify_webhook(self, payload: bytes, signature: str) -> bool:
        """Проверить подлинность вызова webhook доставки.

        Локальная очередь webhook не вызывает: созревшие записи доставляет
        планировщик, а преждевременный вызов отсекает обработчик доставки.
        Внешние очереди переопределяют проверку.

        Args:
            payload: Сырое тело HTTP-запроса.
            signature: Значение заголовка подписи.

        Returns:
            True если вызов можно обрабатывать.
        """
        return True

    async def close(self) -> None:  # noqa: B027
        """Освободить ресурсы (HTTP-клиенты и т.п.)."""
