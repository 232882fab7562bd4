"""Централизованные исключения приложения.

Этот модуль содержит ВСЕ кастомные исключения проекта.
Удобный импорт: `from subtracker.core.exceptions import SomeError`

Организация исключений по доменам:
- Database: Ошибки работы с БД
- Subscriptions: Ошибки жизненного цикла подписок
- Reminders: Ошибки планирования и доставки напоминаний
"""

from datetime import datetime

from typing_extensions import override

# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================
# Исключения для работы с базой данных.
# Иерархия: DatabaseError -> DatabaseConnectionError, DatabaseOperationError
# =============================================================================


class DatabaseError(Exception):
    """Базовое исключение для ошибок работы с БД.

    Используется как родительский класс для всех ошибок БД.
    Может быть потенциально восстановимым (retry) в зависимости от причины.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        """Создать исключение БД.

        Args:
            message: Описание ошибки.
            retryable: Можно ли повторить операцию (True для временных сбоев).
        """
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class DatabaseConnectionError(DatabaseError):
    """Ошибка подключения к базе данных.

    Потенциально восстановимая — может помочь retry через несколько секунд.
    """

    def __init__(self, original_error: Exception) -> None:
        super().__init__(
            f"Не удалось подключиться к БД: {original_error}",
            retryable=True,
        )
        self.original_error = original_error


class DatabaseOperationError(DatabaseError):
    """Ошибка выполнения операции с БД.

    Может быть восстановимой (deadlock, timeout) или невосстановимой
    (constraint violation).
    """

    def __init__(
        self, operation: str, original_error: Exception, retryable: bool = False
    ) -> None:
        """Создать исключение об ошибке операции БД.

        Args:
            operation: Название операции (advance_renewal, append, и т.д.).
            original_error: Оригинальное исключение от SQLAlchemy.
            retryable: Можно ли повторить операцию.
        """
        super().__init__(
            f"Ошибка выполнения операции '{operation}': {original_error}",
            retryable=retryable,
        )
        self.operation = operation
        self.original_error = original_error


# =============================================================================
# SUBSCRIPTION EXCEPTIONS
# =============================================================================
# Исключения жизненного цикла подписок.
# Ошибки валидации и авторизации выбрасываются ДО любых изменений в БД.
# =============================================================================


class SubscriptionError(Exception):
    """Базовое исключение для ошибок подписок.

    Attributes:
        message: Описание ошибки.
        retryable: Можно ли повторить операцию без изменений.
    """

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidFrequency(SubscriptionError):
    """Неизвестная периодичность подписки.

    Допустимые значения: daily, weekly, monthly, yearly.
    """

    def __init__(self, frequency: object) -> None:
        super().__init__(
            f"Недопустимая периодичность: {frequency!r}. "
            "Допустимые значения: daily, weekly, monthly, yearly"
        )
        self.frequency = frequency


class InvalidStartDateFormat(SubscriptionError):
    """Дата начала не распознана."""

    def __init__(self, raw_value: str) -> None:
        super().__init__(f"Некорректный формат даты начала: {raw_value!r}")
        self.raw_value = raw_value


class StartDateInPast(SubscriptionError):
    """Дата начала раньше сегодняшнего дня в часовом поясе подписки."""

    def __init__(self, start_day: object, today: object) -> None:
        super().__init__(
            f"Дата начала {start_day} в прошлом (сегодня {today})"
        )
        self.start_day = start_day
        self.today = today


class SubscriptionNotFound(SubscriptionError):
    """Подписка не найдена."""

    def __init__(self, subscription_id: int) -> None:
        super().__init__(f"Подписка с id={subscription_id} не найдена")
        self.subscription_id = subscription_id


class NotAuthorized(SubscriptionError):
    """Пользователь не является владельцем подписки."""

    def __init__(self, user_id: int | None, subscription_id: int | None = None) -> None:
        if subscription_id is None:
            message = f"Пользователь {user_id} не имеет доступа к этим данным"
        else:
            message = (
                f"Пользователь {user_id} не является владельцем "
                f"подписки {subscription_id}"
            )
        super().__init__(message)
        self.user_id = user_id
        self.subscription_id = subscription_id


class InvalidStatusTransition(SubscriptionError):
    """Недопустимый переход статуса.

    Разрешены только переходы из ACTIVE:
    active → active (продление), active → cancelled, active → expired.
    """

    def __init__(self, subscription_id: int, status: str, action: str) -> None:
        super().__init__(
            f"Подписка {subscription_id} в статусе {status!r} "
            f"не допускает действие {action!r}"
        )
        self.subscription_id = subscription_id
        self.status = status
        self.action = action


class PersistenceConflict(SubscriptionError):
    """Подписка изменена другим процессом между чтением и записью.

    Возникает при условном обновлении даты продления, если дата продления
    или статус уже не совпадают с прочитанными. Повтор после перечитывания
    подписки безопасен.
    """

    retryable = True

    def __init__(self, subscription_id: int, expected_renewal_date: datetime) -> None:
        super().__init__(
            f"Подписка {subscription_id} изменена параллельно "
            f"(ожидалась дата продления {expected_renewal_date.isoformat()})"
        )
        self.subscription_id = subscription_id
        self.expected_renewal_date = expected_renewal_date


# =============================================================================
# REMINDER EXCEPTIONS
# =============================================================================
# Исключения доставки напоминаний (граница планировщика и уведомлений).
# =============================================================================


class MalformedReminderPayload(SubscriptionError):
    """Некорректные данные напоминания, пришедшие в webhook.

    Attributes:
        missing_fields: Отсутствующие или пустые поля.
    """

    def __init__(self, missing_fields: list[str] | None = None, reason: str = "") -> None:
        self.missing_fields = missing_fields or []
        if self.missing_fields:
            message = "Отсутствуют обязательные поля: " + ", ".join(self.missing_fields)
        else:
            message = reason or "Некорректные данные напоминания"
        super().__init__(message)


class DeliveryFailed(SubscriptionError):
    """Не удалось поставить напоминание в очередь или отправить его.

    Восстановимая ошибка — граница доставки повторит попытку.

    Attributes:
        channel: Где произошёл сбой (qstash, local, notifier).
        original_error: Оригинальное исключение (если есть).
    """

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        channel: str,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.channel = channel
        self.original_error = original_error

    @override
    def __str__(self) -> str:
        """Строковое представление ошибки."""
        return f"[{self.channel}] {self.message}"
