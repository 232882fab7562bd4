"""Доставка напоминаний.

Две стороны одного процесса:

1. Постановка (dispatch): напоминание из плана записывается в таблицу
   reminder_dispatches и передаётся в очередь доставки с моментом
   "не раньше" = scheduled_at. Повторная постановка той же пары
   (subscription_id, reminder_label) с тем же временем не создаёт второй
   задачи; с другим временем — старая задача заменяется (SUPERSEDED).

2. Доставка (handle_delivery): очередь вызывает обработчик в момент
   scheduled_at или позже. Обработчик проверяет, что напоминание ещё
   актуально (запись PENDING, подписка активна, дата продления и фаза
   не изменились), и только тогда отправляет уведомление.

Обе проверки вместе гарантируют, что одно напоминание не будет
отправлено дважды, даже если очередь не умеет отменять задачи.
"""

import base64
import binascii
import json
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.config.yaml_config import ReminderPolicyConfig
from subtracker.core.clock import Clock, SystemClock
from subtracker.core.exceptions import DeliveryFailed, MalformedReminderPayload
from subtracker.db.models.audit_entry import AuditAction
from subtracker.db.models.reminder_dispatch import DispatchStatus, ReminderDispatch
from subtracker.db.repositories.reminder_repo import ReminderDispatchRepository
from subtracker.db.repositories.subscription_repo import SubscriptionRepository
from subtracker.engine.phases import classify_phase
from subtracker.engine.planner import ReminderInstruction, ReminderType
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.providers.notifications.base import BaseNotifier, build_reminder_message
from subtracker.services.audit_service import AuditService
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import ensure_utc_aware, format_date

logger = get_logger(__name__)

# Обязательные поля данных напоминания
REQUIRED_PAYLOAD_FIELDS = (
    "subscriptionId",
    "reminderLabel",
    "userEmail",
    "userName",
    "reminderType",
)


class DispatchOutcome(StrEnum):
    """Результат постановки напоминания в очередь."""

    SCHEDULED = "scheduled"  # Поставлено в очередь
    DUPLICATE = "duplicate"  # Такое же напоминание уже ждёт доставки
    FAILED = "failed"  # Очередь недоступна, попытки исчерпаны


class DeliveryStatus(StrEnum):
    """Результат обработки доставки."""

    SENT = "sent"
    SKIPPED = "skipped"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class Recipient:
    """Получатель напоминаний."""

    email: str
    name: str


@dataclass
class DispatchResult:
    """Результат постановки одного напоминания.

    Attributes:
        instruction: Напоминание из плана.
        outcome: Результат постановки.
        dispatch_id: ID записи reminder_dispatches.
        run_id: ID задачи в очереди.
        error: Текст ошибки (для FAILED).
    """

    instruction: ReminderInstruction
    outcome: DispatchOutcome
    dispatch_id: int | None = None
    run_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Представление для журнала аудита и ответов API."""
        return {**self.instruction.to_dict(), "outcome": self.outcome.value}


@dataclass
class DeliveryOutcome:
    """Результат обработки доставки.

    Attributes:
        status: Что произошло с напоминанием.
        reason: Причина пропуска (для SKIPPED/SUPERSEDED).
        dispatch_id: ID записи reminder_dispatches (если найдена).
    """

    status: DeliveryStatus
    reason: str | None = None
    dispatch_id: int | None = None


@dataclass(frozen=True)
class ReminderPayload:
    """Проверенные данные напоминания из очереди."""

    subscription_id: int
    reminder_label: str
    user_email: str
    user_name: str
    reminder_type: ReminderType


def _unwrap_payload(raw: Any) -> Any:
    """Развернуть данные в формате QStash: [{"body": "<base64 json>"}]."""
    if isinstance(raw, list):
        if not raw or not isinstance(raw[0], dict) or "body" not in raw[0]:
            raise MalformedReminderPayload(reason="Пустой или неизвестный формат списка")
        try:
            decoded = base64.b64decode(raw[0]["body"], validate=True)
            return json.loads(decoded)
        except (binascii.Error, ValueError, TypeError) as e:
            raise MalformedReminderPayload(
                reason=f"Не удалось декодировать body: {e}"
            ) from e
    return raw


def parse_reminder_payload(raw: Any) -> ReminderPayload:
    """Проверить данные напоминания, пришедшие из очереди.

    Принимает обычный JSON-объект или обёртку QStash.

    Raises:
        MalformedReminderPayload: Нет обязательного поля или оно пустое,
            некорректный subscriptionId или reminderType.
    """
    data = _unwrap_payload(raw)
    if not isinstance(data, dict):
        raise MalformedReminderPayload(reason="Ожидался JSON-объект")

    missing = [
        name
        for name in REQUIRED_PAYLOAD_FIELDS
        if data.get(name) is None or str(data.get(name)).strip() == ""
    ]
    if missing:
        raise MalformedReminderPayload(missing)

    try:
        subscription_id = int(data["subscriptionId"])
    except (TypeError, ValueError) as e:
        raise MalformedReminderPayload(
            reason=f"Некорректный subscriptionId: {data['subscriptionId']!r}"
        ) from e

    try:
        reminder_type = ReminderType(str(data["reminderType"]))
    except ValueError as e:
        raise MalformedReminderPayload(
            reason=f"Некорректный reminderType: {data['reminderType']!r}"
        ) from e

    return ReminderPayload(
        subscription_id=subscription_id,
        reminder_label=str(data["reminderLabel"]),
        user_email=str(data["userEmail"]),
        user_name=str(data["userName"]),
        reminder_type=reminder_type,
    )


def payload_from_dispatch(dispatch: ReminderDispatch) -> dict[str, Any]:
    """Данные напоминания для записи reminder_dispatches."""
    return {
        "subscriptionId": dispatch.subscription_id,
        "reminderLabel": dispatch.reminder_label,
        "userEmail": dispatch.recipient_email,
        "userName": dispatch.recipient_name,
        "reminderType": ReminderType(dispatch.reminder_type).value,
    }


class ReminderDispatcher:
    """Постановка напоминаний в очередь и обработка их доставки.

    Единственный компонент, который обращается к очереди доставки
    и к отправителю уведомлений.

    Attributes:
        _session: Асинхронная сессия SQLAlchemy.
        _boundary: Очередь доставки.
        _notifier: Отправитель уведомлений.
        _clock: Источник текущего времени.
        _policy: Политика напоминаний (попытки, льготный период).
    """

    def __init__(
        self,
        session: AsyncSession,
        boundary: BaseDispatchBoundary,
        notifier: BaseNotifier,
        *,
        clock: Clock | None = None,
        policy: ReminderPolicyConfig | None = None,
    ) -> None:
        self._session = session
        self._boundary = boundary
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._policy = policy or ReminderPolicyConfig()
        self._repo = ReminderDispatchRepository(session)
        self._subscription_repo = SubscriptionRepository(session)
        self._audit = AuditService(session, self._clock)

    @property
    def retry_budget(self) -> int:
        return self._policy.retry_budget

    # ==========================================================================
    # ПОСТАНОВКА В ОЧЕРЕДЬ
    # ==========================================================================

    async def dispatch(
        self,
        instruction: ReminderInstruction,
        recipient: Recipient,
        *,
        renewal_date: datetime,
        timezone_name: str,
    ) -> DispatchResult:
        """Поставить напоминание в очередь (идемпотентно).

        Сервис не делает commit: запись фиксирует вызывающий.

        Args:
            instruction: Напоминание из плана.
            recipient: Получатель.
            renewal_date: Дата продления, для которой построен план.
            timezone_name: Часовой пояс подписки.

        Returns:
            Результат постановки. Исчерпание попыток не выбрасывает
            исключение: запись переводится в FAILED, результат — FAILED.
        """
        existing = await self._repo.get_pending(
            instruction.subscription_id, instruction.reminder_label
        )
        if existing is not None:
            same_timing = ensure_utc_aware(existing.scheduled_at) == ensure_utc_aware(
                instruction.scheduled_at
            ) and ensure_utc_aware(existing.renewal_date) == ensure_utc_aware(
                renewal_date
            )
            if same_timing:
                logger.debug(
                    "Напоминание %s подписки %s уже ждёт доставки (id=%s)",
                    instruction.reminder_label,
                    instruction.subscription_id,
                    existing.id,
                )
                return DispatchResult(
                    instruction=instruction,
                    outcome=DispatchOutcome.DUPLICATE,
                    dispatch_id=existing.id,
                    run_id=existing.run_id,
                )
            await self._supersede(existing, reason="replanned")

        dispatch = await self._repo.create(
            subscription_id=instruction.subscription_id,
            reminder_label=instruction.reminder_label,
            reminder_type=instruction.reminder_type,
            scheduled_at=instruction.scheduled_at,
            renewal_date=renewal_date,
            timezone=timezone_name,
            recipient_email=recipient.email,
            recipient_name=recipient.name,
        )
        payload = payload_from_dispatch(dispatch)

        last_error: DeliveryFailed | None = None
        for attempt in range(1, self.retry_budget + 1):
            try:
                run_id = await self._boundary.schedule(
                    payload, instruction.scheduled_at, self.retry_budget
                )
            except DeliveryFailed as e:
                last_error = e
                logger.warning(
                    "Не удалось поставить напоминание %s подписки %s в очередь "
                    "(попытка %s/%s): %s",
                    instruction.reminder_label,
                    instruction.subscription_id,
                    attempt,
                    self.retry_budget,
                    e,
                )
                continue

            await self._repo.set_run_id(dispatch, run_id)
            return DispatchResult(
                instruction=instruction,
                outcome=DispatchOutcome.SCHEDULED,
                dispatch_id=dispatch.id,
                run_id=run_id,
            )

        error = str(last_error) if last_error else "unknown"
        await self._repo.mark(dispatch, DispatchStatus.FAILED, reason=error)
        logger.error(
            "Напоминание %s подписки %s не поставлено в очередь: %s",
            instruction.reminder_label,
            instruction.subscription_id,
            error,
        )
        return DispatchResult(
            instruction=instruction,
            outcome=DispatchOutcome.FAILED,
            dispatch_id=dispatch.id,
            error=error,
        )

    async def supersede_pending(
        self,
        subscription_id: int,
        *,
        keep_labels: Collection[str] = (),
        reason: str = "superseded",
    ) -> int:
        """Заменить ожидающие напоминания подписки.

        Args:
            subscription_id: ID подписки.
            keep_labels: Метки, которые не трогать (они есть в новом плане).
            reason: Причина (сохраняется в last_error).

        Returns:
            Количество заменённых напоминаний.
        """
        superseded = 0
        for dispatch in await self._repo.list_pending_for_subscription(subscription_id):
            if dispatch.reminder_label in keep_labels:
                continue
            await self._supersede(dispatch, reason=reason)
            superseded += 1

        if superseded:
            logger.info(
                "Подписка %s: заменено ожидающих напоминаний: %s (%s)",
                subscription_id,
                superseded,
                reason,
            )
        return superseded

    async def _supersede(self, dispatch: ReminderDispatch, *, reason: str) -> None:
        await self._repo.mark(dispatch, DispatchStatus.SUPERSEDED, reason=reason)
        if dispatch.run_id and not await self._boundary.cancel(dispatch.run_id):
            # Обработчик доставки всё равно не найдёт PENDING-запись
            logger.debug(
                "Очередь %s не отменила задачу %s", self._boundary.name, dispatch.run_id
            )

    # ==========================================================================
    # ДОСТАВКА
    # ==========================================================================

    async def handle_delivery(self, raw_payload: Any) -> DeliveryOutcome:
        """Обработать доставку напоминания из очереди.

        Args:
            raw_payload: Данные напоминания (JSON или обёртка QStash).

        Returns:
            Результат обработки.

        Raises:
            MalformedReminderPayload: Данные некорректны (журнал не пишется).
            DeliveryFailed: Отправитель не принял уведомление — очередь
                должна повторить доставку.
        """
        payload = parse_reminder_payload(raw_payload)

        dispatch = await self._repo.get_pending(
            payload.subscription_id, payload.reminder_label
        )
        if dispatch is None:
            logger.info(
                "Напоминание %s подписки %s не ожидает доставки — пропуск",
                payload.reminder_label,
                payload.subscription_id,
            )
            return DeliveryOutcome(DeliveryStatus.SKIPPED, reason="not-pending")

        now = self._clock.now()
        # Раньше срока не отправляем, запись остаётся PENDING до настоящей доставки
        if ensure_utc_aware(dispatch.scheduled_at) > now:
            logger.warning(
                "Напоминание %s подписки %s запрошено раньше срока (%s) — пропуск",
                payload.reminder_label,
                payload.subscription_id,
                dispatch.scheduled_at,
            )
            return DeliveryOutcome(DeliveryStatus.SKIPPED, "not-due", dispatch.id)

        subscription = await self._subscription_repo.get_by_id(payload.subscription_id)
        if subscription is None or not subscription.is_active:
            reason = "subscription-inactive"
            await self._repo.mark(dispatch, DispatchStatus.SKIPPED, reason=reason)
            await self._session.commit()
            return DeliveryOutcome(DeliveryStatus.SKIPPED, reason, dispatch.id)

        if ensure_utc_aware(subscription.renewal_date) != ensure_utc_aware(
            dispatch.renewal_date
        ):
            reason = "renewal-date-changed"
            await self._repo.mark(dispatch, DispatchStatus.SUPERSEDED, reason=reason)
            await self._session.commit()
            return DeliveryOutcome(DeliveryStatus.SUPERSEDED, reason, dispatch.id)

        phase = classify_phase(
            now,
            subscription.renewal_date,
            subscription.timezone,
            grace_period_days=self._policy.grace_period_days,
        )
        if phase.value != payload.reminder_type.value:
            reason = f"phase-mismatch:{phase.value}"
            await self._repo.mark(dispatch, DispatchStatus.SKIPPED, reason=reason)
            await self._session.commit()
            return DeliveryOutcome(DeliveryStatus.SKIPPED, reason, dispatch.id)

        message = build_reminder_message(
            subscription_id=subscription.id,
            subscription_name=subscription.name,
            renewal_day=format_date(subscription.renewal_date, subscription.timezone)
            or "",
            reminder_label=payload.reminder_label,
            reminder_type=payload.reminder_type,
            recipient_email=payload.user_email,
            recipient_name=payload.user_name,
        )

        try:
            await self._notifier.send(message)
        except DeliveryFailed as e:
            await self._record_delivery_failure(dispatch, str(e))
            raise
        except Exception as e:
            await self._record_delivery_failure(dispatch, str(e))
            raise DeliveryFailed(str(e), channel="notifier", original_error=e) from e

        await self._repo.mark(dispatch, DispatchStatus.SENT, sent_at=now)
        await self._audit.append(
            subscription.id,
            AuditAction.REMINDER_SENT,
            {
                "label": payload.reminder_label,
                "type": payload.reminder_type.value,
                "recipient": payload.user_email,
                "dispatchId": dispatch.id,
            },
        )
        await self._session.commit()

        logger.info(
            "Напоминание %s отправлено: подписка %s, получатель %s",
            payload.reminder_label,
            subscription.id,
            payload.user_email,
        )
        return DeliveryOutcome(DeliveryStatus.SENT, dispatch_id=dispatch.id)

    async def _record_delivery_failure(self, dispatch: ReminderDispatch, error: str) -> None:
        exhausted = dispatch.attempts + 1 >= self.retry_budget
        await self._repo.record_failure(dispatch, error, exhausted=exhausted)
        await self._session.commit()
