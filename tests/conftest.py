"""Общие фикстуры для всех тестов.

Этот файл содержит pytest-фикстуры, которые используются во всех тестах:
- Тестовая БД SQLite в памяти (для изоляции тестов)
- Асинхронные сессии SQLAlchemy
- Замороженные часы
- Тестовые очередь доставки и отправитель уведомлений (записывают вызовы)
- Фабрики сервисов подписок
- Подпись тела запроса в формате QStash
"""

import base64
import hashlib
import time
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any

import jwt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from typing_extensions import override

import subtracker.db.models  # noqa: F401  (регистрация всех таблиц в metadata)
from subtracker.config.yaml_config import ReminderPolicyConfig
from subtracker.core.clock import FrozenClock
from subtracker.core.exceptions import DeliveryFailed
from subtracker.db.models.user import User
from subtracker.db.models_base import Base
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.providers.notifications.base import BaseNotifier, ReminderMessage
from subtracker.services.dispatch_service import ReminderDispatcher
from subtracker.services.scheduling_service import SchedulingService
from subtracker.services.sweep_service import SweepService

# ==============================================================================
# ТЕСТОВЫЕ АДАПТЕРЫ
# ==============================================================================


class RecordingBoundary(BaseDispatchBoundary):
    """Очередь доставки, которая запоминает вызовы.

    Attributes:
        scheduled: Поставленные задачи (payload, not_before, retries).
        cancelled: ID отменённых задач.
        failures_left: Сколько ближайших вызовов schedule() завершить ошибкой.
    """

    def __init__(self, failures_left: int = 0) -> None:
        self.scheduled: list[tuple[dict[str, Any], datetime, int]] = []
        self.cancelled: list[str] = []
        self.failures_left = failures_left
        self.schedule_calls = 0

    @property
    @override
    def name(self) -> str:
        return "recording"

    @override
    async def schedule(
        self,
        payload: dict[str, Any],
        not_before: datetime,
        retries: int,
    ) -> str:
        self.schedule_calls += 1
        if self.failures_left > 0:
            self.failures_left -= 1
            raise DeliveryFailed("Очередь недоступна", channel="recording")
        self.scheduled.append((payload, not_before, retries))
        return f"run-{len(self.scheduled)}"

    @override
    async def cancel(self, run_id: str) -> bool:
        self.cancelled.append(run_id)
        return True


class RecordingNotifier(BaseNotifier):
    """Отправитель уведомлений, который запоминает сообщения.

    Attributes:
        sent: Отправленные сообщения.
        error: Исключение, которое выбрасывать при отправке (если задано).
    """

    def __init__(self) -> None:
        self.sent: list[ReminderMessage] = []
        self.error: Exception | None = None

    @override
    async def send(self, message: ReminderMessage) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(message)


# ==============================================================================
# БАЗА ДАННЫХ
# ==============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[Any, None]:
    """Создать тестовый движок SQLAlchemy.

    Использует SQLite в памяти (:memory:) для полной изоляции тестов.
    Каждый тест получает чистую БД без данных из предыдущих тестов.

    Yields:
        Асинхронный движок SQLAlchemy для тестовой БД.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,  # Отключаем логи SQL в тестах
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: Any) -> AsyncGenerator[AsyncSession, None]:
    """Создать асинхронную сессию БД для теста.

    Args:
        test_engine: Тестовый движок SQLAlchemy из фикстуры test_engine.

    Yields:
        Асинхронная сессия для работы с тестовой БД.
    """
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# ==============================================================================
# ДАННЫЕ И СЕРВИСЫ
# ==============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    """Часы, замороженные на 2025-05-01 00:00 UTC."""
    return FrozenClock(datetime(2025, 5, 1, tzinfo=UTC))


@pytest.fixture
def policy() -> ReminderPolicyConfig:
    """Политика напоминаний по умолчанию (7 дней льготы, 7/5/2/1, 1/3/5)."""
    return ReminderPolicyConfig()


@pytest.fixture
def boundary() -> RecordingBoundary:
    return RecordingBoundary()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Создать владельца подписок (часовой пояс UTC)."""
    user = User(email="owner@example.com", name="Анна", timezone="UTC")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Создать второго пользователя (для проверок доступа)."""
    user = User(email="other@example.com", name="Борис", timezone="Europe/Moscow")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def dispatcher(
    db_session: AsyncSession,
    boundary: RecordingBoundary,
    notifier: RecordingNotifier,
    clock: FrozenClock,
    policy: ReminderPolicyConfig,
) -> ReminderDispatcher:
    return ReminderDispatcher(
        db_session, boundary, notifier, clock=clock, policy=policy
    )


@pytest.fixture
def scheduling_service(
    db_session: AsyncSession,
    dispatcher: ReminderDispatcher,
    clock: FrozenClock,
    policy: ReminderPolicyConfig,
) -> SchedulingService:
    return SchedulingService(db_session, dispatcher, clock=clock, policy=policy)


@pytest.fixture
def sweep_service(
    db_session: AsyncSession,
    scheduling_service: SchedulingService,
    dispatcher: ReminderDispatcher,
    clock: FrozenClock,
    policy: ReminderPolicyConfig,
) -> SweepService:
    return SweepService(
        db_session,
        scheduling_service,
        dispatcher,
        clock=clock,
        policy=policy,
        batch_limit=100,
    )


@pytest.fixture
def sign_qstash() -> Callable[..., str]:
    """Подписать тело запроса так, как QStash подписывает вызов webhook.

    Returns:
        Функция sign(body, url, key, **claims) -> значение Upstash-Signature.
        Через claims можно подменить любое поле JWT (exp, iss, sub, body).
    """

    def sign(body: bytes, url: str, key: str, **claims: Any) -> str:
        now = int(time.time())
        body_hash = base64.urlsafe_b64encode(hashlib.sha256(body).digest()).decode()
        token_claims = {
            "iss": "Upstash",
            "sub": url,
            "iat": now,
            "nbf": now,
            "exp": now + 300,
            "jti": "jwt_test",
            "body": body_hash,
            **claims,
        }
        return jwt.encode(token_claims, key, algorithm="HS256")

    return sign
