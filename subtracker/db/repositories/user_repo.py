"""Репозиторий для работы с владельцами подписок.

Сервис подписок только читает пользователей. Создание нужно
сервису идентификации и тестам.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from subtracker.config.constants import DEFAULT_TIMEZONE
from subtracker.db.models.user import User


class UserRepository:
    """Репозиторий для работы с пользователями.

    Пример использования:
        async with DatabaseSession() as session:
            repo = UserRepository(session)
            user = await repo.get_by_id(42)
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        """Найти пользователя по ID.

        Returns:
            User если найден, None если не существует.
        """
        return await self._session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        """Найти пользователя по адресу (без учёта регистра)."""
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        name: str,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> User:
        """Создать пользователя.

        Args:
            email: Адрес (хранится в нижнем регистре).
            name: Имя.
            timezone: Часовой пояс IANA.

        Returns:
            Созданный пользователь.
        """
        user = User(email=email.strip().lower(), name=name, timezone=timezone)
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user)
        return user
