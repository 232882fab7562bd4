"""Проверка статуса миграций базы данных.

Используется при старте приложения: если схема БД отстаёт от файлов
миграций, в лог пишется предупреждение с командой для обновления.

Как работает проверка:
1. Текущая ревизия — из таблицы alembic_version в БД
2. Последняя ревизия (head) — из alembic/versions через ScriptDirectory
3. Если они не совпадают — предупреждение
"""

from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine

from subtracker.utils.logging import get_logger

logger = get_logger(__name__)

# Папка alembic/ относительно корня проекта
ALEMBIC_DIR = Path(__file__).parent.parent.parent / "alembic"


def get_head_revision(script_location: Path = ALEMBIC_DIR) -> str | None:
    """Получить последнюю ревизию из файлов миграций.

    Args:
        script_location: Папка окружения Alembic (с подпапкой versions).

    Returns:
        ID head-ревизии или None, если миграций нет.
    """
    if not (script_location / "versions").exists():
        logger.warning("Папка миграций не найдена: %s", script_location / "versions")
        return None

    config = Config()
    config.set_main_option("script_location", str(script_location))
    heads = ScriptDirectory.from_config(config).get_heads()

    if len(heads) > 1:
        logger.warning("Обнаружено несколько head-ревизий: %s", heads)
        return sorted(heads)[0]

    return heads[0] if heads else None


async def get_current_revision(engine: AsyncEngine) -> str | None:
    """Получить текущую ревизию из таблицы alembic_version.

    Returns:
        ID текущей ревизии или None, если миграции не применялись.
    """
    async with engine.connect() as conn:
        try:
            result = await conn.execute(text("SELECT version_num FROM alembic_version"))
            row = result.fetchone()
            return row[0] if row else None
        except (OperationalError, ProgrammingError):
            # SQLite: no such table, PostgreSQL: relation does not exist
            return None


async def check_migrations(engine: AsyncEngine) -> bool:
    """Проверить статус миграций и предупредить, если схема устарела.

    Args:
        engine: Асинхронный SQLAlchemy engine.

    Returns:
        True если схема БД соответствует последней миграции.
    """
    head_revision = get_head_revision()
    current_revision = await get_current_revision(engine)

    if head_revision is None:
        logger.warning("Файлы миграций не найдены")
        return False

    if current_revision is None:
        logger.warning(
            "МИГРАЦИИ НЕ ПРИМЕНЕНЫ! База данных не инициализирована.\n"
            "   Выполните: alembic upgrade head"
        )
        return False

    if current_revision != head_revision:
        logger.warning(
            "МИГРАЦИИ НЕ АКТУАЛЬНЫ! Текущая ревизия: %s, последняя: %s.\n"
            "   Выполните: alembic upgrade head",
            current_revision,
            head_revision,
        )
        return False

    logger.debug("Миграции актуальны (ревизия: %s)", current_revision)
    return True
