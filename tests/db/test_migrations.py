"""Тесты для проверки статуса миграций."""

from typing import Any

from sqlalchemy import text

from subtracker.db.migrations import check_migrations, get_head_revision


def test_head_revision_from_versions_folder() -> None:
    """Тест: head-ревизия берётся из alembic/versions."""
    assert get_head_revision() == "0001"


async def test_check_migrations_without_version_table(test_engine: Any) -> None:
    """Тест: схема создана без Alembic — миграции считаются не применёнными."""
    assert await check_migrations(test_engine) is False


async def test_check_migrations_up_to_date(test_engine: Any) -> None:
    """Тест: ревизия в alembic_version совпадает с head."""
    async with test_engine.begin() as conn:
        await conn.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32))"))
        await conn.execute(text("INSERT INTO alembic_version VALUES ('0001')"))

    assert await check_migrations(test_engine) is True
