"""Модуль базы данных.

Содержит:
- base.py — подключение к БД (engine, session)
- models_base.py — базовый класс для моделей (без загрузки settings)
- models/ — модели SQLAlchemy (таблицы)
- repositories/ — репозитории для работы с данными
- migrations.py — проверка статуса миграций Alembic при старте

Для изоляции тестов используйте:
    from subtracker.db.models_base import Base  # Без загрузки settings

Для runtime-использования с реальной БД:
    from subtracker.db.base import DatabaseSession, get_session
"""

# Не импортируем из base.py здесь, чтобы тесты могли импортировать
# Base из models_base.py без загрузки settings.
