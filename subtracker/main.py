"""Точка входа в приложение.

Запускает FastAPI-сервер с планировщиком сверки подписок.

Команда запуска:
    uvicorn subtracker.main:app --host 0.0.0.0 --port 8000

Или через python:
    python -m subtracker
"""

import logging

from subtracker.app import create_app
from subtracker.config.settings import settings
from subtracker.utils.logging import setup_logging

# Настраиваем логирование при импорте модуля
setup_logging(
    level=settings.logging.level,
    timezone_name=settings.logging.timezone,
)

_logger = logging.getLogger(__name__)
_logger.info("Subtracker: логирование настроено, загрузка приложения")

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
