"""Настройка логирования.

Два канала вывода:
1. Консоль (stdout) — с цветной подсветкой уровней в терминале
2. Файл с ротацией — история работы сервиса (data/logs/app.log)

Компактный формат логов:
    26-10-19 03:00:01 | INFO | services.sweep_service | Сверка завершена
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler

from typing_extensions import override

from subtracker.config.constants import DATA_DIR
from subtracker.utils.timezone import get_timezone

# Папка для логов
LOGS_DIR = DATA_DIR / "logs"

# Префикс пакета, который убирается из имени логгера в консоли
PACKAGE_PREFIX = "subtracker."

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%y-%m-%d %H:%M:%S"


class AnsiColors:
    """ANSI escape-коды для цветного вывода в терминале."""

    RESET = "\033[0m"

    DEBUG = "\033[36m"  # голубой
    INFO = "\033[32m"  # зелёный
    WARNING = "\033[33m"  # жёлтый
    ERROR = "\033[31m"  # красный
    CRITICAL = "\033[35m"  # пурпурный


LEVEL_COLORS: dict[str, str] = {
    "DEBUG": AnsiColors.DEBUG,
    "INFO": AnsiColors.INFO,
    "WARNING": AnsiColors.WARNING,
    "ERROR": AnsiColors.ERROR,
    "CRITICAL": AnsiColors.CRITICAL,
}


class TimezoneFormatter(logging.Formatter):
    """Форматтер логов с поддержкой часового пояса.

    Стандартный logging.Formatter использует локальное время системы,
    а сервис работает с подписками из разных часовых поясов —
    удобнее видеть время логов в одном настроенном поясе.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        timezone_name: str = "UTC",
    ) -> None:
        super().__init__(fmt, datefmt)
        self.timezone = get_timezone(timezone_name)

    @override
    def formatTime(
        self,
        record: logging.LogRecord,
        datefmt: str | None = None,
    ) -> str:
        """Отформатировать время записи в настроенном часовом поясе."""
        dt = datetime.fromtimestamp(record.created, tz=self.timezone)

        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime(self.default_time_format)


class ColoredFormatter(TimezoneFormatter):
    """Форматтер логов с цветной подсветкой уровней.

    Префикс "subtracker." убирается из имени модуля для компактности.
    Цвета нужны только в терминале, в файл пишет обычный TimezoneFormatter.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        timezone_name: str = "UTC",
        use_colors: bool = True,
    ) -> None:
        super().__init__(fmt, datefmt, timezone_name)
        self.use_colors = use_colors

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Отформатировать запись лога с цветной подсветкой.

        Args:
            record: Запись лога.

        Returns:
            Отформатированная строка (с ANSI-кодами, если цвета включены).
        """
        original_name = record.name
        record.name = record.name.removeprefix(PACKAGE_PREFIX)

        formatted = super().format(record)

        # Другие handler-ы должны видеть исходное имя
        record.name = original_name

        if not self.use_colors:
            return formatted

        level_color = LEVEL_COLORS.get(record.levelname, "")
        if level_color:
            colored_level = f"{level_color}{record.levelname}{AnsiColors.RESET}"
            formatted = formatted.replace(
                f"| {record.levelname} |",
                f"| {colored_level} |",
            )

        return formatted


def _should_use_colors() -> bool:
    """Определить, поддерживает ли терминал цвета.

    Учитывает стандарт NO_COLOR (https://no-color.org/) и то,
    является ли stdout терминалом.
    """
    if os.environ.get("NO_COLOR"):
        return False

    # В Docker/CI/при перенаправлении в файл isatty() вернёт False
    return sys.stdout.isatty()


def setup_logging(level: str = "INFO", timezone_name: str = "UTC") -> None:
    """Настроить логирование приложения.

    Логи выводятся в консоль и сохраняются в файл с ротацией
    (data/logs/app.log, максимум 5 МБ, 3 резервных копии).
    Логи uvicorn переводятся на тот же формат.

    Args:
        level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        timezone_name: Часовой пояс для отображения времени в логах.
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    console_formatter = ColoredFormatter(
        LOG_FORMAT,
        datefmt=DATE_FORMAT,
        timezone_name=timezone_name,
        use_colors=_should_use_colors(),
    )
    file_formatter = TimezoneFormatter(
        LOG_FORMAT, datefmt=DATE_FORMAT, timezone_name=timezone_name
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        LOGS_DIR / "app.log",
        maxBytes=5 * 1024 * 1024,  # 5 МБ
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    # ===========================================================================
    # Унифицированный формат для Uvicorn
    # ===========================================================================
    for name in ("uvicorn.error", "uvicorn.access"):
        uvicorn_child = logging.getLogger(name)
        uvicorn_child.handlers = [console_handler, file_handler]
        uvicorn_child.propagate = False

    uvicorn_logger = logging.getLogger("uvicorn")
    uvicorn_logger.handlers = []
    uvicorn_logger.propagate = False

    # Шум внешних библиотек: ошибки всё равно видны
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Получить логгер с указанным именем.

    Args:
        name: Имя логгера (обычно __name__).

    Returns:
        Экземпляр логгера.
    """
    return logging.getLogger(name)
