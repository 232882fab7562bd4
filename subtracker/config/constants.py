"""Константы приложения."""

from pathlib import Path

# ==============================================================================
# ПУТИ К ФАЙЛАМ И ДИРЕКТОРИЯМ
# ==============================================================================

# Корень проекта (где лежит pyproject.toml)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Папка для данных (база, логи)
#
# В контейнере /data, персистентный volume (абсолютный путь обязателен!)
# Локально ./data, папка в корне проекта
_CONTAINER_DATA = Path("/data")
DATA_DIR = _CONTAINER_DATA if _CONTAINER_DATA.exists() else PROJECT_ROOT / "data"

# Создаём директорию если не существует (важно для первого запуска)
DATA_DIR.mkdir(parents=True, exist_ok=True)

# ==============================================================================
# ПОЛИТИКА НАПОМИНАНИЙ ПО УМОЛЧАНИЮ
# ==============================================================================
#
# Значения можно переопределить в config.yaml (секция reminders).

# Длительность льготного периода после даты продления (дней).
# В течение этого периода подписку ещё можно продлить,
# после этого она переходит в EXPIRED.
GRACE_PERIOD_DAYS = 7

# За сколько дней до продления отправляются напоминания
PRE_RENEWAL_OFFSETS: tuple[int, ...] = (7, 5, 2, 1)

# Через сколько дней после даты продления отправляются напоминания
# в льготный период
GRACE_PERIOD_OFFSETS: tuple[int, ...] = (1, 3, 5)

# Количество попыток доставки одного напоминания
DISPATCH_RETRY_BUDGET = 3

# Часовой пояс по умолчанию для владельцев и подписок
DEFAULT_TIMEZONE = "UTC"
