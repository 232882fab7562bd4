"""Модуль конфигурации.

Для доступа к настройкам используйте:
    from subtracker.config.settings import settings

Для использования только классов настроек (без загрузки .env):
    from subtracker.config.models import DispatchSettings

Политика напоминаний (config.yaml):
    from subtracker.config.yaml_config import yaml_config
"""

# Не импортируем settings здесь, чтобы тесты могли импортировать
# другие модули из subtracker.config без загрузки .env файла.
