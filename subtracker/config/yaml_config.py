"""Загрузчик YAML-конфигурации.

Этот модуль загружает и валидирует config.yaml — файл с настройками,
которые можно менять без изменения кода.

Содержимое config.yaml:
- Политика напоминаний (льготный период, смещения, попытки доставки)
- Расписание периодической сверки подписок
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from subtracker.config.constants import (
    DISPATCH_RETRY_BUDGET,
    GRACE_PERIOD_DAYS,
    GRACE_PERIOD_OFFSETS,
    PRE_RENEWAL_OFFSETS,
)


class ReminderPolicyConfig(BaseModel):
    """Политика напоминаний о продлении.

    Логика работы:
    1. До даты продления (pre-renewal) — напоминания за pre_renewal_offsets дней
    2. В льготный период (grace-period) — через grace_period_offsets дней
       после даты продления
    3. После grace_period_days дней подписка истекает, напоминаний нет

    Все напоминания приходятся на полночь в часовом поясе подписки.

    Attributes:
        grace_period_days: Длительность льготного периода (дней).
        pre_renewal_offsets: За сколько дней до продления напоминать.
        grace_period_offsets: Через сколько дней после продления напоминать.
        retry_budget: Количество попыток доставки одного напоминания.
    """

    grace_period_days: int = Field(
        default=GRACE_PERIOD_DAYS,
        ge=1,
        le=60,
        description="Длительность льготного периода в днях",
    )
    pre_renewal_offsets: tuple[int, ...] = Field(
        default=PRE_RENEWAL_OFFSETS,
        description="Дни до продления, в которые отправляются напоминания",
    )
    grace_period_offsets: tuple[int, ...] = Field(
        default=GRACE_PERIOD_OFFSETS,
        description="Дни после продления (в льготный период) для напоминаний",
    )
    retry_budget: int = Field(
        default=DISPATCH_RETRY_BUDGET,
        ge=1,
        le=10,
        description="Количество попыток доставки напоминания",
    )

    @field_validator("pre_renewal_offsets", "grace_period_offsets")
    @classmethod
    def validate_offsets(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        """Проверить, что смещения положительные и без повторов."""
        if any(offset <= 0 for offset in v):
            raise ValueError("Смещения напоминаний должны быть положительными")
        if len(set(v)) != len(v):
            raise ValueError("Смещения напоминаний не должны повторяться")
        return v


class SweepConfig(BaseModel):
    """Расписание периодической сверки подписок.

    Attributes:
        hour: Час запуска сверки (UTC).
        minute: Минута запуска сверки.
        batch_limit: Максимум подписок за один проход.
        delivery_interval_seconds: Интервал опроса локальной очереди напоминаний.
    """

    hour: int = Field(default=3, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    batch_limit: int = Field(default=500, ge=1)
    delivery_interval_seconds: int = Field(default=60, ge=5)


class YamlConfig(BaseModel):
    """Главная YAML-конфигурация.

    Загружается из config.yaml при старте приложения.
    """

    reminders: ReminderPolicyConfig = ReminderPolicyConfig()
    sweep: SweepConfig = SweepConfig()


def load_yaml_config(path: Path | str = "config.yaml") -> YamlConfig:
    """Загрузить и валидировать YAML-конфигурацию.

    Args:
        path: Путь к файлу конфигурации.

    Returns:
        Валидированный объект конфигурации.
        Если файла нет — конфигурация по умолчанию.

    Raises:
        yaml.YAMLError: Некорректный YAML.
        pydantic.ValidationError: Некорректная конфигурация.
    """
    config_path = Path(path)

    if not config_path.exists():
        return YamlConfig()

    with config_path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return YamlConfig.model_validate(data)


yaml_config = load_yaml_config()
