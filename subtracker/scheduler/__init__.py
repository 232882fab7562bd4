"""Планировщик задач (APScheduler).

Модуль содержит периодические задачи:
- Ежедневная сверка подписок (истечение и автопродление)
- Доставка напоминаний из локальной очереди

Планировщик запускается вместе с основным приложением
и работает как фоновая задача.
"""

from subtracker.scheduler.runner import create_scheduler, start_scheduler, stop_scheduler

__all__ = ["create_scheduler", "start_scheduler", "stop_scheduler"]
