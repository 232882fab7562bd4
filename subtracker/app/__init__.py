"""Модуль приложения.

Содержит factory для создания FastAPI app и lifecycle management.
"""

from subtracker.app.factory import create_app
from subtracker.app.lifecycle import ApplicationLifecycle

__all__ = [
    "ApplicationLifecycle",
    "create_app",
]
