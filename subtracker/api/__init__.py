"""API эндпоинты.

Этот модуль содержит FastAPI роутеры для:
- Health check (/health)
- Подписок владельца (/api/v1/subscriptions)
- Webhook доставки напоминаний (/api/v1/workflows/subscription/reminder-task)
"""

from subtracker.api.health import router as health_router
from subtracker.api.subscriptions import router as subscriptions_router
from subtracker.api.workflows import router as workflows_router

__all__ = ["health_router", "subscriptions_router", "workflows_router"]
