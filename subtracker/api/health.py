"""Health check эндпоинт.

Содержит endpoint для проверки работоспособности сервиса:
- GET /health — health check для мониторинга и проверок живости
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """Проверка состояния сервиса.

    Используется для мониторинга и проверки доступности.

    Returns:
        Статус "ok" и имя активной очереди доставки напоминаний.
    """
    boundary = getattr(request.app.state, "dispatch_boundary", None)
    return {
        "status": "ok",
        "dispatch": boundary.name if boundary is not None else "none",
    }
