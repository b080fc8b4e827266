"""
Health API Routes
"""

from typing import Any

from fastapi import APIRouter, Depends

from inspection_engine.core.config import settings
from inspection_engine.core.dependencies import AppContainer, get_container

router = APIRouter(prefix="/ai", tags=["health"])


@router.get("/health", summary="Vision backend reachability and failure rates")
async def ai_health(container: AppContainer = Depends(get_container)) -> dict[str, Any]:
    vision = await container.assessor.health()

    failure_rates: dict[str, Any] = {}
    for family in sorted(settings.failure_rate_thresholds):
        snapshot = container.window.snapshot(family)
        failure_rates[family] = {
            "total": snapshot.total,
            "failures": snapshot.failures,
            "rate": snapshot.rate,
            "threshold": settings.failure_rate_thresholds[family],
        }

    return {
        "status": "healthy" if vision["healthy"] else "degraded",
        "vision": vision,
        "embedding": {"model": container.embeddings.model.model_name},
        "failureRates": failure_rates,
        "recentAlerts": [
            {"name": alert.name, "title": alert.title, "severity": alert.severity.value}
            for alert in container.alerts.sent[-10:]
        ],
    }
