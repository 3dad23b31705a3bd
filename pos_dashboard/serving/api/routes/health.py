"""
Health Check Endpoints

The dashboard is serviceable when the database answers and the registry
is wired. The settings store is optional: without it thresholds fall back
to the configured default, so its loss only degrades health.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel
from redis.exceptions import RedisError

from pos_dashboard.config import get_settings
from pos_dashboard.database.connection import check_database_health
from pos_dashboard.serving.settings_store import get_redis

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _settings_store_health() -> Dict[str, Any]:
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError, OSError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


def _dashboards_health(request: Request) -> Dict[str, Any]:
    registry = getattr(request.app.state, "dashboards", None)
    if registry is None:
        return {"status": "unhealthy", "error": "registry not initialized"}
    return {"status": "healthy", "active": len(registry), "capacity": registry.max_services}


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Database, dashboard registry and settings store status."""
    settings = get_settings()
    checks = {
        "database": await check_database_health(),
        "dashboards": _dashboards_health(request),
        "settings_store": await _settings_store_health(),
    }

    if any(checks[name]["status"] != "healthy" for name in ("database", "dashboards")):
        status = "unhealthy"
    elif checks["settings_store"]["status"] != "healthy":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe: 200 while the process runs."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Readiness probe: 503 until dashboards can be served."""
    if getattr(request.app.state, "dashboards", None) is None:
        response.status_code = 503
        return {"status": "not_ready", "reason": "dashboards_unavailable"}

    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
