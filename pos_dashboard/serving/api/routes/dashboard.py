"""
Dashboard API Endpoints

REST API for the POS dashboard: the current metrics snapshot plus loading
and error state, and an explicit refresh.

The caller's identity comes from the upstream auth proxy via the
``X-User-Id`` and ``X-Store-Id`` headers.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
import structlog

from pos_dashboard.config.logging import bind_dashboard_context
from pos_dashboard.errors import NotAuthenticated
from pos_dashboard.ingestion.auth import AuthSession
from pos_dashboard.metrics.records import DashboardMetrics
from pos_dashboard.serving.dashboard import DashboardRegistry, DashboardService

router = APIRouter()
logger = structlog.get_logger(__name__)


class DashboardResponse(BaseModel):
    """Dashboard state as the UI renders it"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    metrics: Optional[DashboardMetrics]
    last_fetched_at: Optional[datetime]
    is_loading: bool
    error: Optional[str]

    @classmethod
    def from_service(cls, service: DashboardService) -> "DashboardResponse":
        return cls(
            metrics=service.metrics,
            last_fetched_at=service.last_fetched_at,
            is_loading=service.is_loading,
            error=service.error,
        )


async def get_auth_session(
    x_user_id: Optional[str] = Header(None),
    x_store_id: Optional[str] = Header(None),
) -> AuthSession:
    """Session from the auth proxy headers; 401 when nobody is signed in"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail=NotAuthenticated().user_message())
    session = AuthSession(user_id=x_user_id, store_id=x_store_id or None)
    bind_dashboard_context(session.user_id, session.store_id)
    return session


def get_registry(request: Request) -> DashboardRegistry:
    registry = getattr(request.app.state, "dashboards", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Dashboard service unavailable")
    return registry


@router.get(
    "/metrics",
    response_model=DashboardResponse,
    response_model_by_alias=True,
)
async def get_metrics(
    force: bool = Query(False, description="Bypass the freshness window"),
    session: AuthSession = Depends(get_auth_session),
    registry: DashboardRegistry = Depends(get_registry),
) -> DashboardResponse:
    """
    Current dashboard metrics.

    Served from cache while fresh; otherwise fetched from all sources.
    A failed fetch still returns 200 with the previous metrics and an
    ``error`` message.
    """
    service = registry.get(session)
    await service.refresh(force=force)
    return DashboardResponse.from_service(service)


@router.post(
    "/refresh",
    response_model=DashboardResponse,
    response_model_by_alias=True,
)
async def refresh_metrics(
    session: AuthSession = Depends(get_auth_session),
    registry: DashboardRegistry = Depends(get_registry),
) -> DashboardResponse:
    """Force a refresh, superseding any fetch already in flight."""
    logger.info("Manual dashboard refresh", user_id=session.user_id, store_id=session.store_id)
    service = registry.get(session)
    await service.refresh(force=True)
    return DashboardResponse.from_service(service)
