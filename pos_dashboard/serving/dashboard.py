"""
Dashboard Service

The interface the UI layer consumes: ``refresh(force)`` plus the current
metrics, ``is_loading`` and ``error``, with listeners notified on change.
Errors become user-facing messages here and nowhere else.
"""

from collections import OrderedDict
from datetime import datetime, tzinfo
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pos_dashboard.config import get_settings
from pos_dashboard.errors import DashboardError
from pos_dashboard.ingestion.auth import AuthContext, AuthSession
from pos_dashboard.ingestion.orchestrator import FetchOrchestrator
from pos_dashboard.ingestion.sources import DashboardSource, SqlDashboardSource
from pos_dashboard.metrics.records import DashboardMetrics
from pos_dashboard.serving.cache import MetricsCache, ThresholdProvider
from pos_dashboard.serving.settings_store import SettingsStore

logger = structlog.get_logger(__name__)

Listener = Callable[["DashboardService"], None]


class DashboardService:
    """
    One dashboard's state and refresh entry point.

    Example:
        service = DashboardService.create(source, auth)
        service.subscribe(lambda s: render(s.metrics, s.is_loading, s.error))
        await service.refresh()
    """

    def __init__(
        self,
        cache: MetricsCache,
        auth: AuthContext,
        auth_timeout_seconds: Optional[float] = None,
    ):
        self.cache = cache
        self.auth = auth
        self.auth_timeout_seconds = (
            auth_timeout_seconds or get_settings().dashboard.auth_timeout_seconds
        )
        self.error: Optional[str] = None
        self._refreshing = 0
        self._listeners: List[Listener] = []

    @classmethod
    def create(
        cls,
        source: DashboardSource,
        auth: AuthContext,
        threshold_provider: Optional[ThresholdProvider] = None,
        tz: Optional[tzinfo] = None,
    ) -> "DashboardService":
        """Wire orchestrator, cache and service from configuration"""
        settings = get_settings().dashboard
        if tz is None and settings.timezone:
            tz = ZoneInfo(settings.timezone)

        orchestrator = FetchOrchestrator(source, auth, settings.fetch_timeout_seconds)
        cache = MetricsCache(
            orchestrator,
            threshold_provider=threshold_provider,
            stale_seconds=settings.stale_seconds,
            tz=tz,
        )
        return cls(cache, auth, settings.auth_timeout_seconds)

    @property
    def metrics(self) -> Optional[DashboardMetrics]:
        return self.cache.metrics

    @property
    def last_fetched_at(self) -> Optional[datetime]:
        return self.cache.last_fetched_at

    @property
    def is_loading(self) -> bool:
        return self._refreshing > 0 or self.cache.is_loading

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns the unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error("Dashboard listener failed", error=str(e), error_type=type(e).__name__)

    async def refresh(self, force: bool = False) -> Optional[DashboardMetrics]:
        """
        Bring the dashboard up to date.

        Waits (bounded) for authentication, then serves cached or freshly
        fetched metrics. Failures leave the previous metrics in place and
        set ``error``; cancellation sets nothing.

        Returns:
            Current metrics, possibly stale or None
        """
        self._refreshing += 1
        self.error = None
        self._notify()

        try:
            await self.auth.wait_until_ready(self.auth_timeout_seconds)
            self.auth.require_session()
            await self.cache.get_or_fetch(force=force)
        except DashboardError as e:
            self.error = e.user_message()
            logger.warning(
                "Dashboard refresh failed",
                error_type=type(e).__name__,
                error=str(e),
                retryable=e.retryable,
            )
        finally:
            self._refreshing -= 1
            self._notify()

        return self.metrics

    def cancel(self) -> bool:
        """Abandon the in-flight fetch (navigation away, unmount)"""
        return self.cache.cancel()

    async def close(self) -> None:
        await self.cache.close()
        self._listeners.clear()


class DashboardRegistry:
    """
    One DashboardService per signed-in user and store.

    Used by the HTTP layer, where each request carries an already
    authenticated session. Holds at most ``max_services`` dashboards and
    drops the least recently used one beyond that; a dropped dashboard's
    in-flight fetch still completes for the request awaiting it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings_store: Optional[SettingsStore] = None,
        max_services: Optional[int] = None,
    ):
        self._source = SqlDashboardSource(session_factory)
        self._settings_store = settings_store
        self.max_services = max_services or get_settings().dashboard.max_dashboards
        self._services: "OrderedDict[Tuple[str, Optional[str]], DashboardService]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._services)

    def get(self, session: AuthSession) -> DashboardService:
        key = (session.user_id, session.store_id)
        service = self._services.get(key)
        if service is not None:
            self._services.move_to_end(key)
            return service

        service = DashboardService.create(
            self._source,
            AuthContext(session=session, ready=True),
            threshold_provider=(
                self._settings_store.get_low_stock_threshold
                if self._settings_store is not None
                else None
            ),
        )
        self._services[key] = service
        logger.debug("Dashboard created", user_id=session.user_id, store_id=session.store_id)

        while len(self._services) > self.max_services:
            (user_id, store_id), _ = self._services.popitem(last=False)
            logger.debug("Dashboard evicted", user_id=user_id, store_id=store_id)
        return service

    async def close(self) -> None:
        for service in self._services.values():
            await service.close()
        self._services.clear()
