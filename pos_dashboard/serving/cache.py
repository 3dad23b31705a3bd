"""
Dashboard Metrics Cache

Holds the last good DashboardMetrics with its fetch time and decides whether
a caller gets the cached snapshot or a fresh fetch:

- Fresh snapshots (younger than the stale window) are reused unless forced
- Concurrent callers share one in-flight fetch
- A forced refresh supersedes the in-flight fetch
- Only the run holding the current generation ticket may write the snapshot
- Failures keep the previous snapshot
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Awaitable, Callable, Optional

import structlog

from pos_dashboard.config import get_settings
from pos_dashboard.errors import DashboardError, FetchCancelled
from pos_dashboard.ingestion.cancellation import CancellationToken
from pos_dashboard.ingestion.orchestrator import FetchOrchestrator
from pos_dashboard.metrics.aggregator import aggregate
from pos_dashboard.metrics.records import DashboardMetrics

logger = structlog.get_logger(__name__)

ThresholdProvider = Callable[[], Awaitable[int]]


@dataclass(frozen=True)
class CachedSnapshot:
    """The one piece of shared mutable state: replaced whole, never edited"""
    metrics: DashboardMetrics
    fetched_at: datetime
    fetched_monotonic: float


class MetricsCache:
    """
    Stale-while-valid cache in front of the fetch orchestrator and aggregator.

    Example:
        cache = MetricsCache(orchestrator, threshold_provider=store.get_low_stock_threshold)
        metrics = await cache.get_or_fetch()
        metrics = await cache.get_or_fetch(force=True)
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        threshold_provider: Optional[ThresholdProvider] = None,
        stale_seconds: Optional[float] = None,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], float] = time.monotonic,
        today: Optional[Callable[[], date]] = None,
    ):
        settings = get_settings().dashboard
        self.orchestrator = orchestrator
        self.stale_seconds = stale_seconds or settings.stale_seconds
        self._threshold_provider = threshold_provider
        self._tz = tz
        self._clock = clock
        self._today = today or self._local_today
        self._trend_days = settings.trend_days
        self._top_n = settings.top_n
        self._sort_low_stock = settings.sort_low_stock
        self._default_threshold = settings.default_low_stock_threshold

        self._snapshot: Optional[CachedSnapshot] = None
        self._generation = 0
        self._inflight: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None
        self.last_error: Optional[DashboardError] = None

    def _local_today(self) -> date:
        return datetime.now(self._tz).date()

    @property
    def metrics(self) -> Optional[DashboardMetrics]:
        return self._snapshot.metrics if self._snapshot else None

    @property
    def last_fetched_at(self) -> Optional[datetime]:
        return self._snapshot.fetched_at if self._snapshot else None

    @property
    def is_loading(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def generation(self) -> int:
        return self._generation

    def is_fresh(self) -> bool:
        """A successful fetch exists and is younger than the stale window"""
        if self._snapshot is None:
            return False
        return self._clock() - self._snapshot.fetched_monotonic < self.stale_seconds

    async def get_or_fetch(self, force: bool = False) -> Optional[DashboardMetrics]:
        """
        Return cached metrics if fresh, otherwise fetch.

        Args:
            force: Skip the freshness check and supersede any in-flight fetch

        Returns:
            The newest metrics, or the previous snapshot (possibly None) if
            the fetch was cancelled

        Raises:
            NotAuthenticated, SourceReadError, FetchTimedOut: The fetch failed;
                the previous snapshot is kept
        """
        if not force and self.is_fresh():
            logger.debug("Serving cached dashboard metrics")
            return self._snapshot.metrics

        # A cancelled run may still be unwinding; never join it
        if self.is_loading and not self._token.cancelled:
            if force:
                self._token.cancel("superseded")
                self._start()
        else:
            self._start()

        return await self._follow_inflight()

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        """Cancel the in-flight fetch; waiters get the previous snapshot"""
        if not self.is_loading:
            return False
        return self._token.cancel(reason)

    def invalidate(self) -> None:
        """Forget the snapshot so the next call fetches"""
        self._snapshot = None

    async def close(self) -> None:
        """Cancel and wait out any in-flight fetch"""
        task = self._inflight
        if task is not None and not task.done():
            self._token.cancel("closed")
            try:
                await task
            except DashboardError as e:
                logger.debug("In-flight fetch ended on close", error=str(e))

    def _start(self) -> None:
        self._generation += 1
        token = CancellationToken()
        self._token = token
        self._inflight = asyncio.create_task(
            self._fetch(self._generation, token),
            name=f"dashboard-fetch-{self._generation}",
        )

    async def _follow_inflight(self) -> Optional[DashboardMetrics]:
        while True:
            task = self._inflight
            try:
                # Shielded so one impatient caller cannot kill the shared fetch
                return await asyncio.shield(task)
            except FetchCancelled:
                if self._inflight is not task:
                    # Superseded by a newer run; follow that one instead
                    continue
                return self.metrics

    async def _threshold(self) -> int:
        if self._threshold_provider is None:
            return self._default_threshold
        return await self._threshold_provider()

    async def _fetch(self, generation: int, token: CancellationToken) -> DashboardMetrics:
        try:
            dataset = await self.orchestrator.run(token)
            threshold = await self._threshold()
        except FetchCancelled:
            raise
        except DashboardError as e:
            if generation == self._generation:
                self.last_error = e
            raise

        # A superseded run may still finish; its result must not land
        if generation != self._generation or token.cancelled:
            logger.info(
                "Discarding superseded dashboard result",
                generation=generation,
                current_generation=self._generation,
            )
            raise FetchCancelled("superseded")

        metrics = aggregate(
            dataset.payments,
            dataset.line_items,
            dataset.expenses,
            dataset.inventory,
            today=self._today(),
            global_threshold=threshold,
            tz=self._tz,
            trend_days=self._trend_days,
            top_n=self._top_n,
            sort_low_stock=self._sort_low_stock,
        )

        self._snapshot = CachedSnapshot(
            metrics=metrics,
            fetched_at=datetime.now(timezone.utc),
            fetched_monotonic=self._clock(),
        )
        self.last_error = None
        logger.info("Dashboard metrics cached", generation=generation)
        return metrics
