"""
Dashboard Fetch Orchestrator

Acquires the four raw record sets for one dashboard refresh:

- All four reads start together and share one cancellation token
- The run races the reads against a hard timeout and against caller cancellation
- The first definitive read error fails the run and cancels its siblings
- Starting a run supersedes (cancels) the previous one still in flight
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from prometheus_client import Counter, Histogram

from pos_dashboard.config import get_settings
from pos_dashboard.errors import FetchCancelled, FetchTimedOut, NotAuthenticated, SourceReadError
from pos_dashboard.ingestion.auth import AuthContext, AuthSession
from pos_dashboard.ingestion.cancellation import CancellationToken
from pos_dashboard.ingestion.sources import DashboardSource, RawDataset, SourceName

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

FETCH_RUNS = Counter(
    "pos_dashboard_fetch_total",
    "Dashboard fetch runs by outcome",
    ["outcome"],
)

FETCH_DURATION = Histogram(
    "pos_dashboard_fetch_seconds",
    "Wall time of dashboard fetch runs",
)

SOURCE_READ_DURATION = Histogram(
    "pos_dashboard_source_read_seconds",
    "Wall time of individual source reads",
    ["source"],
)


class FetchState(str, Enum):
    """Lifecycle of a fetch run"""
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    FAILED = "failed"


Reader = Callable[[AuthSession, CancellationToken], Awaitable[List[Any]]]


def _retrieve_outcome(task: asyncio.Task) -> None:
    """Mark an abandoned read's outcome as seen so asyncio does not warn"""
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned read finished with error", task=task.get_name(), error=str(task.exception()))


class FetchOrchestrator:
    """
    Concurrent, cancellable, timeout-bounded fetch of the dashboard sources.

    One orchestrator serves one dashboard; at most one run is active at a time.

    Example:
        orchestrator = FetchOrchestrator(SqlDashboardSource(factory), auth)
        dataset = await orchestrator.run(CancellationToken())
    """

    def __init__(
        self,
        source: DashboardSource,
        auth: AuthContext,
        timeout_seconds: Optional[float] = None,
    ):
        self.source = source
        self.auth = auth
        self.timeout_seconds = timeout_seconds or get_settings().dashboard.fetch_timeout_seconds
        self.state = FetchState.IDLE
        self._active: Optional[CancellationToken] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the active run, if any"""
        if self._active is None:
            return False
        return self._active.cancel(reason)

    def _set_state(self, token: CancellationToken, state: FetchState) -> None:
        # Only the current run reports state
        if self._active is token:
            self.state = state

    async def run(self, token: Optional[CancellationToken] = None) -> RawDataset:
        """
        Fetch the four record sets.

        Args:
            token: Caller's cancellation token; cancelling it aborts the run

        Returns:
            RawDataset with payments, line items, expenses and inventory

        Raises:
            NotAuthenticated: No active session at start
            SourceReadError: A read failed; sibling reads were cancelled
            FetchTimedOut: The timeout elapsed first; pending reads were cancelled
            FetchCancelled: The token was cancelled or the run was superseded
        """
        token = token or CancellationToken()

        if self._active is not None and self._active is not token:
            if self._active.cancel("superseded"):
                logger.info("Superseding in-flight dashboard fetch")
        self._active = token

        try:
            return await self._run(token)
        finally:
            if self._active is token:
                self._active = None

    async def _run(self, token: CancellationToken) -> RawDataset:
        try:
            session = self.auth.require_session()
        except NotAuthenticated:
            self._set_state(token, FetchState.FAILED)
            FETCH_RUNS.labels(FetchState.FAILED.value).inc()
            logger.warning("Dashboard fetch refused, no active session")
            raise

        token.raise_if_cancelled()
        self._set_state(token, FetchState.FETCHING)

        reads = token.child()
        readers: Dict[SourceName, Reader] = {
            SourceName.PAYMENTS: self.source.read_payments,
            SourceName.TRANSACTIONS: self.source.read_line_items,
            SourceName.EXPENSES: self.source.read_expenses,
            SourceName.INVENTORY: self.source.read_inventory,
        }
        tasks: Dict[asyncio.Task, SourceName] = {
            asyncio.create_task(
                self._read(name, reader, session, reads),
                name=f"dashboard-read-{name.value}",
            ): name
            for name, reader in readers.items()
        }
        cancel_waiter = asyncio.create_task(token.wait())

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        started = time.perf_counter()
        results: Dict[SourceName, List[Any]] = {}
        outcome = FetchState.FAILED

        logger.debug("Dashboard fetch started", timeout_seconds=self.timeout_seconds, store_id=session.store_id)

        try:
            pending = set(tasks)
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise FetchTimedOut(self.timeout_seconds)

                done, _ = await asyncio.wait(
                    pending | {cancel_waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if token.cancelled:
                    raise FetchCancelled(token.reason or "cancelled")
                if not done:
                    raise FetchTimedOut(self.timeout_seconds)

                for task in done:
                    pending.discard(task)
                    results[tasks[task]] = task.result()

            outcome = FetchState.SUCCEEDED
            logger.info(
                "Dashboard fetch succeeded",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                rows={name.value: len(rows) for name, rows in results.items()},
            )
            return RawDataset(
                payments=results[SourceName.PAYMENTS],
                line_items=results[SourceName.TRANSACTIONS],
                expenses=results[SourceName.EXPENSES],
                inventory=results[SourceName.INVENTORY],
            )

        except FetchTimedOut:
            outcome = FetchState.TIMED_OUT
            reads.cancel("timed out")
            logger.warning("Dashboard fetch timed out", timeout_seconds=self.timeout_seconds)
            raise

        except FetchCancelled as e:
            outcome = FetchState.CANCELLED
            reads.cancel(e.reason)
            logger.info("Dashboard fetch cancelled", reason=e.reason)
            raise

        except SourceReadError as e:
            outcome = FetchState.FAILED
            reads.cancel("sibling read failed")
            logger.error("Dashboard fetch failed", source=e.source, error=e.message)
            raise

        except asyncio.CancelledError:
            outcome = FetchState.CANCELLED
            reads.cancel("caller cancelled")
            raise

        finally:
            cancel_waiter.cancel()
            for task in tasks:
                if not task.done():
                    task.cancel()
                    task.add_done_callback(_retrieve_outcome)
            reads.cancel("run finished")
            self._set_state(token, outcome)
            FETCH_RUNS.labels(outcome.value).inc()
            FETCH_DURATION.observe(time.perf_counter() - started)

    async def _read(
        self,
        name: SourceName,
        reader: Reader,
        session: AuthSession,
        token: CancellationToken,
    ) -> List[Any]:
        started = time.perf_counter()
        try:
            rows = await reader(session, token)
        except (FetchCancelled, SourceReadError):
            raise
        except Exception as e:
            raise SourceReadError(name.value, str(e) or type(e).__name__) from e
        finally:
            SOURCE_READ_DURATION.labels(name.value).observe(time.perf_counter() - started)
        return list(rows or [])
