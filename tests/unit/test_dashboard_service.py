"""
Unit Tests - Dashboard Service
"""
import asyncio
from decimal import Decimal

import pytest

from pos_dashboard.ingestion.auth import AuthContext, AuthSession
from pos_dashboard.ingestion.orchestrator import FetchOrchestrator
from pos_dashboard.ingestion.sources import SourceName
from pos_dashboard.serving.cache import MetricsCache
from pos_dashboard.serving.dashboard import DashboardRegistry, DashboardService


@pytest.fixture
def make_service(fake_source, today):
    def factory(auth: AuthContext, fetch_timeout: float = 1, auth_timeout: float = 1):
        orchestrator = FetchOrchestrator(fake_source, auth, timeout_seconds=fetch_timeout)
        cache = MetricsCache(orchestrator, stale_seconds=120, today=lambda: today)
        return DashboardService(cache, auth, auth_timeout_seconds=auth_timeout)

    return factory


class TestRefresh:
    """Tests for DashboardService.refresh"""

    async def test_success(self, make_service, auth):
        service = make_service(auth)

        metrics = await service.refresh()

        assert metrics.daily_sales == Decimal("100")
        assert service.metrics is metrics
        assert service.error is None
        assert service.is_loading is False

    async def test_listeners_see_loading_then_done(self, make_service, auth):
        service = make_service(auth)
        seen = []
        unsubscribe = service.subscribe(lambda s: seen.append((s.is_loading, s.metrics is not None)))

        await service.refresh()
        unsubscribe()
        await service.refresh(force=True)

        assert seen == [(True, False), (False, True)]

    async def test_failing_listener_does_not_break_refresh(self, make_service, auth):
        service = make_service(auth)

        def broken(_):
            raise RuntimeError("render failed")

        service.subscribe(broken)
        assert await service.refresh() is not None


class TestErrorMessages:
    """Errors surface as user-facing messages only"""

    async def test_not_authenticated(self, make_service, fake_source):
        service = make_service(AuthContext(ready=True))

        assert await service.refresh() is None
        assert service.error == "User session not found. Please log in."
        assert fake_source.calls == []

    async def test_auth_stuck(self, make_service, fake_source):
        service = make_service(AuthContext(), auth_timeout=0.05)

        await service.refresh()

        assert service.error == "Connection slow. Please refresh."
        assert service.is_loading is False
        assert fake_source.calls == []

    async def test_auth_resolves_while_waiting(self, make_service):
        auth = AuthContext()
        service = make_service(auth)

        refresh = asyncio.create_task(service.refresh())
        await asyncio.sleep(0.01)
        auth.resolve(AuthSession(user_id="u1", store_id="s1"))

        assert (await refresh).daily_sales == Decimal("100")
        assert service.error is None

    async def test_source_error_keeps_metrics(self, make_service, fake_source, auth):
        service = make_service(auth)
        good = await service.refresh()

        fake_source.errors[SourceName.INVENTORY] = PermissionError("permission denied")
        assert await service.refresh(force=True) is good
        assert service.error == "Inventory: permission denied"

    async def test_timeout_message(self, make_service, fake_source, auth):
        fake_source.gates[SourceName.PAYMENTS] = asyncio.Event()
        service = make_service(auth, fetch_timeout=0.05)

        await service.refresh()

        assert service.error == "Connection timed out. Please try again."

    async def test_cancellation_is_silent(self, make_service, fake_source, auth):
        fake_source.gates[SourceName.PAYMENTS] = asyncio.Event()
        service = make_service(auth, fetch_timeout=5)

        refresh = asyncio.create_task(service.refresh())
        await asyncio.sleep(0.01)
        assert service.is_loading
        service.cancel()

        assert await refresh is None
        assert service.error is None

    async def test_error_cleared_on_next_refresh(self, make_service, fake_source, auth):
        fake_source.errors[SourceName.PAYMENTS] = RuntimeError("boom")
        service = make_service(auth)
        await service.refresh()
        assert service.error == "Payments: boom"

        del fake_source.errors[SourceName.PAYMENTS]
        await service.refresh()
        assert service.error is None


class TestRegistry:
    """One dashboard per user and store, bounded"""

    async def test_same_session_same_dashboard(self, session_factory):
        registry = DashboardRegistry(session_factory, max_services=4)

        first = registry.get(AuthSession(user_id="user-1", store_id="store-1"))
        again = registry.get(AuthSession(user_id="user-1", store_id="store-1"))
        other = registry.get(AuthSession(user_id="user-1", store_id="store-2"))

        assert first is again
        assert other is not first
        assert len(registry) == 2
        await registry.close()

    async def test_least_recently_used_evicted(self, session_factory):
        registry = DashboardRegistry(session_factory, max_services=2)
        alice = AuthSession(user_id="alice", store_id="store-1")
        bob = AuthSession(user_id="bob", store_id="store-1")
        carol = AuthSession(user_id="carol", store_id="store-1")

        alice_dashboard = registry.get(alice)
        bob_dashboard = registry.get(bob)
        registry.get(alice)
        registry.get(carol)

        assert len(registry) == 2
        assert registry.get(alice) is alice_dashboard
        assert registry.get(bob) is not bob_dashboard
        assert len(registry) == 2
        await registry.close()
