"""
Integration Tests - HTTP API
"""
from datetime import datetime
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from pos_dashboard.database.connection import close_database, init_database
from pos_dashboard.database.models import InventoryMonitor, Payment
from pos_dashboard.main import create_app
from pos_dashboard.serving.dashboard import DashboardRegistry

HEADERS = {"X-User-Id": "user-1", "X-Store-Id": "store-1"}


@pytest.fixture
async def registry(test_db, session_factory):
    test_db.add_all([
        Payment(store_id="store-1", invoice_no="A", customer_name="Alice",
                grand_total=Decimal("100.00"), transaction_time=datetime.now()),
        Payment(store_id="store-1", invoice_no="B", customer_name="Bob",
                grand_total=Decimal("20.00"), transaction_time=datetime.now()),
        InventoryMonitor(store_id="store-1", item_id="1", item_name="Cola", current_stock=3,
                         low_stock_threshold=5),
    ])
    await test_db.commit()

    registry = DashboardRegistry(session_factory)
    yield registry
    await registry.close()


@pytest.fixture
async def client(registry):
    app = create_app()
    app.state.dashboards = registry
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestDashboardEndpoints:
    """Tests for /api/v1/dashboard"""

    async def test_requires_session(self, client):
        response = await client.get("/api/v1/dashboard/metrics")

        assert response.status_code == 401
        assert response.json()["detail"] == "User session not found. Please log in."

    async def test_metrics(self, client):
        response = await client.get("/api/v1/dashboard/metrics", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["isLoading"] is False
        assert body["error"] is None
        assert body["lastFetchedAt"] is not None

        metrics = body["metrics"]
        assert metrics["totalCustomers"] == 2
        assert len(metrics["profitTrend"]) == 30
        assert metrics["lowStockItems"] == [{"id": "1", "itemName": "Cola", "stock": 3, "threshold": 5}]
        assert {t["invoice_no"] for t in metrics["recentTransactions"]} == {"A", "B"}

    async def test_cached_between_requests(self, client):
        first = (await client.get("/api/v1/dashboard/metrics", headers=HEADERS)).json()
        second = (await client.get("/api/v1/dashboard/metrics", headers=HEADERS)).json()

        assert first["lastFetchedAt"] == second["lastFetchedAt"]

    async def test_refresh_forces_fetch(self, client):
        first = (await client.get("/api/v1/dashboard/metrics", headers=HEADERS)).json()
        refreshed = await client.post("/api/v1/dashboard/refresh", headers=HEADERS)

        assert refreshed.status_code == 200
        assert refreshed.json()["lastFetchedAt"] != first["lastFetchedAt"]

    async def test_other_store_is_separate(self, client):
        response = await client.get(
            "/api/v1/dashboard/metrics",
            headers={"X-User-Id": "user-2", "X-Store-Id": "store-9"},
        )

        metrics = response.json()["metrics"]
        assert metrics["totalCustomers"] == 0
        assert metrics["lowStockItems"] == []

    async def test_unavailable_without_registry(self):
        app = create_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/dashboard/metrics", headers=HEADERS)

        assert response.status_code == 503


class TestOperationalEndpoints:
    """Health probes and Prometheus scrape"""

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")
        assert response.json() == {"status": "alive"}

    async def test_readiness_follows_database(self, client, tmp_path):
        assert (await client.get("/api/v1/health/ready")).status_code == 503

        await init_database(f"sqlite+aiosqlite:///{tmp_path / 'ready.db'}")
        try:
            response = await client.get("/api/v1/health/ready")
        finally:
            await close_database()

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    async def test_prometheus_metrics(self, client):
        await client.get("/api/v1/dashboard/metrics", headers=HEADERS)
        response = await client.get("/metrics/")

        assert response.status_code == 200
        assert "pos_dashboard_fetch_total" in response.text
        assert 'outcome="succeeded"' in response.text

    async def test_request_id_echoed(self, client):
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert response.headers["X-Response-Time"].endswith("ms")

    async def test_readiness_needs_registry(self):
        app = create_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "dashboards_unavailable"

    async def test_health_degraded_without_settings_store(self, client, tmp_path):
        await client.get("/api/v1/dashboard/metrics", headers=HEADERS)

        await init_database(f"sqlite+aiosqlite:///{tmp_path / 'health.db'}")
        try:
            body = (await client.get("/api/v1/health")).json()
        finally:
            await close_database()

        assert body["status"] == "degraded"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["dashboards"]["active"] == 1
        assert body["checks"]["settings_store"]["status"] == "unhealthy"

    async def test_health_unhealthy_without_database(self, client):
        body = (await client.get("/api/v1/health")).json()

        assert body["status"] == "unhealthy"
        assert body["checks"]["database"]["status"] == "unhealthy"
