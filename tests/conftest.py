"""
Test Suite Configuration
"""
import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pos_dashboard.database.models import Base
from pos_dashboard.ingestion.auth import AuthContext, AuthSession
from pos_dashboard.ingestion.cancellation import CancellationToken
from pos_dashboard.ingestion.sources import DashboardSource, SourceName
from pos_dashboard.metrics.records import (
    InventoryRecord,
    LineItemRecord,
    PaymentRecord,
)

TODAY = date(2026, 10, 19)


class FakeSource(DashboardSource):
    """
    In-memory dashboard source.

    Each read returns its configured rows, optionally after a delay, after an
    asyncio.Event is set, or raises a configured error. Reads record whether
    they were cancelled.
    """

    def __init__(
        self,
        payments: Optional[List[Any]] = None,
        line_items: Optional[List[Any]] = None,
        expenses: Optional[List[Any]] = None,
        inventory: Optional[List[Any]] = None,
    ):
        self.rows: Dict[SourceName, List[Any]] = {
            SourceName.PAYMENTS: payments or [],
            SourceName.TRANSACTIONS: line_items or [],
            SourceName.EXPENSES: expenses or [],
            SourceName.INVENTORY: inventory or [],
        }
        self.delays: Dict[SourceName, float] = {}
        self.gates: Dict[SourceName, asyncio.Event] = {}
        self.errors: Dict[SourceName, Exception] = {}
        self.calls: List[SourceName] = []
        self.cancelled: List[SourceName] = []
        self.sessions: List[AuthSession] = []

    async def _read(self, name: SourceName, session: AuthSession, token: CancellationToken):
        self.calls.append(name)
        self.sessions.append(session)
        try:
            if name in self.delays:
                await asyncio.sleep(self.delays[name])
            if name in self.gates:
                await self.gates[name].wait()
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise
        if name in self.errors:
            raise self.errors[name]
        return list(self.rows[name])

    async def read_payments(self, session, token):
        return await self._read(SourceName.PAYMENTS, session, token)

    async def read_line_items(self, session, token):
        return await self._read(SourceName.TRANSACTIONS, session, token)

    async def read_expenses(self, session, token):
        return await self._read(SourceName.EXPENSES, session, token)

    async def read_inventory(self, session, token):
        return await self._read(SourceName.INVENTORY, session, token)


class InMemoryRedis:
    """The slice of the redis.asyncio client the settings store uses"""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise RedisConnectionError("Connection refused")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._check()
        self.data[key] = value
        return True

    async def ping(self) -> bool:
        self._check()
        return True


@pytest.fixture
def today() -> date:
    """Fixed calendar day the metrics are scoped to"""
    return TODAY


@pytest.fixture
def scenario(today) -> Dict[str, List[Any]]:
    """One sale today, one yesterday, one low-stock item"""
    now = datetime.combine(today, datetime.min.time()) + timedelta(hours=10)
    return {
        "payments": [
            PaymentRecord(invoice_no="A", customer_name="Alice", grand_total=Decimal("100"), transaction_time=now),
            PaymentRecord(
                invoice_no="B",
                customer_name="Bob",
                grand_total=Decimal("50"),
                transaction_time=now - timedelta(days=1),
            ),
        ],
        "line_items": [
            LineItemRecord(
                invoice_no="A",
                item_name="Cola",
                category="Drinks",
                cost_price=Decimal("40"),
                total_price=Decimal("100"),
                quantity=1,
            ),
        ],
        "expenses": [],
        "inventory": [
            InventoryRecord(item_id="1", item_name="Cola", current_stock=3, low_stock_threshold=5),
        ],
    }


@pytest.fixture
def fake_source(scenario) -> FakeSource:
    return FakeSource(**scenario)


@pytest.fixture
def auth_session() -> AuthSession:
    return AuthSession(user_id="user-1", store_id="store-1")


@pytest.fixture
def auth(auth_session) -> AuthContext:
    """Resolved auth with an active session"""
    return AuthContext(session=auth_session, ready=True)


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine; one connection per session like Postgres"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'pos.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_source():
    """Factory for FakeSource with custom rows"""
    return FakeSource
