"""
Dashboard Data Sources

Boundary to the raw data service. Each read returns one record set, is
scoped to the caller's store, and honours the shared cancellation token.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Type, TypeVar

import structlog
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pos_dashboard.database.models import Expense, InventoryMonitor, Payment, Transaction
from pos_dashboard.ingestion.auth import AuthSession
from pos_dashboard.ingestion.cancellation import CancellationToken
from pos_dashboard.metrics.records import (
    ExpenseRecord,
    InventoryRecord,
    LineItemRecord,
    PaymentRecord,
    RawRecord,
)

logger = structlog.get_logger(__name__)

R = TypeVar("R", bound=RawRecord)


class SourceName(str, Enum):
    """The four dashboard sources, named as the data service names them"""
    PAYMENTS = "payments"
    TRANSACTIONS = "transactions"
    EXPENSES = "expenses"
    INVENTORY = "inventory"


@dataclass
class RawDataset:
    """The four record sets of one successful fetch"""
    payments: List[PaymentRecord] = field(default_factory=list)
    line_items: List[LineItemRecord] = field(default_factory=list)
    expenses: List[ExpenseRecord] = field(default_factory=list)
    inventory: List[InventoryRecord] = field(default_factory=list)


class DashboardSource(ABC):
    """Abstract raw data service"""

    @abstractmethod
    async def read_payments(self, session: AuthSession, token: CancellationToken) -> List[PaymentRecord]:
        """Invoice headers: invoice_no, customer_name, grand_total, transaction_time"""

    @abstractmethod
    async def read_line_items(self, session: AuthSession, token: CancellationToken) -> List[LineItemRecord]:
        """Invoice lines: invoice_no, item_name, total_price, cost_price, quantity, category"""

    @abstractmethod
    async def read_expenses(self, session: AuthSession, token: CancellationToken) -> List[ExpenseRecord]:
        """Expenses: amount, transaction_date"""

    @abstractmethod
    async def read_inventory(self, session: AuthSession, token: CancellationToken) -> List[InventoryRecord]:
        """Stock snapshot ordered ascending by current_stock"""


class SqlDashboardSource(DashboardSource):
    """
    Dashboard source backed by the relational store.

    Each read opens its own session so the four reads can run concurrently.

    Example:
        source = SqlDashboardSource(get_session_factory())
        payments = await source.read_payments(session, token)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _fetch(
        self,
        statement: Select,
        model: Type[R],
        token: CancellationToken,
    ) -> List[R]:
        async def execute() -> List[R]:
            async with self._session_factory() as db:
                result = await db.execute(statement)
                return [model.model_validate(dict(row)) for row in result.mappings()]

        records = await token.guard(execute())
        logger.debug("Source read completed", model=model.__name__, rows=len(records))
        return records

    async def read_payments(self, session: AuthSession, token: CancellationToken) -> List[PaymentRecord]:
        statement = select(
            Payment.invoice_no,
            Payment.customer_name,
            Payment.grand_total,
            Payment.transaction_time,
        ).where(Payment.store_id == session.store_id).order_by(Payment.id)
        return await self._fetch(statement, PaymentRecord, token)

    async def read_line_items(self, session: AuthSession, token: CancellationToken) -> List[LineItemRecord]:
        statement = select(
            Transaction.invoice_no,
            Transaction.item_name,
            Transaction.total_price,
            Transaction.cost_price,
            Transaction.quantity,
            Transaction.category,
        ).where(Transaction.store_id == session.store_id).order_by(Transaction.id)
        return await self._fetch(statement, LineItemRecord, token)

    async def read_expenses(self, session: AuthSession, token: CancellationToken) -> List[ExpenseRecord]:
        statement = select(
            Expense.amount,
            Expense.transaction_date,
        ).where(Expense.store_id == session.store_id).order_by(Expense.id)
        return await self._fetch(statement, ExpenseRecord, token)

    async def read_inventory(self, session: AuthSession, token: CancellationToken) -> List[InventoryRecord]:
        statement = select(
            InventoryMonitor.item_id,
            InventoryMonitor.item_name,
            InventoryMonitor.current_stock,
            InventoryMonitor.low_stock_threshold,
        ).where(
            InventoryMonitor.store_id == session.store_id
        ).order_by(InventoryMonitor.current_stock.asc(), InventoryMonitor.item_id)
        return await self._fetch(statement, InventoryRecord, token)
