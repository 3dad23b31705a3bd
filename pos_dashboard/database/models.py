"""
Database Models - Dashboard Sources

Read models for the four tables the dashboard pulls from:

- Payment: one row per completed sale (invoice header)
- Transaction: one row per invoice line; undated, joined through invoice_no
- Expense: cash-out entries
- InventoryMonitor: current stock per item (a view in production)

Every table carries store_id so reads can be scoped to the signed-in store.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class Payment(Base):
    """Invoice header; the only dated side of a sale"""
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[Optional[str]] = mapped_column(String(64))
    invoice_no: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200))
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    transaction_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_payments_store_time", "store_id", "transaction_time"),
        Index("ix_payments_invoice", "invoice_no"),
    )


class Transaction(Base):
    """Invoice line item"""
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[Optional[str]] = mapped_column(String(64))
    invoice_no: Mapped[str] = mapped_column(String(50), nullable=False)
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    cost_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    __table_args__ = (
        Index("ix_transactions_store_invoice", "store_id", "invoice_no"),
    )


class Expense(Base):
    """Cash-out entry"""
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[Optional[str]] = mapped_column(String(64))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("ix_expenses_store_date", "store_id", "transaction_date"),
    )


class InventoryMonitor(Base):
    """Stock level per item, as exposed by inventory_monitor_view"""
    __tablename__ = "inventory_monitor_view"

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    store_id: Mapped[Optional[str]] = mapped_column(String(64))
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    current_stock: Mapped[int] = mapped_column(Integer, default=0)
    low_stock_threshold: Mapped[Optional[int]] = mapped_column(Integer)
