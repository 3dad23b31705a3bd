"""
Dashboard Metrics Aggregator

Pure transformation of the four raw record sets into one DashboardMetrics
snapshot. Pipeline:

1. Join line items to their invoice's timestamp (payments are the only dated side)
2. Today-scoped KPIs: sales, COGS, expenses, net profit
3. Trailing trend of revenue and profit per day
4. Category and product rankings over every joined line item
5. Low-stock alerts and the most recent transactions

Never raises on malformed rows; bad numbers count as zero.
"""

from datetime import date, datetime, tzinfo
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

import structlog

from pos_dashboard.metrics.buckets import build_trend_index, date_key, local_date
from pos_dashboard.metrics.records import (
    ZERO,
    CategorySales,
    DashboardMetrics,
    ExpenseRecord,
    InventoryRecord,
    LineItemRecord,
    LowStockItem,
    PaymentRecord,
    RawRecord,
    TopProduct,
    TrendPoint,
)
from pos_dashboard.metrics.thresholds import is_low_stock, resolve_global_threshold, resolve_threshold

logger = structlog.get_logger(__name__)

UNCATEGORIZED = "Uncategorized"
CENT = Decimal("0.01")

R = TypeVar("R", bound=RawRecord)
Rows = Iterable[Union[RawRecord, Mapping[str, Any]]]


def _as_records(rows: Optional[Rows], model: Type[R]) -> List[R]:
    """Accept model instances or plain row mappings"""
    if not rows:
        return []
    return [row if isinstance(row, model) else model.model_validate(row) for row in rows]


def _round(value: Decimal) -> Decimal:
    # quantize needs room for every integer digit plus the two cents
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _cogs_quantity(item: LineItemRecord) -> int:
    # A missing quantity still costs one unit
    return item.quantity or 1


def _recency_key(payment: PaymentRecord, tz: Optional[tzinfo]) -> Tuple[bool, datetime]:
    """Newest-first key; undated payments sort after every dated one"""
    value = payment.transaction_time
    if value is None:
        return (False, datetime.min)
    if value.tzinfo is not None:
        value = value.astimezone(tz).replace(tzinfo=None)
    return (True, value)


def _trend_label(day: date) -> str:
    return f"{day:%b} {day.day}"


def aggregate(
    payments: Optional[Rows],
    line_items: Optional[Rows],
    expenses: Optional[Rows],
    inventory: Optional[Rows],
    today: date,
    global_threshold: Optional[int] = None,
    *,
    tz: Optional[tzinfo] = None,
    trend_days: int = 30,
    top_n: int = 5,
    sort_low_stock: bool = False,
) -> DashboardMetrics:
    """
    Derive the dashboard snapshot.

    Args:
        payments: Invoice headers (invoice_no, customer_name, grand_total, transaction_time)
        line_items: Invoice lines (invoice_no, item_name, category, cost_price, total_price, quantity)
        expenses: Cash-out entries (amount, transaction_date)
        inventory: Stock snapshot, normally pre-sorted ascending by current_stock
        today: Calendar day the KPIs are scoped to and the trend ends on
        global_threshold: Low-stock default for items without an override (10 if None)
        tz: Zone aware timestamps are bucketed in (server local if None)
        trend_days: Length of the profit trend
        top_n: Length of the top products, low-stock and recent lists
        sort_low_stock: Put the most critical low-stock items first

    Returns:
        DashboardMetrics snapshot
    """
    payment_rows = _as_records(payments, PaymentRecord)
    line_item_rows = _as_records(line_items, LineItemRecord)
    expense_rows = _as_records(expenses, ExpenseRecord)
    inventory_rows = _as_records(inventory, InventoryRecord)
    default_threshold = resolve_global_threshold(global_threshold)

    # Step 1: invoice -> timestamp, dated payments only; other line items are orphans
    invoice_times: Dict[str, datetime] = {}
    for payment in payment_rows:
        if payment.invoice_no and payment.transaction_time is not None:
            invoice_times[payment.invoice_no] = payment.transaction_time

    joined_items: List[Tuple[LineItemRecord, Optional[date]]] = [
        (item, local_date(invoice_times[item.invoice_no], tz))
        for item in line_item_rows
        if item.invoice_no in invoice_times
    ]

    # Step 2: today-scoped KPIs
    daily_sales = sum(
        (p.grand_total for p in payment_rows if local_date(p.transaction_time, tz) == today),
        ZERO,
    )
    today_cogs = sum(
        (item.cost_price * _cogs_quantity(item) for item, day in joined_items if day == today),
        ZERO,
    )
    today_expenses = sum(
        (e.amount for e in expense_rows if local_date(e.transaction_date, tz) == today),
        ZERO,
    )

    # Step 3: trend buckets; anything outside the window is dropped
    buckets = build_trend_index(today, trend_days)

    for payment in payment_rows:
        day = local_date(payment.transaction_time, tz)
        bucket = buckets.get(date_key(day)) if day else None
        if bucket is not None:
            bucket.revenue += payment.grand_total

    for item, day in joined_items:
        bucket = buckets.get(date_key(day)) if day else None
        if bucket is not None:
            bucket.cost += item.cost_price * _cogs_quantity(item)

    for expense in expense_rows:
        day = local_date(expense.transaction_date, tz)
        bucket = buckets.get(date_key(day)) if day else None
        if bucket is not None:
            bucket.expense += expense.amount

    profit_trend = tuple(
        TrendPoint(
            date=date.fromisoformat(key),
            label=_trend_label(date.fromisoformat(key)),
            revenue=_round(bucket.revenue),
            profit=_round(bucket.profit),
        )
        for key, bucket in buckets.items()
    )

    # Step 4: rankings over joined items of any date
    category_totals: Dict[str, Decimal] = {}
    product_totals: Dict[Optional[str], int] = {}
    for item, _ in joined_items:
        category = item.category or UNCATEGORIZED
        category_totals[category] = category_totals.get(category, ZERO) + item.total_price
        product_totals[item.item_name] = product_totals.get(item.item_name, 0) + item.quantity

    category_sales = tuple(
        CategorySales(name=name, value=value)
        for name, value in sorted(category_totals.items(), key=lambda entry: entry[1], reverse=True)
    )
    top_products = tuple(
        TopProduct(item_name=name, quantity=quantity)
        for name, quantity in sorted(product_totals.items(), key=lambda entry: entry[1], reverse=True)[:top_n]
    )

    # Step 5: low stock and recent activity
    low_stock: List[Tuple[InventoryRecord, int]] = []
    for record in inventory_rows:
        threshold = resolve_threshold(record, default_threshold)
        if is_low_stock(record, threshold):
            low_stock.append((record, threshold))
    if sort_low_stock:
        low_stock.sort(key=lambda entry: entry[0].current_stock - entry[1])

    low_stock_items = tuple(
        LowStockItem(
            id=record.item_id,
            item_name=record.item_name,
            stock=record.current_stock,
            threshold=threshold,
        )
        for record, threshold in low_stock[:top_n]
    )

    recent_transactions = tuple(
        sorted(payment_rows, key=lambda p: _recency_key(p, tz), reverse=True)[:top_n]
    )

    metrics = DashboardMetrics(
        total_customers=len({p.customer_name for p in payment_rows}),
        daily_sales=daily_sales,
        today_cogs=today_cogs,
        today_expenses=today_expenses,
        net_profit=daily_sales - today_cogs - today_expenses,
        recent_transactions=recent_transactions,
        profit_trend=profit_trend,
        category_sales=category_sales,
        top_products=top_products,
        low_stock_items=low_stock_items,
        generated_for=today,
    )

    logger.debug(
        "Dashboard metrics aggregated",
        payments=len(payment_rows),
        line_items=len(line_item_rows),
        joined_line_items=len(joined_items),
        expenses=len(expense_rows),
        inventory=len(inventory_rows),
        today=today.isoformat(),
    )

    return metrics
