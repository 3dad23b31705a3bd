"""
Dashboard Metrics Module
"""
from .aggregator import aggregate
from .buckets import TrendBucket, build_trend_index
from .records import (
    DashboardMetrics,
    ExpenseRecord,
    InventoryRecord,
    LineItemRecord,
    PaymentRecord,
)
from .thresholds import DEFAULT_LOW_STOCK_THRESHOLD, resolve_threshold

__all__ = [
    "aggregate",
    "TrendBucket",
    "build_trend_index",
    "DashboardMetrics",
    "ExpenseRecord",
    "InventoryRecord",
    "LineItemRecord",
    "PaymentRecord",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "resolve_threshold",
]
