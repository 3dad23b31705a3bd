"""
Low-Stock Threshold Resolution
"""

from typing import Any, Optional

from pos_dashboard.metrics.records import InventoryRecord, to_optional_int

DEFAULT_LOW_STOCK_THRESHOLD = 10


def resolve_global_threshold(value: Any) -> int:
    """Normalize a configured default; absent or malformed means 10"""
    threshold = to_optional_int(value)
    if threshold is None:
        return DEFAULT_LOW_STOCK_THRESHOLD
    return threshold


def resolve_threshold(record: InventoryRecord, global_threshold: Optional[int] = None) -> int:
    """Per-item override if set, else the global default"""
    if record.low_stock_threshold is not None:
        return record.low_stock_threshold
    return resolve_global_threshold(global_threshold)


def is_low_stock(record: InventoryRecord, threshold: int) -> bool:
    """Strictly below the threshold; equal is not low"""
    return record.current_stock < threshold
