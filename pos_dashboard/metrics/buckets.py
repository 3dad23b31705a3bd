"""
Trend Bucket Index

Fixed-size calendar index of daily accumulators for the profit trend.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Dict, Optional, Union

DATE_KEY_FORMAT = "%Y-%m-%d"


@dataclass
class TrendBucket:
    """Running totals for one calendar day"""
    revenue: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def profit(self) -> Decimal:
        return self.revenue - self.cost - self.expense


def date_key(day: date) -> str:
    """Index key for a calendar day (YYYY-MM-DD)"""
    return day.strftime(DATE_KEY_FORMAT)


def local_date(value: Optional[Union[datetime, date]], tz: Optional[tzinfo] = None) -> Optional[date]:
    """
    Calendar day a timestamp falls on.

    Aware datetimes are converted to ``tz`` (server local zone when None)
    first; naive datetimes and plain dates are taken as already local.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def build_trend_index(today: date, days: int = 30) -> Dict[str, TrendBucket]:
    """
    Build zeroed buckets for the ``days`` contiguous days ending on ``today``.

    Keys are ordered oldest to newest; the last key is ``today``.
    """
    if days < 1:
        raise ValueError("Trend window must cover at least one day")

    start = today - timedelta(days=days - 1)
    return {
        date_key(start + timedelta(days=offset)): TrendBucket()
        for offset in range(days)
    }
