"""
Dashboard Record Models

Raw rows as returned by the data service, and the derived DashboardMetrics
snapshot. Raw models never reject a row: malformed numbers coerce to zero and
unparseable timestamps become None.
"""

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Optional, Tuple, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

ZERO = Decimal("0")

CalendarDay = date


# =============================================================================
# COERCION
# =============================================================================

def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a numeric-ish value; None when absent, malformed or not finite"""
    if value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        result = Decimal(int(value))
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None

    if not result.is_finite():
        return None
    return result


def to_decimal(value: Any) -> Decimal:
    """Coerce to Decimal, falling back to zero"""
    result = parse_decimal(value)
    return ZERO if result is None else result


def to_int(value: Any) -> int:
    """Coerce to int, truncating fractions; malformed values become 0"""
    return int(to_decimal(value))


def to_optional_int(value: Any) -> Optional[int]:
    """Like to_int, but absent or malformed values stay None"""
    result = parse_decimal(value)
    return None if result is None else int(result)


def to_text(value: Any) -> Optional[str]:
    """Keep strings, stringify scalars, leave None alone"""
    if value is None or isinstance(value, str):
        return value
    return str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime (or ISO-8601 string); unparseable input becomes None"""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def parse_calendar_value(value: Any) -> Optional[Union[datetime, date]]:
    """Parse a date column that may also hold a full timestamp"""
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


Money = Annotated[
    Decimal,
    BeforeValidator(to_decimal),
    PlainSerializer(float, return_type=float, when_used="json"),
]
Count = Annotated[int, BeforeValidator(to_int)]
OptionalCount = Annotated[Optional[int], BeforeValidator(to_optional_int)]
Text = Annotated[Optional[str], BeforeValidator(to_text)]
Timestamp = Annotated[Optional[datetime], BeforeValidator(parse_timestamp)]
CalendarValue = Annotated[Optional[Union[datetime, date]], BeforeValidator(parse_calendar_value)]


# =============================================================================
# RAW RECORDS
# =============================================================================

class RawRecord(BaseModel):
    """Base class for rows read from the data service"""

    model_config = ConfigDict(frozen=True, extra="ignore")


class PaymentRecord(RawRecord):
    """One completed sale (invoice header)"""
    invoice_no: Text = None
    customer_name: Text = None
    grand_total: Money = ZERO
    transaction_time: Timestamp = None


class LineItemRecord(RawRecord):
    """One product line within an invoice; dated through its invoice"""
    invoice_no: Text = None
    item_name: Text = None
    category: Text = None
    cost_price: Money = ZERO
    total_price: Money = ZERO
    quantity: Count = 0


class ExpenseRecord(RawRecord):
    """Cash-out entry, independent of invoices"""
    amount: Money = ZERO
    transaction_date: CalendarValue = None


class InventoryRecord(RawRecord):
    """Current stock level of one item"""
    item_id: Text = None
    item_name: Text = None
    current_stock: Count = 0
    low_stock_threshold: OptionalCount = None


# =============================================================================
# DERIVED SNAPSHOT
# =============================================================================

class MetricsModel(BaseModel):
    """Base class for derived output; camelCase on the wire"""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TrendPoint(MetricsModel):
    """One day of the profit trend"""
    date: CalendarDay
    label: str
    revenue: Money
    profit: Money


class CategorySales(MetricsModel):
    """Summed line-item value for one category"""
    name: str
    value: Money


class TopProduct(MetricsModel):
    """Summed quantity sold for one product"""
    item_name: Optional[str]
    quantity: int


class LowStockItem(MetricsModel):
    """Inventory item below its resolved threshold"""
    id: Optional[str]
    item_name: Optional[str]
    stock: int
    threshold: int


class DashboardMetrics(MetricsModel):
    """
    Immutable analytics snapshot for the dashboard.

    Rebuilt from scratch on every aggregation; never mutated in place.
    """
    total_customers: int = 0
    daily_sales: Money = ZERO
    today_cogs: Money = ZERO
    today_expenses: Money = ZERO
    net_profit: Money = ZERO
    recent_transactions: Tuple[PaymentRecord, ...] = ()
    profit_trend: Tuple[TrendPoint, ...] = ()
    category_sales: Tuple[CategorySales, ...] = ()
    top_products: Tuple[TopProduct, ...] = ()
    low_stock_items: Tuple[LowStockItem, ...] = ()
    generated_for: Optional[date] = Field(default=None)
