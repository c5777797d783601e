"""
EPC (earnings per click) calculation utilities.

Pure functions: they never touch the database. Callers read click rows from
the ledger and hand the totals in, so every metric traces back to raw events
rather than a running counter.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, TypeVar, Union

from utils.datetime_utils import utc_now, format_utc_iso

Number = Union[int, float, Decimal]
T = TypeVar('T')

TWO_PLACES = Decimal('0.01')
FLAT_TREND_THRESHOLD = Decimal('0.01')


def round_money(value: Number) -> float:
    """Round half-up to two decimal places and return a float."""
    return float(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class EPCMetrics:
    """Windowed performance of one offer. Constructed fresh on every calculation."""
    total_clicks: int = 0
    total_conversions: int = 0
    total_revenue: float = 0.0
    conversion_rate: float = 0.0
    epc: float = 0.0
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_clicks': self.total_clicks,
            'total_conversions': self.total_conversions,
            'total_revenue': self.total_revenue,
            'conversion_rate': self.conversion_rate,
            'epc': self.epc,
            'last_updated': format_utc_iso(self.last_updated)
        }


def calculate_epc(total_clicks: int,
                  total_conversions: int,
                  total_revenue: Number,
                  now: Optional[datetime] = None) -> EPCMetrics:
    """
    Calculate EPC metrics from click, conversion and revenue totals.

    epc = revenue / clicks and conversion_rate = conversions / clicks * 100,
    both 0 when there are no clicks. Both are rounded to two decimals.

    Args:
        total_clicks: Number of clicks in the window
        total_conversions: Number of converted clicks in the window
        total_revenue: Revenue summed over converted clicks in the window
        now: Timestamp to stamp as last_updated

    Returns:
        EPCMetrics
    """
    revenue = Decimal(str(total_revenue or 0))

    if total_clicks > 0:
        epc = revenue / Decimal(total_clicks)
        conversion_rate = Decimal(total_conversions) / Decimal(total_clicks) * 100
    else:
        epc = Decimal('0')
        conversion_rate = Decimal('0')

    return EPCMetrics(
        total_clicks=int(total_clicks),
        total_conversions=int(total_conversions),
        total_revenue=round_money(revenue),
        conversion_rate=round_money(conversion_rate),
        epc=round_money(epc),
        last_updated=now or utc_now()
    )


def calculate_epc_delta(current_epc: Number, previous_epc: Number) -> Dict[str, Any]:
    """
    Compare two EPC values.

    Returns:
        dict with delta, percentage (0 when previous is 0) and trend
        ('up', 'down' or 'flat' when the change is below one cent)
    """
    current = Decimal(str(current_epc))
    previous = Decimal(str(previous_epc))
    delta = current - previous
    percentage = (delta / previous * 100) if previous > 0 else Decimal('0')

    if abs(delta) < FLAT_TREND_THRESHOLD:
        trend = 'flat'
    elif delta > 0:
        trend = 'up'
    else:
        trend = 'down'

    return {
        'delta': round_money(delta),
        'percentage': round_money(percentage),
        'trend': trend
    }


def validate_epc_metrics(metrics: EPCMetrics) -> bool:
    """
    Check EPC metrics for internal consistency.

    Raises:
        ValueError: On negative totals, more conversions than clicks,
            a conversion rate outside 0-100 or a negative EPC
    """
    if metrics.total_clicks < 0 or metrics.total_conversions < 0 or metrics.total_revenue < 0:
        raise ValueError("EPC metrics cannot have negative values")

    if metrics.total_conversions > metrics.total_clicks:
        raise ValueError("Conversions cannot exceed total clicks")

    if metrics.conversion_rate < 0 or metrics.conversion_rate > 100:
        raise ValueError("Conversion rate must be between 0 and 100")

    if metrics.epc < 0:
        raise ValueError("EPC cannot be negative")

    return True


def calculate_epc_ranking(items: Sequence[T]) -> List[T]:
    """
    Order dataclass rows by EPC descending and assign a dense rank.

    Rows with equal EPC share a rank; the next distinct EPC gets the next
    integer. Input order is kept among ties. Each row must be a dataclass
    with ``epc`` and ``rank`` fields.
    """
    ordered = sorted(items, key=lambda item: -item.epc)

    ranked = []
    rank = 0
    previous_epc = None
    for item in ordered:
        if previous_epc is None or item.epc != previous_epc:
            rank += 1
            previous_epc = item.epc
        ranked.append(replace(item, rank=rank))
    return ranked
