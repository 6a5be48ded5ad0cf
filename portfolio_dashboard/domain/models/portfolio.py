"""
DOMAIN MODELS — PORTFOLIO, PRICES & VALUATION

Immutable structures representing holdings, market prices and the
synthetic valuation curve. No network access.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Sequence


class TimeRange(str, Enum):
    """Chart window selectable on the dashboard"""
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    ALL = "ALL"


@dataclass(frozen=True)
class Portfolio:
    id: str
    name: str
    strategy_description: str = ""
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class Holding:
    """
    A symbol's current position inside a portfolio.

    Quantity and value change only through confirmed transactions upstream;
    this package never mutates them.
    """
    symbol: str
    quantity: float
    current_total_value: float
    total_base_value: float = 0.0
    percentage_change_since_cost: Optional[float] = None
    last_updated: Optional[datetime] = None
    id: Optional[str] = None
    portfolio_id: Optional[str] = None

    @property
    def current_price(self) -> Optional[float]:
        if self.quantity <= 0:
            return None
        return self.current_total_value / self.quantity


@dataclass(frozen=True)
class PricePoint:
    """Daily market data sample; `close` may be missing upstream."""
    symbol: str
    date: date
    close: Optional[float] = None


@dataclass(frozen=True)
class ValuationPoint:
    date: date
    value: float


@dataclass(frozen=True)
class PerformanceSummary:
    start_value: float
    end_value: float
    absolute_change: float
    percentage_change: float

    @property
    def is_positive(self) -> bool:
        return self.absolute_change >= 0


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Totals of the entire portfolio at a point in time.
    """
    holdings: Sequence[Holding]

    @property
    def total_invested(self) -> float:
        return sum(h.total_base_value for h in self.holdings)

    @property
    def total_value(self) -> float:
        return sum(h.current_total_value for h in self.holdings)

    @property
    def total_pnl(self) -> float:
        return self.total_value - self.total_invested

    @property
    def total_pnl_pct(self) -> float:
        if self.total_invested <= 0:
            return 0.0
        return (self.total_pnl / self.total_invested) * 100.0

    @property
    def holding_count(self) -> int:
        return len(self.holdings)
