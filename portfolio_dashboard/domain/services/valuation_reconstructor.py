"""
Valuation Reconstructor
Synthesizes a historical portfolio-value curve for the dashboard chart.

The curve is a projection, not historical accounting: no historical holdings
exist, so the *current* allocation is held constant over the whole window and
each symbol's contribution is scaled by how its price moved relative to its
latest close. A position opened last week is drawn as if it had been held
for the full range.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from portfolio_dashboard.domain.models import (
    Holding,
    PerformanceSummary,
    PricePoint,
    TimeRange,
    ValuationPoint,
)
from portfolio_dashboard.infrastructure.api.types import MarketDataSource
from portfolio_dashboard.utils.time import shift_months, today_utc

logger = logging.getLogger(__name__)


def window_for(time_range: TimeRange, today: Optional[date] = None) -> Tuple[date, date]:
    """Start/end days of the chart window for a time range."""
    end = today or today_utc()
    if time_range == TimeRange.ONE_WEEK:
        start = end - timedelta(days=7)
    elif time_range == TimeRange.ONE_MONTH:
        start = shift_months(end, -1)
    elif time_range == TimeRange.THREE_MONTHS:
        start = shift_months(end, -3)
    elif time_range == TimeRange.SIX_MONTHS:
        start = shift_months(end, -6)
    elif time_range == TimeRange.ONE_YEAR:
        start = shift_months(end, -12)
    else:
        start = shift_months(end, -60)
    return start, end


def _closes_by_day(points: Iterable[PricePoint]) -> Dict[date, float]:
    closes: Dict[date, float] = {}
    for point in points:
        # Missing and zero closes carry no usable price
        if point.close:
            closes[point.date] = float(point.close)
    return closes


def normalize_series(points: Iterable[PricePoint]) -> Dict[date, float]:
    """
    Rescale a close series so its most recent close equals 1.0.

    Returns an empty mapping when the symbol has no usable close.
    """
    closes = _closes_by_day(points)
    if not closes:
        return {}
    latest = closes[max(closes)]
    return {day: close / latest for day, close in closes.items()}


def reconstruct_valuation(
    holdings: Sequence[Holding],
    price_series_by_symbol: Mapping[str, Sequence[PricePoint]],
    today: Optional[date] = None,
    current_value: Optional[float] = None,
) -> List[ValuationPoint]:
    """
    Build the ascending valuation series for the given holdings.

    Symbols absent from `price_series_by_symbol` (or without closes) simply
    contribute nothing on any day. The point for `today` always carries the
    exact sum of current holding values.
    """
    today = today or today_utc()

    value_by_symbol: Dict[str, float] = defaultdict(float)
    for holding in holdings:
        value_by_symbol[holding.symbol] += holding.current_total_value
    total = sum(value_by_symbol.values())

    if not holdings or total == 0:
        return [ValuationPoint(date=today, value=current_value or 0.0)]

    weights = {symbol: value / total for symbol, value in value_by_symbol.items()}

    normalized: Dict[str, Dict[date, float]] = {}
    for symbol in weights:
        series = normalize_series(price_series_by_symbol.get(symbol, ()))
        if series:
            normalized[symbol] = series
        else:
            logger.debug("No usable price history for %s", symbol)

    all_days = set()
    for series in normalized.values():
        all_days.update(series.keys())

    points: List[ValuationPoint] = []
    for day in sorted(all_days):
        if day > today:
            continue
        day_total = 0.0
        for symbol, series in normalized.items():
            factor = series.get(day)
            if factor is None:
                continue
            day_total += total * weights[symbol] * factor
        if day_total != 0:
            points.append(ValuationPoint(date=day, value=day_total))

    # Pin today to the exact current value to remove normalization drift
    if points and points[-1].date == today:
        points[-1] = ValuationPoint(date=today, value=total)
    else:
        points.append(ValuationPoint(date=today, value=total))

    return points


def summarize_performance(
    points: Sequence[ValuationPoint],
    current_value: float = 0.0,
) -> PerformanceSummary:
    """Change between the first and last point of a valuation series."""
    if not points:
        return PerformanceSummary(
            start_value=0.0,
            end_value=current_value,
            absolute_change=0.0,
            percentage_change=0.0,
        )

    start_value = points[0].value
    end_value = points[-1].value
    absolute_change = end_value - start_value
    percentage_change = ((end_value / start_value) - 1) * 100 if start_value != 0 else 0.0
    return PerformanceSummary(
        start_value=start_value,
        end_value=end_value,
        absolute_change=absolute_change,
        percentage_change=percentage_change,
    )


class ValuationReconstructor:
    """Fetches per-symbol history concurrently and reconstructs the curve."""

    def __init__(self, market_data: MarketDataSource):
        self.market_data = market_data

    async def fetch_price_history(
        self,
        symbols: Sequence[str],
        start: date,
        end: date,
    ) -> Dict[str, List[PricePoint]]:
        unique_symbols = list(dict.fromkeys(symbols))
        results = await asyncio.gather(
            *(self.market_data.get_historical_prices(symbol, start, end) for symbol in unique_symbols),
            return_exceptions=True,
        )

        history: Dict[str, List[PricePoint]] = {}
        for symbol, result in zip(unique_symbols, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("Error fetching historical data for %s: %s", symbol, result)
                continue
            if result:
                history[symbol] = list(result)
        return history

    async def reconstruct(
        self,
        holdings: Sequence[Holding],
        time_range: TimeRange = TimeRange.ONE_MONTH,
        current_value: Optional[float] = None,
        today: Optional[date] = None,
    ) -> List[ValuationPoint]:
        today = today or today_utc()
        if not holdings or sum(h.current_total_value for h in holdings) == 0:
            return reconstruct_valuation(holdings, {}, today=today, current_value=current_value)

        start, end = window_for(time_range, today)
        history = await self.fetch_price_history([h.symbol for h in holdings], start, end)
        points = reconstruct_valuation(holdings, history, today=today, current_value=current_value)
        logger.info(
            "📈 Valuation curve for %d holdings | range=%s points=%d symbols_with_data=%d",
            len(holdings),
            time_range.value,
            len(points),
            len(history),
        )
        return points
