"""
Change Aggregator
Daily percentage change per held symbol and the value-weighted change of the
whole portfolio (the dashboard's daily % badge).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from portfolio_dashboard.domain.models import Holding, PricePoint
from portfolio_dashboard.infrastructure.api.types import MarketDataSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeSummary:
    per_symbol: Dict[str, float]
    weighted: float
    unknown: List[str]


def _usable_samples(samples: Sequence[PricePoint]) -> List[PricePoint]:
    usable = [s for s in samples if s.close is not None]
    # Upstream returns most-recent-first; re-sort in case it did not
    usable.sort(key=lambda s: s.date, reverse=True)
    return usable


def symbol_change(
    samples: Sequence[PricePoint],
    stored_percentage: Optional[float] = None,
) -> Optional[float]:
    """
    Percentage change between the two most recent samples.

    One sample: the holding's stored percentage (or 0%) instead of a change
    fabricated from a single price. No samples, or a zero previous close:
    unknown (None).
    """
    usable = _usable_samples(samples)
    if len(usable) >= 2:
        current, previous = usable[0].close, usable[1].close
        if not previous:
            return None
        return ((current - previous) / previous) * 100
    if len(usable) == 1:
        return stored_percentage if stored_percentage is not None else 0.0
    return None


def weighted_change(holdings: Sequence[Holding], changes: Mapping[str, float]) -> float:
    """
    Value-weighted average of the known per-symbol changes.

    Holdings without a known change are left out of both sums.
    """
    total_weight = 0.0
    weighted_sum = 0.0
    for holding in holdings:
        change = changes.get(holding.symbol)
        if change is None or holding.current_total_value <= 0:
            continue
        weighted_sum += change * holding.current_total_value
        total_weight += holding.current_total_value
    return weighted_sum / total_weight if total_weight > 0 else 0.0


def aggregate_change(
    holdings: Sequence[Holding],
    price_samples_by_symbol: Mapping[str, Sequence[PricePoint]],
) -> ChangeSummary:
    per_symbol: Dict[str, float] = {}
    unknown: List[str] = []
    for holding in holdings:
        if holding.symbol in per_symbol or holding.symbol in unknown:
            continue
        change = symbol_change(
            price_samples_by_symbol.get(holding.symbol, ()),
            stored_percentage=holding.percentage_change_since_cost,
        )
        if change is None:
            unknown.append(holding.symbol)
        else:
            per_symbol[holding.symbol] = change

    return ChangeSummary(
        per_symbol=per_symbol,
        weighted=weighted_change(holdings, per_symbol),
        unknown=unknown,
    )


class ChangeAggregator:
    def __init__(self, market_data: MarketDataSource, sample_count: int = 2):
        self.market_data = market_data
        self.sample_count = sample_count

    async def fetch_samples(self, symbols: Sequence[str]) -> Dict[str, List[PricePoint]]:
        unique_symbols = list(dict.fromkeys(symbols))
        results = await asyncio.gather(
            *(self.market_data.get_latest_prices(symbol, self.sample_count) for symbol in unique_symbols),
            return_exceptions=True,
        )

        samples: Dict[str, List[PricePoint]] = {}
        for symbol, result in zip(unique_symbols, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("Error fetching daily price changes for %s: %s", symbol, result)
                continue
            samples[symbol] = list(result)
        return samples

    async def daily_change(self, holdings: Sequence[Holding]) -> ChangeSummary:
        if not holdings:
            return ChangeSummary(per_symbol={}, weighted=0.0, unknown=[])

        samples = await self.fetch_samples([h.symbol for h in holdings])
        summary = aggregate_change(holdings, samples)
        if summary.unknown:
            logger.info("Daily change unknown for %s", ", ".join(summary.unknown))
        return summary
