"""
Collaborator protocols for type hints.

The REST client implements all of them; tests substitute in-memory fakes.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Protocol

from portfolio_dashboard.domain.models import ActionResult, Holding, Portfolio, PricePoint, Transaction


class MarketDataSource(Protocol):
    async def get_historical_prices(self, symbol: str, start: date, end: date) -> List[PricePoint]:
        ...

    async def get_latest_prices(self, symbol: str, count: int = 2) -> List[PricePoint]:
        ...


class PortfolioSource(Protocol):
    async def get_portfolio(self, portfolio_id: str) -> Portfolio:
        ...

    async def get_holdings(self, portfolio_id: str) -> List[Holding]:
        ...


class OptimizationGateway(Protocol):
    async def request_fresh_signal(self, portfolio_id: str) -> ActionResult:
        ...

    async def request_optimization(self, portfolio_id: str) -> Dict[str, Any]:
        ...

    async def get_optimization_history(self, portfolio_id: str) -> List[Dict[str, Any]]:
        ...

    async def apply_optimization(self, optimization_id: str) -> Dict[str, Any]:
        ...

    async def cancel_optimization(self, optimization_id: str) -> Dict[str, Any]:
        ...


class TransactionSource(Protocol):
    async def get_user_transactions(self) -> List[Transaction]:
        ...

    async def get_portfolio_transactions(self, portfolio_id: str) -> List[Transaction]:
        ...
