import asyncio
from datetime import date, timedelta
from typing import Dict, List, Optional

import pytest

from portfolio_dashboard.domain.models import ActionResult, Holding, Portfolio, PricePoint, Transaction
from portfolio_dashboard.infrastructure.throttle.request_guard import (
    GenerationCounter,
    RequestGuard,
    RequestStateStore,
)


class FakeClock:
    """Monotonic clock the tests move by hand (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000.0


class FakeMarketData:
    def __init__(self):
        self.history: Dict[str, List[PricePoint]] = {}
        self.latest: Dict[str, List[PricePoint]] = {}
        self.failing: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    def add_closes(self, symbol: str, closes: List[Optional[float]], end: date) -> None:
        """Register daily closes (oldest to newest) ending on `end`."""
        start = end - timedelta(days=len(closes) - 1)
        self.history[symbol] = [
            PricePoint(symbol=symbol, date=start + timedelta(days=i), close=close)
            for i, close in enumerate(closes)
        ]

    async def get_historical_prices(self, symbol, start, end):
        self.calls.append(("history", symbol, start, end))
        if symbol in self.failing:
            raise self.failing[symbol]
        return list(self.history.get(symbol, []))

    async def get_latest_prices(self, symbol, count=2):
        self.calls.append(("latest", symbol, count))
        if symbol in self.failing:
            raise self.failing[symbol]
        return list(self.latest.get(symbol, []))[:count]


class FakeOptimizationGateway:
    def __init__(self):
        self.calls: List[tuple] = []
        self.refresh_result = ActionResult(successful=True, message="New prediction generated")
        self.refresh_error: Optional[Exception] = None
        self.optimize_payload: object = {
            "optimizationId": "opt-1",
            "recommendations": [
                {"symbol": "AAPL", "currentQuantity": 10, "targetQuantity": 12, "action": "buy"},
            ],
            "confidence": 0.8,
            "explanation": "Rebalance toward AAPL",
            "timestamp": "2024-05-01T10:00:00Z",
            "successful": True,
        }
        self.optimize_error: Optional[Exception] = None
        self.optimize_gate: Optional[asyncio.Event] = None
        self.history: List[dict] = []
        self.history_error: Optional[Exception] = None
        self.apply_response: dict = {"successful": True, "message": "Optimization applied successfully"}
        self.apply_error: Optional[Exception] = None
        self.cancel_response: dict = {"successful": True, "message": "Optimization canceled successfully"}
        self.cancel_error: Optional[Exception] = None

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def request_fresh_signal(self, portfolio_id):
        self.calls.append(("refresh", portfolio_id))
        if self.refresh_error:
            raise self.refresh_error
        return self.refresh_result

    async def request_optimization(self, portfolio_id):
        self.calls.append(("optimize", portfolio_id))
        if self.optimize_gate is not None:
            await self.optimize_gate.wait()
        if self.optimize_error:
            raise self.optimize_error
        return self.optimize_payload

    async def get_optimization_history(self, portfolio_id):
        self.calls.append(("history", portfolio_id))
        if self.history_error:
            raise self.history_error
        return list(self.history)

    async def apply_optimization(self, optimization_id):
        self.calls.append(("apply", optimization_id))
        if self.apply_error:
            raise self.apply_error
        return self.apply_response

    async def cancel_optimization(self, optimization_id):
        self.calls.append(("cancel", optimization_id))
        if self.cancel_error:
            raise self.cancel_error
        return self.cancel_response


class FakePortfolioSource:
    def __init__(self):
        self.portfolios: Dict[str, Portfolio] = {}
        self.holdings: Dict[str, List[Holding]] = {}
        self.holdings_error: Optional[Exception] = None
        self.holdings_gate: Optional[asyncio.Event] = None
        self.calls: List[tuple] = []

    async def get_portfolio(self, portfolio_id):
        self.calls.append(("portfolio", portfolio_id))
        return self.portfolios.get(portfolio_id) or Portfolio(id=portfolio_id, name=f"Portfolio {portfolio_id}")

    async def get_holdings(self, portfolio_id):
        self.calls.append(("holdings", portfolio_id))
        if self.holdings_gate is not None:
            await self.holdings_gate.wait()
        if self.holdings_error:
            raise self.holdings_error
        return list(self.holdings.get(portfolio_id, []))


class FakeTransactionSource:
    def __init__(self):
        self.user_transactions: List[Transaction] = []
        self.by_portfolio: Dict[str, List[Transaction]] = {}
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []

    async def get_user_transactions(self):
        self.calls.append(("user",))
        if self.error:
            raise self.error
        return list(self.user_transactions)

    async def get_portfolio_transactions(self, portfolio_id):
        self.calls.append(("portfolio", portfolio_id))
        if self.error:
            raise self.error
        return list(self.by_portfolio.get(portfolio_id, []))


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return RequestStateStore()


@pytest.fixture
def guard(store, clock):
    return RequestGuard(store, throttle_window_ms=2000, cooldown_ms=500, clock=clock)


@pytest.fixture
def generations(store):
    return GenerationCounter(store)


@pytest.fixture
def market_data():
    return FakeMarketData()


@pytest.fixture
def gateway():
    return FakeOptimizationGateway()


@pytest.fixture
def portfolio_source():
    return FakePortfolioSource()


@pytest.fixture
def transaction_source():
    return FakeTransactionSource()


@pytest.fixture
def settle_tasks():
    return settle
