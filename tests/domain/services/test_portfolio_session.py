import asyncio

import pytest

from portfolio_dashboard.domain.models import Holding, OptimizationStatus
from portfolio_dashboard.domain.services.optimization_coordinator import OptimizationCoordinator
from portfolio_dashboard.domain.services.portfolio_session import (
    HOLDINGS_ERROR_MESSAGE,
    PortfolioSession,
)
from portfolio_dashboard.infrastructure.api.errors import ConflictError, NetworkFailure


@pytest.fixture
def coordinator(gateway, guard, generations):
    return OptimizationCoordinator(gateway, guard, generations)


@pytest.fixture
def session(portfolio_source, guard, generations, coordinator):
    portfolio_source.holdings["p1"] = [
        Holding(symbol="AAPL", quantity=10, current_total_value=1800, total_base_value=1500),
        Holding(symbol="MSFT", quantity=5, current_total_value=2000, total_base_value=2100),
    ]
    portfolio_source.holdings["p2"] = [Holding(symbol="NVDA", quantity=1, current_total_value=900)]
    return PortfolioSession(portfolio_source, guard, generations, coordinator=coordinator)


@pytest.mark.asyncio
async def test_select_portfolio_loads_portfolio_and_holdings(session):
    assert await session.select_portfolio("p1") is True

    assert session.portfolio.id == "p1"
    assert [h.symbol for h in session.holdings] == ["AAPL", "MSFT"]
    assert session.error is None
    assert session.loading is False


@pytest.mark.asyncio
async def test_select_same_portfolio_is_noop(session, portfolio_source):
    await session.select_portfolio("p1")
    calls = len(portfolio_source.calls)

    assert await session.select_portfolio("p1") is False
    assert len(portfolio_source.calls) == calls


@pytest.mark.asyncio
async def test_switch_discards_optimization_state(session, coordinator, gateway):
    await session.select_portfolio("p1")
    gateway.optimize_error = ConflictError("Optimization ID: 123e4567-e89b-12d3-a456-426614174000", status_code=409)
    await coordinator.optimize("p1")
    assert coordinator.status == OptimizationStatus.CONFLICT

    await session.select_portfolio("p2")

    state = coordinator.snapshot()
    assert state.portfolio_id == "p2"
    assert state.in_progress_optimization_id is None
    assert state.error is None
    assert [h.symbol for h in session.holdings] == ["NVDA"]


@pytest.mark.asyncio
async def test_fetch_holdings_throttled(session, portfolio_source, clock):
    await session.select_portfolio("p1")
    clock.advance_ms(600)

    assert await session.fetch_holdings("p1") is None
    assert sum(1 for c in portfolio_source.calls if c[0] == "holdings") == 1

    clock.advance_ms(2000)
    assert await session.fetch_holdings("p1") is not None


@pytest.mark.asyncio
async def test_reload_bypasses_throttle(session, portfolio_source, clock):
    await session.select_portfolio("p1")
    clock.advance_ms(600)

    holdings = await session.reload_holdings("p1")

    assert [h.symbol for h in holdings] == ["AAPL", "MSFT"]
    assert sum(1 for c in portfolio_source.calls if c[0] == "holdings") == 2


@pytest.mark.asyncio
async def test_fetch_failure_sets_error(session, portfolio_source):
    portfolio_source.holdings_error = NetworkFailure("down", status_code=503)

    await session.select_portfolio("p1")

    assert session.error == HOLDINGS_ERROR_MESSAGE
    assert session.holdings == []
    assert session.loading is False


@pytest.mark.asyncio
async def test_stale_holdings_from_previous_portfolio_are_dropped(session, portfolio_source, clock, settle_tasks):
    await session.select_portfolio("p1")
    portfolio_source.holdings_gate = asyncio.Event()
    clock.advance_ms(600)

    # Bypass the throttle so the p1 fetch is in flight during the switch
    in_flight = asyncio.create_task(session.reload_holdings("p1"))
    await settle_tasks()
    switch = asyncio.create_task(session.select_portfolio("p2"))
    await settle_tasks()
    portfolio_source.holdings_gate.set()

    assert await in_flight is None
    await switch
    assert session.portfolio_id == "p2"
    assert [h.symbol for h in session.holdings] == ["NVDA"]


@pytest.mark.asyncio
async def test_snapshot_totals(session):
    await session.select_portfolio("p1")

    snapshot = session.snapshot()

    assert snapshot.total_value == 3800
    assert snapshot.total_invested == 3600
    assert snapshot.total_pnl == 200
    assert snapshot.total_pnl_pct == pytest.approx(5.5556, abs=1e-3)
    assert snapshot.holding_count == 2


@pytest.mark.asyncio
async def test_switch_back_within_throttle_window_reloads(session, portfolio_source, clock):
    await session.select_portfolio("p1")
    clock.advance_ms(600)
    await session.select_portfolio("p2")
    clock.advance_ms(600)

    assert await session.select_portfolio("p1") is True

    assert [h.symbol for h in session.holdings] == ["AAPL", "MSFT"]
    assert session.snapshot().total_value == 3800
    assert session.error is None
    assert portfolio_source.calls.count(("holdings", "p1")) == 2


@pytest.mark.asyncio
async def test_switch_back_while_first_fetch_pending(session, portfolio_source, settle_tasks):
    portfolio_source.holdings_gate = asyncio.Event()

    first = asyncio.create_task(session.select_portfolio("p1"))
    await settle_tasks()
    to_p2 = asyncio.create_task(session.select_portfolio("p2"))
    await settle_tasks()
    back = asyncio.create_task(session.select_portfolio("p1"))
    await settle_tasks()
    assert portfolio_source.calls.count(("holdings", "p1")) == 2

    portfolio_source.holdings_gate.set()
    await asyncio.gather(first, to_p2, back)

    assert session.portfolio_id == "p1"
    assert [h.symbol for h in session.holdings] == ["AAPL", "MSFT"]
    assert session.loading is False
    assert session.error is None
