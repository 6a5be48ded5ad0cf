"""
Dashboard runtime: REST client, request guard, and the dashboard services
wired together for one user session.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

import httpx

from portfolio_dashboard.config import Settings, settings as default_settings
from portfolio_dashboard.core.logging import setup_logging
from portfolio_dashboard.domain.models import PerformanceSummary, TimeRange, ValuationPoint
from portfolio_dashboard.domain.services.change_aggregator import ChangeAggregator, ChangeSummary
from portfolio_dashboard.domain.services.optimization_coordinator import OptimizationCoordinator
from portfolio_dashboard.domain.services.portfolio_session import PortfolioSession
from portfolio_dashboard.domain.services.transaction_service import TransactionService
from portfolio_dashboard.domain.services.valuation_reconstructor import (
    ValuationReconstructor,
    summarize_performance,
)
from portfolio_dashboard.infrastructure.api.business_domain_client import BusinessDomainClient
from portfolio_dashboard.infrastructure.throttle.request_guard import (
    GenerationCounter,
    RequestGuard,
    RequestStateStore,
)

logger = logging.getLogger(__name__)


class DashboardRuntime:
    def __init__(self, config: Settings, client: BusinessDomainClient, guard: RequestGuard):
        self.config = config
        self.client = client
        self.guard = guard
        generations = GenerationCounter(guard.store)

        self.coordinator = OptimizationCoordinator(client, guard, generations)
        self.session = PortfolioSession(client, guard, generations, coordinator=self.coordinator)
        self.transactions = TransactionService(client, guard, generations)
        self.valuation = ValuationReconstructor(client)
        self.changes = ChangeAggregator(client, sample_count=config.DAILY_CHANGE_SAMPLES)

        # Applying or canceling changes holdings and creates transactions upstream
        self.coordinator.add_listener(self.session.reload_holdings)
        self.coordinator.add_listener(self.transactions.reload_portfolio_transactions)

    @property
    def default_time_range(self) -> TimeRange:
        try:
            return TimeRange(self.config.DEFAULT_TIME_RANGE)
        except ValueError:
            logger.warning("Unknown DEFAULT_TIME_RANGE %r, using 1M", self.config.DEFAULT_TIME_RANGE)
            return TimeRange.ONE_MONTH

    async def select_portfolio(self, portfolio_id: str) -> bool:
        changed = await self.session.select_portfolio(portfolio_id)
        if changed:
            await self.transactions.fetch_portfolio_transactions(portfolio_id)
        return changed

    async def valuation_curve(
        self,
        time_range: Optional[TimeRange] = None,
        today: Optional[date] = None,
    ) -> List[ValuationPoint]:
        snapshot = self.session.snapshot()
        return await self.valuation.reconstruct(
            snapshot.holdings,
            time_range=time_range or self.default_time_range,
            current_value=snapshot.total_value,
            today=today,
        )

    async def performance(
        self,
        time_range: Optional[TimeRange] = None,
        today: Optional[date] = None,
    ) -> PerformanceSummary:
        points = await self.valuation_curve(time_range, today=today)
        return summarize_performance(points, current_value=self.session.snapshot().total_value)

    async def daily_change(self) -> ChangeSummary:
        return await self.changes.daily_change(self.session.holdings)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "DashboardRuntime":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def build_runtime(
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    configure_logging: bool = True,
) -> DashboardRuntime:
    """Create a runtime from settings; `transport` replaces the network in tests."""
    config = config or default_settings
    if configure_logging:
        setup_logging(config.LOG_LEVEL)

    client = BusinessDomainClient(
        base_url=config.BUSINESS_DOMAIN_URL,
        auth_token=config.AUTH_TOKEN,
        timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
        transport=transport,
    )
    guard = RequestGuard(
        RequestStateStore(),
        throttle_window_ms=config.THROTTLE_WINDOW_MS,
        cooldown_ms=config.PENDING_COOLDOWN_MS,
    )
    logger.info("🚀 Dashboard runtime ready | env=%s api=%s", config.APP_ENV, client.base_url)
    return DashboardRuntime(config, client, guard)
