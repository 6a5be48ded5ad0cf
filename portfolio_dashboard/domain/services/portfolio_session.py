"""
Portfolio Session
Tracks the selected portfolio and its holdings.

Switching portfolios discards any optimization state tied to the previous
one; holdings fetches are deduplicated per portfolio by the request guard.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from portfolio_dashboard.domain.models import Holding, Portfolio, PortfolioSnapshot
from portfolio_dashboard.domain.services.optimization_coordinator import OptimizationCoordinator
from portfolio_dashboard.infrastructure.api.errors import ApiError
from portfolio_dashboard.infrastructure.api.types import PortfolioSource
from portfolio_dashboard.infrastructure.throttle.request_guard import GenerationCounter, RequestGuard

logger = logging.getLogger(__name__)

HOLDINGS_ERROR_MESSAGE = "Failed to fetch portfolio stocks"
PORTFOLIO_ERROR_MESSAGE = "Failed to fetch portfolio"


class PortfolioSession:
    def __init__(
        self,
        source: PortfolioSource,
        guard: RequestGuard,
        generations: GenerationCounter,
        coordinator: Optional[OptimizationCoordinator] = None,
    ):
        self.source = source
        self.guard = guard
        self.generations = generations
        self.coordinator = coordinator

        self.portfolio_id: Optional[str] = None
        self.portfolio: Optional[Portfolio] = None
        self.holdings: List[Holding] = []
        self.error: Optional[str] = None
        self.loading = False

    @staticmethod
    def _key(portfolio_id: str) -> str:
        return f"holdings:{portfolio_id}"

    async def select_portfolio(self, portfolio_id: str) -> bool:
        """
        Make `portfolio_id` the selected portfolio.

        Returns False when it already is (nothing is reloaded).
        """
        if portfolio_id == self.portfolio_id:
            return False

        if self.portfolio_id is not None:
            self.generations.invalidate(self._key(self.portfolio_id))
        logger.info("Switching portfolio %s -> %s", self.portfolio_id, portfolio_id)

        self.portfolio_id = portfolio_id
        self.portfolio = None
        self.holdings = []
        self.error = None
        self.loading = False
        if self.coordinator is not None:
            self.coordinator.discard(portfolio_id)

        try:
            portfolio = await self.source.get_portfolio(portfolio_id)
        except ApiError as exc:
            logger.error("Error fetching portfolio %s: %s", portfolio_id, exc)
            if self.portfolio_id == portfolio_id:
                self.error = PORTFOLIO_ERROR_MESSAGE
        else:
            if self.portfolio_id == portfolio_id:
                self.portfolio = portfolio

        # A fetch for this id left over from an earlier selection is stale by now
        await self.fetch_holdings(portfolio_id, force=True)
        return True

    async def fetch_holdings(
        self,
        portfolio_id: str,
        ignore_throttle: bool = False,
        force: bool = False,
    ) -> Optional[List[Holding]]:
        """
        Load holdings for `portfolio_id`.

        `force` skips the throttle and supersedes a pending fetch for the same
        id. Returns the holdings this call committed, or None when the call was
        skipped by the guard, failed, or was overtaken by a newer one.
        """
        key = self._key(portfolio_id)
        async with self.guard.guarded(key, ignore_throttle=ignore_throttle or force, ignore_pending=force) as started:
            if not started:
                return None

            generation = self.generations.issue(key)
            self.loading = True
            try:
                holdings = await self.source.get_holdings(portfolio_id)
            except ApiError as exc:
                logger.error("Error fetching portfolio stocks for %s: %s", portfolio_id, exc)
                if self._owns(key, generation, portfolio_id):
                    self.error = HOLDINGS_ERROR_MESSAGE
                    self.loading = False
                return None

            if not self._owns(key, generation, portfolio_id):
                logger.debug("Discarding stale holdings for %s", portfolio_id)
                return None

            self.holdings = list(holdings)
            self.error = None
            self.loading = False
            logger.info("Loaded %d holdings for portfolio %s", len(self.holdings), portfolio_id)
            return list(self.holdings)

    async def reload_holdings(self, portfolio_id: str) -> Optional[List[Holding]]:
        """Refetch after upstream changes (apply/cancel); skips only the throttle window."""
        return await self.fetch_holdings(portfolio_id, ignore_throttle=True)

    def _owns(self, key: str, generation: int, portfolio_id: str) -> bool:
        return self.portfolio_id == portfolio_id and self.generations.is_current(key, generation)

    def snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(holdings=tuple(self.holdings))
