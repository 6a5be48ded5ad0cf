"""
Transaction Service
Guarded transaction fetches and grouping of the trades an applied
optimization produced.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from portfolio_dashboard.domain.models import (
    OptimizationTransactionGroup,
    Transaction,
    TransactionTrigger,
)
from portfolio_dashboard.infrastructure.api.errors import ApiError
from portfolio_dashboard.infrastructure.api.types import TransactionSource
from portfolio_dashboard.infrastructure.throttle.request_guard import GenerationCounter, RequestGuard

logger = logging.getLogger(__name__)

USER_TRANSACTIONS_KEY = "transactions:user"


def group_by_optimization(transactions: Iterable[Transaction]) -> List[OptimizationTransactionGroup]:
    """
    Group optimization-triggered transactions by optimization id.

    Groups keep the order in which their first transaction appears.
    """
    grouped: Dict[str, List[Transaction]] = {}
    for tx in transactions:
        if tx.triggered_by != TransactionTrigger.OPTIMIZATION or not tx.optimization_id:
            continue
        grouped.setdefault(tx.optimization_id, []).append(tx)

    return [
        OptimizationTransactionGroup(optimization_id=opt_id, transactions=tuple(txs))
        for opt_id, txs in grouped.items()
    ]


class TransactionService:
    def __init__(
        self,
        source: TransactionSource,
        guard: RequestGuard,
        generations: GenerationCounter,
    ):
        self.source = source
        self.guard = guard
        self.generations = generations

        self.transactions: List[Transaction] = []
        self.portfolio_transactions: Dict[str, List[Transaction]] = {}
        self.error: Optional[str] = None
        self.loading = False

    async def _guarded_fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[List[Transaction]]],
        error_message: str,
        ignore_throttle: bool,
    ) -> Optional[List[Transaction]]:
        async with self.guard.guarded(key, ignore_throttle=ignore_throttle) as started:
            if not started:
                return None

            generation = self.generations.issue(key)
            self.loading = True
            try:
                transactions = await loader()
            except ApiError as exc:
                logger.error("%s (%s): %s", error_message, key, exc)
                if self.generations.is_current(key, generation):
                    self.error = error_message
                    self.loading = False
                return None

            if not self.generations.is_current(key, generation):
                logger.debug("Discarding stale transactions for %s", key)
                return None

            self.error = None
            self.loading = False
            return list(transactions)

    # ------------------------------------------------------------------
    # FETCH
    # ------------------------------------------------------------------

    async def fetch_user_transactions(self, ignore_throttle: bool = False) -> Optional[List[Transaction]]:
        transactions = await self._guarded_fetch(
            USER_TRANSACTIONS_KEY,
            self.source.get_user_transactions,
            "Failed to fetch transactions",
            ignore_throttle,
        )
        if transactions is not None:
            self.transactions = transactions
            logger.info("Loaded %d transactions", len(transactions))
        return transactions

    async def fetch_portfolio_transactions(
        self,
        portfolio_id: str,
        ignore_throttle: bool = False,
    ) -> Optional[List[Transaction]]:
        transactions = await self._guarded_fetch(
            f"transactions:{portfolio_id}",
            lambda: self.source.get_portfolio_transactions(portfolio_id),
            "Failed to fetch portfolio transactions",
            ignore_throttle,
        )
        if transactions is not None:
            self.portfolio_transactions[portfolio_id] = transactions
            logger.info("Loaded %d transactions for portfolio %s", len(transactions), portfolio_id)
        return transactions

    async def reload_portfolio_transactions(self, portfolio_id: str) -> Optional[List[Transaction]]:
        return await self.fetch_portfolio_transactions(portfolio_id, ignore_throttle=True)

    # ------------------------------------------------------------------
    # OPTIMIZATION GROUPS
    # ------------------------------------------------------------------

    def _known_transactions(self, portfolio_id: Optional[str] = None) -> List[Transaction]:
        if portfolio_id is not None:
            return list(self.portfolio_transactions.get(portfolio_id, []))

        seen = set()
        merged: List[Transaction] = []
        for tx in [*self.transactions, *(t for txs in self.portfolio_transactions.values() for t in txs)]:
            if tx.id in seen:
                continue
            seen.add(tx.id)
            merged.append(tx)
        return merged

    def optimization_groups(self, portfolio_id: Optional[str] = None) -> List[OptimizationTransactionGroup]:
        return group_by_optimization(self._known_transactions(portfolio_id))

    def find_group(
        self,
        optimization_id: str,
        portfolio_id: Optional[str] = None,
    ) -> Optional[OptimizationTransactionGroup]:
        for group in self.optimization_groups(portfolio_id):
            if group.optimization_id == optimization_id:
                return group
        return None
