"""
Domain Models Package
Export all domain entities
"""

from .optimization import (
    ActionResult,
    OptimizationResult,
    OptimizationState,
    OptimizationStatus,
    PayloadError,
    PerformanceMetrics,
    Recommendation,
    RecommendationAction,
)
from .portfolio import (
    Holding,
    PerformanceSummary,
    Portfolio,
    PortfolioSnapshot,
    PricePoint,
    TimeRange,
    ValuationPoint,
)
from .transaction import (
    OptimizationTransactionGroup,
    Transaction,
    TransactionStatus,
    TransactionTrigger,
    TransactionType,
)

__all__ = [
    # Enums
    "OptimizationStatus",
    "RecommendationAction",
    "TimeRange",
    "TransactionStatus",
    "TransactionTrigger",
    "TransactionType",

    # Entities
    "ActionResult",
    "Holding",
    "OptimizationResult",
    "OptimizationState",
    "OptimizationTransactionGroup",
    "PayloadError",
    "PerformanceMetrics",
    "PerformanceSummary",
    "Portfolio",
    "PortfolioSnapshot",
    "PricePoint",
    "Recommendation",
    "Transaction",
    "ValuationPoint",
]
