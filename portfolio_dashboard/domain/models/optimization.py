"""
DOMAIN MODELS — PORTFOLIO OPTIMIZATION

Rebalancing recommendations produced upstream and the observable state of
the optimization lifecycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class RecommendationAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class OptimizationStatus(str, Enum):
    """Lifecycle state of the optimization for the selected portfolio"""
    IDLE = "IDLE"
    REQUESTED = "REQUESTED"
    READY = "READY"
    CONFLICT = "CONFLICT"
    APPLIED = "APPLIED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class PerformanceMetrics:
    sharpe_ratio: float = 0.0
    mean_return: float = 0.0
    variance: float = 0.0
    expected_return: float = 0.0


@dataclass(frozen=True)
class Recommendation:
    symbol: str
    current_quantity: float
    recommended_quantity: float
    action: RecommendationAction
    current_weight: float = 0.0
    target_weight: float = 0.0
    reason: str = ""
    explanation: str = ""

    @property
    def quantity_change(self) -> float:
        return self.recommended_quantity - self.current_quantity

    @property
    def weight_change(self) -> float:
        return self.target_weight - self.current_weight


@dataclass(frozen=True)
class OptimizationResult:
    recommendations: Tuple[Recommendation, ...]
    confidence: float
    explanation: str
    timestamp: datetime
    successful: bool
    optimization_id: Optional[str] = None
    status: str = ""
    user_id: Optional[str] = None
    error_message: Optional[str] = None
    metrics: Optional[PerformanceMetrics] = None

    def with_optimization_id(self, optimization_id: str) -> "OptimizationResult":
        return OptimizationResult(
            recommendations=self.recommendations,
            confidence=self.confidence,
            explanation=self.explanation,
            timestamp=self.timestamp,
            successful=self.successful,
            optimization_id=optimization_id,
            status=self.status,
            user_id=self.user_id,
            error_message=self.error_message,
            metrics=self.metrics,
        )


@dataclass(frozen=True)
class PayloadError:
    """Tagged variant returned when an upstream payload cannot be used at all."""
    reason: str
    details: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ActionResult:
    successful: bool
    message: str


@dataclass(frozen=True)
class OptimizationState:
    """Read-only view of the coordinator handed to UI callers."""
    portfolio_id: Optional[str]
    status: OptimizationStatus
    result: Optional[OptimizationResult]
    error: Optional[str]
    in_progress_optimization_id: Optional[str]
    loading: bool

    @property
    def can_optimize(self) -> bool:
        return (
            self.portfolio_id is not None
            and not self.loading
            and self.in_progress_optimization_id is None
        )
