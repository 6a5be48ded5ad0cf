"""
Optimization payload parsing.

The optimizer is known to return partially populated payloads: numbers as
strings, NaN, missing explanation/timestamp, `targetQuantity` instead of
`recommendedQuantity`. Every coercion happens here, once, so callers only ever
see a well-typed `OptimizationResult` or a `PayloadError`.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from portfolio_dashboard.domain.models.optimization import (
    OptimizationResult,
    PayloadError,
    PerformanceMetrics,
    Recommendation,
    RecommendationAction,
)
from portfolio_dashboard.utils.time import now_utc, safe_parse_timestamp

DEFAULT_EXPLANATION = "No explanation provided"


def to_number(value: Any) -> float:
    """Coerce an upstream numeric field to float, falling back to 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class MetricsSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sharpe_ratio: float = Field(0.0, alias="sharpeRatio")
    mean_return: float = Field(0.0, alias="meanReturn")
    variance: float = 0.0
    expected_return: float = Field(0.0, alias="expectedReturn")

    @field_validator("sharpe_ratio", "mean_return", "variance", "expected_return", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> float:
        return to_number(value)

    def to_domain(self) -> PerformanceMetrics:
        return PerformanceMetrics(
            sharpe_ratio=self.sharpe_ratio,
            mean_return=self.mean_return,
            variance=self.variance,
            expected_return=self.expected_return,
        )


class RecommendationSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    symbol: str = ""
    current_quantity: float = Field(0.0, alias="currentQuantity")
    recommended_quantity: float = Field(0.0, alias="recommendedQuantity")
    current_weight: float = Field(0.0, alias="currentWeight")
    target_weight: float = Field(0.0, alias="targetWeight")
    action: RecommendationAction = RecommendationAction.HOLD
    reason: str = ""
    explanation: str = ""

    @model_validator(mode="before")
    @classmethod
    def _prefer_target_quantity(cls, data: Any) -> Any:
        # Newer optimizer builds send targetQuantity; it wins when set
        if isinstance(data, Mapping):
            target = data.get("targetQuantity")
            if target not in (None, "", 0):
                data = dict(data)
                data["recommendedQuantity"] = target
        return data

    @field_validator("current_quantity", "recommended_quantity", "current_weight", "target_weight", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> float:
        return to_number(value)

    @field_validator("symbol", "reason", "explanation", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _to_text(value)

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, value: Any) -> str:
        normalized = _to_text(value).strip().lower()
        if normalized in {a.value for a in RecommendationAction}:
            return normalized
        return RecommendationAction.HOLD.value

    def to_domain(self) -> Recommendation:
        return Recommendation(
            symbol=self.symbol,
            current_quantity=self.current_quantity,
            recommended_quantity=self.recommended_quantity,
            current_weight=self.current_weight,
            target_weight=self.target_weight,
            action=self.action,
            reason=self.reason,
            explanation=self.explanation,
        )


class OptimizationResultSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    optimization_id: Optional[str] = Field(None, alias="optimizationId")
    user_id: Optional[str] = Field(None, alias="userId")
    recommendations: List[RecommendationSchema] = Field(default_factory=list)
    confidence: float = 0.0
    explanation: str = DEFAULT_EXPLANATION
    timestamp: datetime = Field(default_factory=now_utc)
    successful: bool = True
    status: str = ""
    error_message: Optional[str] = Field(None, alias="errorMessage")
    metrics: Optional[MetricsSchema] = None

    @field_validator("optimization_id", "user_id", "error_message", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        text = _to_text(value).strip()
        return text or None

    @field_validator("recommendations", mode="before")
    @classmethod
    def _recommendation_list(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, Mapping)]

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        return to_number(value)

    @field_validator("explanation", mode="before")
    @classmethod
    def _default_explanation(cls, value: Any) -> str:
        return _to_text(value) or DEFAULT_EXPLANATION

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        return safe_parse_timestamp(value) or now_utc()

    @field_validator("successful", mode="before")
    @classmethod
    def _coerce_successful(cls, value: Any) -> bool:
        return value is not False

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return _to_text(value)

    @field_validator("metrics", mode="before")
    @classmethod
    def _coerce_metrics(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else None

    def to_domain(self) -> OptimizationResult:
        return OptimizationResult(
            optimization_id=self.optimization_id,
            user_id=self.user_id,
            recommendations=tuple(r.to_domain() for r in self.recommendations),
            confidence=self.confidence,
            explanation=self.explanation,
            timestamp=self.timestamp,
            successful=self.successful,
            status=self.status,
            error_message=self.error_message,
            metrics=self.metrics.to_domain() if self.metrics else None,
        )


def parse_optimization_result(raw: Any) -> Union[OptimizationResult, PayloadError]:
    """
    Normalize a raw optimizer payload.

    Returns a `PayloadError` only when the payload is not an object at all or
    fails validation after coercion; missing or garbage fields are defaulted.
    """
    if not isinstance(raw, Mapping):
        return PayloadError(reason=f"Optimization payload is not an object ({type(raw).__name__})")
    try:
        schema = OptimizationResultSchema.model_validate(raw)
    except ValidationError as exc:
        return PayloadError(
            reason="Malformed optimization payload",
            details=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()],
        )
    return schema.to_domain()
