from datetime import datetime, timezone

import pytest

from portfolio_dashboard.domain.models import PayloadError, RecommendationAction
from portfolio_dashboard.domain.schemas.optimization import (
    DEFAULT_EXPLANATION,
    parse_optimization_result,
    to_number,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        (3, 3.0),
        (2.5, 2.5),
        ("1.75", 1.75),
        (" 4 ", 4.0),
        ("abc", 0.0),
        ("", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
        ("Infinity", 0.0),
        ({"x": 1}, 0.0),
    ],
)
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_parse_full_payload():
    result = parse_optimization_result(
        {
            "optimizationId": "abc",
            "userId": "u1",
            "recommendations": [
                {
                    "symbol": "AAPL",
                    "currentQuantity": "10",
                    "recommendedQuantity": 12,
                    "currentWeight": 0.4,
                    "targetWeight": "0.5",
                    "action": "BUY",
                    "reason": "momentum",
                },
            ],
            "confidence": "0.82",
            "explanation": "Shift toward tech",
            "timestamp": "2024-05-01T10:00:00Z",
            "successful": True,
            "status": "Completed",
            "metrics": {"sharpeRatio": "1.2", "meanReturn": 0.01, "variance": "NaN", "expectedReturn": 0.07},
        }
    )

    assert result.optimization_id == "abc"
    assert result.user_id == "u1"
    assert result.confidence == pytest.approx(0.82)
    assert result.timestamp == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert result.status == "Completed"

    rec = result.recommendations[0]
    assert rec.current_quantity == 10
    assert rec.recommended_quantity == 12
    assert rec.quantity_change == 2
    assert rec.weight_change == pytest.approx(0.1)
    assert rec.action == RecommendationAction.BUY

    assert result.metrics.sharpe_ratio == pytest.approx(1.2)
    assert result.metrics.variance == 0.0


def test_target_quantity_wins_over_recommended_quantity():
    result = parse_optimization_result(
        {"recommendations": [{"symbol": "MSFT", "targetQuantity": "7", "recommendedQuantity": 3}]}
    )
    assert result.recommendations[0].recommended_quantity == 7


def test_zero_target_quantity_falls_back_to_recommended():
    result = parse_optimization_result(
        {"recommendations": [{"symbol": "MSFT", "targetQuantity": 0, "recommendedQuantity": 3}]}
    )
    assert result.recommendations[0].recommended_quantity == 3


def test_sparse_payload_gets_defaults():
    result = parse_optimization_result({"recommendations": None, "confidence": None})

    assert result.recommendations == ()
    assert result.confidence == 0.0
    assert result.explanation == DEFAULT_EXPLANATION
    assert result.successful is True
    assert result.optimization_id is None
    assert result.status == ""
    assert result.metrics is None
    assert result.timestamp.tzinfo is not None


def test_successful_only_false_when_explicitly_false():
    assert parse_optimization_result({"successful": False}).successful is False
    assert parse_optimization_result({"successful": None}).successful is True
    assert parse_optimization_result({"successful": 0}).successful is True


def test_garbage_entries_are_dropped_and_unknown_action_holds():
    result = parse_optimization_result(
        {"recommendations": ["junk", 42, {"symbol": "X", "action": "liquidate"}], "optimizationId": "  "}
    )
    assert len(result.recommendations) == 1
    assert result.recommendations[0].action == RecommendationAction.HOLD
    assert result.optimization_id is None


def test_unparseable_timestamp_defaults_to_now():
    before = datetime.now(timezone.utc)
    result = parse_optimization_result({"timestamp": "yesterday-ish"})
    assert result.timestamp >= before


@pytest.mark.parametrize("raw", [None, "oops", ["a", "b"], 12])
def test_non_object_payload_is_payload_error(raw):
    result = parse_optimization_result(raw)
    assert isinstance(result, PayloadError)
    assert "not an object" in result.reason
