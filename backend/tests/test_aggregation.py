from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from seedbank.core.errors import InsufficientData
from seedbank.domain import IndicatorSeries, MeasureType, SnapshotPoint, aggregate, score_indicator
from seedbank.domain.aggregation import percentage_variation

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _series(indicator_id: str, values: dict[str, float], *, offset_days: int = 0) -> IndicatorSeries:
    return IndicatorSeries(
        indicator_id=indicator_id,
        name=indicator_id,
        snapshots=[
            SnapshotPoint(
                measure_type=MeasureType(measure),
                value=value,
                observed_at=START + timedelta(days=offset_days),
            )
            for measure, value in values.items()
        ],
    )


def test_percentage_variation_is_signed():
    assert percentage_variation(100.0, 110.0) == pytest.approx(10.0)
    assert percentage_variation(200.0, 150.0) == pytest.approx(-25.0)
    assert percentage_variation(-50.0, -25.0) == pytest.approx(-50.0)


def test_score_indicator_weights_every_window():
    series = _series(
        "unemployment",
        {"baseline": 100.0, "30d": 110.0, "90d": 120.0, "180d": 130.0, "365d": 140.0},
    )

    result = score_indicator(series)

    assert result is not None
    # 10*0.2 + 20*0.3 + 30*0.3 + 40*0.2
    assert result.score == pytest.approx(25.0)
    assert [item.measure_type for item in result.variations] == [
        MeasureType.D30,
        MeasureType.D90,
        MeasureType.D180,
        MeasureType.D365,
    ]


def test_missing_windows_do_not_renormalise_weights():
    series = _series("housing", {"baseline": 100.0, "30d": 150.0})

    result = score_indicator(series)

    assert result is not None
    assert result.score == pytest.approx(10.0)


@pytest.mark.parametrize(
    "values",
    [
        {"30d": 110.0, "90d": 120.0},
        {"baseline": 0.0, "30d": 110.0},
        {"baseline": 100.0},
    ],
)
def test_unusable_indicators_score_none(values):
    assert score_indicator(_series("broken", values)) is None


def test_latest_snapshot_per_measure_wins():
    series = _series("prices", {"baseline": 100.0, "30d": 90.0})
    series.snapshots.extend(_series("prices", {"30d": 130.0}, offset_days=30).snapshots)

    result = score_indicator(series)

    assert result is not None
    assert result.variations[0].current == 130.0
    assert result.score == pytest.approx(6.0)


def test_aggregate_averages_usable_indicators():
    indicators = [
        _series("a", {"baseline": 100.0, "30d": 110.0, "90d": 120.0, "180d": 130.0, "365d": 140.0}),
        _series("b", {"baseline": 100.0, "30d": 150.0}),
        _series("c", {"baseline": 0.0, "30d": 500.0}),
    ]

    result = aggregate(indicators)

    assert result.score == pytest.approx((25.0 + 10.0) / 2)
    assert [item.indicator_id for item in result.indicators] == ["a", "b"]
    details = result.details()
    assert details["indicators_used"] == 2
    assert details["indicator_scores"] == {"a": 25.0, "b": 10.0}


def test_aggregate_counts_significant_variations():
    indicators = [
        _series("a", {"baseline": 100.0, "30d": 102.0, "90d": 94.0, "180d": 105.0}),
    ]

    result = aggregate(indicators)

    assert result.neutral_variations == 1
    assert result.negative_variations == 1
    assert result.positive_variations == 1


def test_aggregate_without_usable_indicators_raises():
    with pytest.raises(InsufficientData):
        aggregate([])
    with pytest.raises(InsufficientData):
        aggregate([_series("only-baseline", {"baseline": 10.0})])
