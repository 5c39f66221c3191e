"""Weighted multi-window aggregation of indicator snapshots."""

from __future__ import annotations

from collections.abc import Sequence

from seedbank.core.errors import InsufficientData

from .models import (
    WINDOW_MEASURES,
    AggregateScore,
    IndicatorScore,
    IndicatorSeries,
    MeasureType,
    SnapshotPoint,
    WindowVariation,
)
from .rules import DEFAULT_RULES, RuleSet


def percentage_variation(baseline: float, current: float) -> float:
    return (current - baseline) / baseline * 100.0


def _latest_by_measure(snapshots: Sequence[SnapshotPoint]) -> dict[MeasureType, SnapshotPoint]:
    latest: dict[MeasureType, SnapshotPoint] = {}
    for point in snapshots:
        current = latest.get(point.measure_type)
        if current is None or point.observed_at >= current.observed_at:
            latest[point.measure_type] = point
    return latest


def score_indicator(series: IndicatorSeries, rules: RuleSet = DEFAULT_RULES) -> IndicatorScore | None:
    """Return the weighted score of one indicator, or None when it has no usable data.

    Windows without a snapshot contribute nothing and the remaining weights are
    left as they are, so missing data shrinks the magnitude of the score.
    """

    latest = _latest_by_measure(series.snapshots)
    baseline = latest.get(MeasureType.BASELINE)
    if baseline is None or baseline.value == 0:
        return None

    variations: list[WindowVariation] = []
    for measure in WINDOW_MEASURES:
        point = latest.get(measure)
        if point is None:
            continue
        weight = rules.window_weights.for_measure(measure)
        variations.append(
            WindowVariation(
                indicator_id=series.indicator_id,
                measure_type=measure,
                baseline=baseline.value,
                current=point.value,
                absolute=point.value - baseline.value,
                percentage=percentage_variation(baseline.value, point.value),
                weight=weight,
            )
        )

    if not variations:
        return None

    score = sum(item.percentage * item.weight for item in variations)
    return IndicatorScore(
        indicator_id=series.indicator_id,
        name=series.name,
        score=score,
        variations=variations,
    )


def aggregate(
    indicators: Sequence[IndicatorSeries], rules: RuleSet = DEFAULT_RULES
) -> AggregateScore:
    """Average indicator scores (equal weight per indicator) into one decision score."""

    scored = [
        result
        for result in (score_indicator(series, rules) for series in indicators)
        if result is not None
    ]
    if len(scored) < max(rules.min_indicators, 1):
        raise InsufficientData(
            f"{len(scored)} of {len(indicators)} indicators have usable snapshots; "
            f"at least {max(rules.min_indicators, 1)} required"
        )

    aggregate_score = AggregateScore(score=sum(item.score for item in scored) / len(scored))
    aggregate_score.indicators = scored
    for item in scored:
        for variation in item.variations:
            if abs(variation.percentage) < rules.significant_change_pct:
                aggregate_score.neutral_variations += 1
            elif variation.percentage > 0:
                aggregate_score.positive_variations += 1
            else:
                aggregate_score.negative_variations += 1
    return aggregate_score
