"""Pure resolution, settlement and rule logic with no persistence concerns."""

from .aggregation import aggregate, score_indicator
from .classification import classify
from .models import (
    WINDOW_MEASURES,
    AggregateScore,
    Classification,
    IndicatorScore,
    IndicatorSeries,
    MeasureType,
    NormalizedIndicator,
    NormalizedSnapshot,
    Outcome,
    SettlementQuote,
    SnapshotPoint,
    WindowVariation,
)
from .rules import DEFAULT_RULES, RuleSet, WindowWeights, level_for_balance
from .settlement import quote

__all__ = [
    "AggregateScore",
    "Classification",
    "DEFAULT_RULES",
    "IndicatorScore",
    "IndicatorSeries",
    "MeasureType",
    "NormalizedIndicator",
    "NormalizedSnapshot",
    "Outcome",
    "RuleSet",
    "SettlementQuote",
    "SnapshotPoint",
    "WINDOW_MEASURES",
    "WindowVariation",
    "WindowWeights",
    "aggregate",
    "classify",
    "level_for_balance",
    "quote",
    "score_indicator",
]
