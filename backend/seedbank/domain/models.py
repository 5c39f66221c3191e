"""Typed domain representations shared by ingestion, services and APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class Outcome(str, Enum):
    WORKS = "works"
    PARTIAL = "partial"
    FAILS = "fails"


class MeasureType(str, Enum):
    BASELINE = "baseline"
    D30 = "30d"
    D90 = "90d"
    D180 = "180d"
    D365 = "365d"


WINDOW_MEASURES: tuple[MeasureType, ...] = (
    MeasureType.D30,
    MeasureType.D90,
    MeasureType.D180,
    MeasureType.D365,
)


@dataclass(slots=True)
class NormalizedSnapshot:
    """Clean indicator observation ready for persistence."""

    indicator_id: str
    measure_type: MeasureType
    value: float
    observed_at: datetime
    source: str
    source_url: str | None = None
    indicator_name: str | None = None
    unit: str | None = None


@dataclass(slots=True)
class NormalizedIndicator:
    """Indicator metadata plus the snapshots parsed from one feed payload."""

    indicator_id: str
    name: str
    slug: str | None = None
    unit: str | None = None
    snapshots: list[NormalizedSnapshot] = field(default_factory=list)


@dataclass(slots=True)
class SnapshotPoint:
    measure_type: MeasureType
    value: float
    observed_at: datetime


@dataclass(slots=True)
class IndicatorSeries:
    """All snapshots known for one indicator of a decision."""

    indicator_id: str
    name: str
    snapshots: list[SnapshotPoint] = field(default_factory=list)


@dataclass(slots=True)
class WindowVariation:
    indicator_id: str
    measure_type: MeasureType
    baseline: float
    current: float
    absolute: float
    percentage: float
    weight: float


@dataclass(slots=True)
class IndicatorScore:
    indicator_id: str
    name: str
    score: float
    variations: list[WindowVariation] = field(default_factory=list)


@dataclass(slots=True)
class AggregateScore:
    """Weighted decision score plus the transparency counters behind it."""

    score: float
    indicators: list[IndicatorScore] = field(default_factory=list)
    positive_variations: int = 0
    negative_variations: int = 0
    neutral_variations: int = 0

    def details(self) -> dict[str, object]:
        return {
            "score": round(self.score, 4),
            "indicators_used": len(self.indicators),
            "positive_variations": self.positive_variations,
            "negative_variations": self.negative_variations,
            "neutral_variations": self.neutral_variations,
            "indicator_scores": {
                item.indicator_id: round(item.score, 4) for item in self.indicators
            },
        }


@dataclass(frozen=True, slots=True)
class Classification:
    outcome: Outcome
    confidence: Decimal


@dataclass(frozen=True, slots=True)
class SettlementQuote:
    """Gain or loss owed on one anticipation once its decision is resolved."""

    correct: bool
    seeds_earned: int
    credit: int
    bonus: Decimal = Decimal("0")
