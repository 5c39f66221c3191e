"""Public, documented constants behind resolution, settlement and levels."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .models import MeasureType


@dataclass(frozen=True, slots=True)
class WindowWeights:
    d30: float = 0.20
    d90: float = 0.30
    d180: float = 0.30
    d365: float = 0.20

    def for_measure(self, measure: MeasureType) -> float:
        return {
            MeasureType.D30: self.d30,
            MeasureType.D90: self.d90,
            MeasureType.D180: self.d180,
            MeasureType.D365: self.d365,
        }.get(measure, 0.0)


@dataclass(frozen=True, slots=True)
class RuleSet:
    # Aggregation
    window_weights: WindowWeights = field(default_factory=WindowWeights)
    significant_change_pct: float = 5.0
    min_indicators: int = 1

    # Classification
    works_threshold: float = 30.0
    fails_threshold: float = -30.0
    confidence_base: float = 50.0
    confidence_max: float = 100.0

    # Settlement
    base_multiplier: Decimal = Decimal("1.5")
    exact_bonus: Decimal = Decimal("0.50")
    partial_bonus: Decimal = Decimal("0.20")
    wrong_penalty: Decimal = Decimal("0.50")
    min_gain: int = 1
    min_loss: int = 1

    # Levels
    level_step: int = 100

    # Featured argument auction
    auction_floor: int = 50

    def level_for_balance(self, balance: int) -> int:
        # floor(sqrt(b / step)) == isqrt(b // step) for whole balances
        if balance < 0:
            return 1
        return math.isqrt(balance // self.level_step) + 1

    def seeds_to_next_level(self, balance: int) -> int:
        level = self.level_for_balance(balance)
        return max(0, level * level * self.level_step - max(balance, 0))

    def describe(self) -> list[dict[str, Any]]:
        """Flatten the rule set into the entries shown on the public rules page."""

        weights = self.window_weights
        return [
            _rule("significant_change", "threshold", self.significant_change_pct, "%",
                  "Variation from which an indicator window counts as a significant move"),
            _rule("min_indicators", "threshold", self.min_indicators, "indicator(s)",
                  "Indicators with usable snapshots required to resolve a decision"),
            _rule("weight_30d", "weight", weights.d30 * 100, "%", "Weight of the 30 day window"),
            _rule("weight_90d", "weight", weights.d90 * 100, "%", "Weight of the 90 day window"),
            _rule("weight_180d", "weight", weights.d180 * 100, "%", "Weight of the 180 day window"),
            _rule("weight_365d", "weight", weights.d365 * 100, "%", "Weight of the 365 day window"),
            _rule("score_works_threshold", "scoring", self.works_threshold, "points",
                  "Weighted score at or above which a decision works"),
            _rule("score_fails_threshold", "scoring", self.fails_threshold, "points",
                  "Weighted score at or below which a decision fails"),
            _rule("confidence_calculation", "scoring",
                  f"{self.confidence_base:g} + |score|", "%",
                  f"Confidence is clamped between {self.confidence_base:g} and {self.confidence_max:g}"),
            _rule("seeds_base_multiplier", "seeds", float(self.base_multiplier), "x",
                  "Multiplier applied to engaged Seeds for a correct anticipation"),
            _rule("seeds_exact_bonus", "seeds", float(self.exact_bonus * 100), "%",
                  "Bonus for correctly anticipating works or fails"),
            _rule("seeds_partial_bonus", "seeds", float(self.partial_bonus * 100), "%",
                  "Bonus for correctly anticipating partial"),
            _rule("seeds_wrong_penalty", "seeds", float(self.wrong_penalty * 100), "%",
                  "Share of engaged Seeds lost on a wrong anticipation"),
            _rule("seeds_confidence_adjustment", "seeds", "confidence / 100", "multiplier",
                  "Gains and losses scale with the resolution confidence"),
            _rule("seeds_min_gain", "seeds", self.min_gain, "Seed(s)",
                  "Minimum gain for a correct anticipation"),
            _rule("seeds_min_loss", "seeds", self.min_loss, "Seed(s)",
                  "Minimum loss for a wrong anticipation"),
            _rule("level_formula", "level", f"floor(sqrt(balance / {self.level_step})) + 1", "",
                  "Level derived from the current Seeds balance"),
            *(
                _rule(
                    f"level_{level}_seeds",
                    "level",
                    f"{(level - 1) ** 2 * self.level_step}-{level ** 2 * self.level_step}",
                    "Seeds",
                    f"Balance range for level {level}",
                )
                for level in range(1, 5)
            ),
            _rule("auction_floor", "auction", self.auction_floor, "Seeds",
                  "Minimum opening bid for a featured argument slot"),
        ]


def _rule(rule_id: str, category: str, value: Any, unit: str, description: str) -> dict[str, Any]:
    return {
        "id": rule_id,
        "category": category,
        "value": value,
        "unit": unit,
        "description": description,
    }


DEFAULT_RULES = RuleSet()


def level_for_balance(balance: int) -> int:
    return DEFAULT_RULES.level_for_balance(balance)
