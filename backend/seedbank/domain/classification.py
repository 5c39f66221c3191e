from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .models import Classification, Outcome
from .rules import DEFAULT_RULES, RuleSet

_CONFIDENCE_QUANTUM = Decimal("0.01")


def classify(score: float, rules: RuleSet = DEFAULT_RULES) -> Classification:
    """Map a weighted score to an outcome and a confidence between 50 and 100."""

    if score >= rules.works_threshold:
        outcome = Outcome.WORKS
    elif score <= rules.fails_threshold:
        outcome = Outcome.FAILS
    else:
        outcome = Outcome.PARTIAL

    raw = min(max(rules.confidence_base + abs(score), rules.confidence_base), rules.confidence_max)
    confidence = Decimal(str(raw)).quantize(_CONFIDENCE_QUANTUM, rounding=ROUND_HALF_UP)
    return Classification(outcome=outcome, confidence=confidence)
