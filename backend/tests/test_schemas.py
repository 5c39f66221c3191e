from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from seedbank.domain import DEFAULT_RULES, Outcome
from seedbank.schemas import AnticipationCreate, Decision, ResolutionResult, RuleSetResponse


def test_decision_coerces_numeric_fields():
    """Verify that Numeric columns come back as floats."""
    decision = Decision(
        decision_id="d-1",
        title="Pilot",
        status="resolved",
        archived=False,
        anticipations_count=3,
        resolution_score=Decimal("41.2500"),
        resolution_outcome="works",
        resolution_confidence=Decimal("91.25"),
        resolved_at=datetime.now(),
        settlement_status="settled",
    )
    assert isinstance(decision.resolution_score, float)
    assert decision.resolution_score == 41.25
    assert isinstance(decision.resolution_confidence, float)
    assert decision.resolution_confidence == 91.25
    assert decision.resolution_outcome == Outcome.WORKS


def test_resolution_result_coerces_decimals():
    result = ResolutionResult(
        decision_id="d-1",
        outcome="partial",
        confidence=Decimal("62.10"),
        score=Decimal("-12.1000"),
    )
    assert result.confidence == 62.1
    assert result.score == -12.1
    assert result.settlement is None


def test_anticipation_create_rejects_unknown_issue():
    with pytest.raises(ValidationError):
        AnticipationCreate(user_id="alice", issue="maybe", seeds_engaged=10)


def test_rule_set_response_mirrors_rules():
    response = RuleSetResponse.from_rules(DEFAULT_RULES)

    assert response.base_multiplier == 1.5
    assert response.partial_bonus == 0.2
    assert response.level_step == 100
    assert {entry.category for entry in response.rules} >= {"weight", "scoring", "seeds", "level", "auction"}
