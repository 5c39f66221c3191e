from __future__ import annotations

from decimal import Decimal

import pytest

from seedbank.domain import Outcome, RuleSet, quote


def test_correct_anticipation_scenario():
    result = quote(issue="works", seeds_engaged=10, outcome="works", confidence=Decimal("80"))

    assert result.correct is True
    assert result.seeds_earned == 18
    assert result.credit == 28
    assert result.bonus == Decimal("0.50")


def test_wrong_anticipation_scenario():
    result = quote(issue="fails", seeds_engaged=20, outcome="works", confidence=Decimal("80"))

    assert result.correct is False
    assert result.seeds_earned == -8
    assert result.credit == 12


def test_partial_uses_smaller_bonus():
    result = quote(
        issue=Outcome.PARTIAL,
        seeds_engaged=10,
        outcome=Outcome.PARTIAL,
        confidence=Decimal("60"),
    )

    # 10 * 1.5 * 1.2 * 0.6 = 10.8
    assert result.seeds_earned == 11
    assert result.bonus == Decimal("0.20")


def test_rounding_is_half_up():
    # 1 * 0.5 * 1.0 = 0.5 rounds up to one lost Seed
    result = quote(issue="works", seeds_engaged=1, outcome="fails", confidence=100)

    assert result.seeds_earned == -1
    assert result.credit == 0


def test_minimum_loss_is_one_seed():
    # 1 * 0.5 * 0.5 = 0.25 would round to zero
    result = quote(issue="works", seeds_engaged=1, outcome="partial", confidence=50)

    assert result.seeds_earned == -1
    assert result.credit == 0


def test_loss_never_exceeds_the_stake():
    rules = RuleSet(wrong_penalty=Decimal("1"), min_loss=5)

    result = quote(issue="works", seeds_engaged=2, outcome="fails", confidence=100, rules=rules)

    assert result.seeds_earned == -2
    assert result.credit == 0


@pytest.mark.parametrize("stake", [1, 7, 33, 250])
@pytest.mark.parametrize("confidence", [Decimal("50"), Decimal("73.45"), Decimal("100")])
def test_credit_is_stake_plus_delta(stake, confidence):
    for issue in Outcome:
        for outcome in Outcome:
            result = quote(issue=issue, seeds_engaged=stake, outcome=outcome, confidence=confidence)
            assert result.credit == stake + result.seeds_earned
            assert result.credit >= 0
            if result.correct:
                assert result.seeds_earned >= 1
            else:
                assert result.seeds_earned <= -1
