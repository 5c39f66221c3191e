"""Gain and loss formulas applied to anticipations at settlement time."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .models import Outcome, SettlementQuote
from .rules import DEFAULT_RULES, RuleSet

_HUNDRED = Decimal("100")


def _round_seeds(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quote(
    *,
    issue: Outcome | str,
    seeds_engaged: int,
    outcome: Outcome | str,
    confidence: Decimal | float | int,
    rules: RuleSet = DEFAULT_RULES,
) -> SettlementQuote:
    """Compute the signed profit/loss and ledger credit for one anticipation.

    The stake was escrowed when the anticipation was placed, so the credit
    returned to the user is the stake plus the (possibly negative) delta.
    """

    issue = Outcome(issue)
    outcome = Outcome(outcome)
    stake = Decimal(seeds_engaged)
    factor = Decimal(str(confidence)) / _HUNDRED

    if issue == outcome:
        bonus = rules.partial_bonus if outcome == Outcome.PARTIAL else rules.exact_bonus
        gain = stake * rules.base_multiplier * (1 + bonus) * factor
        seeds_earned = max(_round_seeds(gain), rules.min_gain)
        return SettlementQuote(
            correct=True,
            seeds_earned=seeds_earned,
            credit=seeds_engaged + seeds_earned,
            bonus=bonus,
        )

    loss = stake * rules.wrong_penalty * factor
    seeds_lost = min(max(_round_seeds(loss), rules.min_loss), seeds_engaged)
    return SettlementQuote(
        correct=False,
        seeds_earned=-seeds_lost,
        credit=seeds_engaged - seeds_lost,
    )
