from __future__ import annotations

from decimal import Decimal

import pytest

from seedbank.core.config import Settings
from seedbank.core.rules_config import active_rules, load_rule_overrides, parse_rule_overrides
from seedbank.domain import DEFAULT_RULES


def _write(tmp_path, text: str):
    path = tmp_path / "rules.yaml"
    path.write_text(text)
    return path


def test_overrides_replace_only_named_rules(tmp_path):
    path = _write(
        tmp_path,
        """
rules:
  works_threshold: 40
  base_multiplier: "2"
  auction_floor: 75
  window_weights:
    30d: 0.4
""",
    )

    rules = load_rule_overrides(path)

    assert rules.works_threshold == 40.0
    assert rules.base_multiplier == Decimal("2")
    assert rules.auction_floor == 75
    assert rules.window_weights.d30 == 0.4
    assert rules.window_weights.d90 == DEFAULT_RULES.window_weights.d90
    assert rules.fails_threshold == DEFAULT_RULES.fails_threshold


def test_empty_file_keeps_defaults(tmp_path):
    assert load_rule_overrides(_write(tmp_path, "")) == DEFAULT_RULES


def test_missing_file_is_reported(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_rule_overrides(tmp_path / "absent.yaml")


def test_rules_section_is_required(tmp_path):
    with pytest.raises(ValueError):
        load_rule_overrides(_write(tmp_path, "thresholds:\n  works: 10\n"))


@pytest.mark.parametrize(
    ("raw", "error"),
    [
        ({"jackpot": 10}, ValueError),
        ({"works_threshold": -40}, ValueError),
        ({"confidence_base": 120}, ValueError),
        ({"auction_floor": 0}, ValueError),
        ({"auction_floor": 12.5}, TypeError),
        ({"works_threshold": "lots"}, TypeError),
        ({"exact_bonus": -1}, ValueError),
        ({"wrong_penalty": "1.5"}, ValueError),
        ({"window_weights": {"7d": 0.1}}, ValueError),
        ({"window_weights": [0.1, 0.2]}, TypeError),
    ],
)
def test_invalid_overrides_are_rejected(raw, error):
    with pytest.raises(error):
        parse_rule_overrides(raw)


def test_active_rules_follow_settings(tmp_path):
    path = _write(tmp_path, "rules:\n  auction_floor: 60\n")

    assert active_rules(Settings(rules_path=None)) is DEFAULT_RULES
    assert active_rules(Settings(rules_path=str(path))).auction_floor == 60


def test_full_stake_penalty_is_allowed():
    assert parse_rule_overrides({"wrong_penalty": 1}).wrong_penalty == Decimal("1")
