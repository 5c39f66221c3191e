"""Load operator overrides of the published rule constants from YAML.

A rules file holds a single top-level ``rules`` mapping. Every key is optional
and names a :class:`seedbank.domain.RuleSet` field; omitted keys keep their
defaults::

    rules:
      significant_change_pct: 5
      works_threshold: 30
      fails_threshold: -30
      window_weights:
        30d: 0.2
        90d: 0.3
        180d: 0.3
        365d: 0.2
      base_multiplier: "1.5"
      auction_floor: 50
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from loguru import logger

from seedbank.core.config import Settings, get_settings
from seedbank.domain import DEFAULT_RULES, RuleSet, WindowWeights

__all__ = ["active_rules", "load_rule_overrides", "parse_rule_overrides"]

_FLOAT_FIELDS = {
    "significant_change_pct",
    "works_threshold",
    "fails_threshold",
    "confidence_base",
    "confidence_max",
}
_DECIMAL_FIELDS = {"base_multiplier", "exact_bonus", "partial_bonus", "wrong_penalty"}
_POSITIVE_INT_FIELDS = {"min_indicators", "min_gain", "min_loss", "level_step", "auction_floor"}
_WINDOW_KEYS = {"30d": "d30", "90d": "d90", "180d": "d180", "365d": "d365"}


def _as_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError(f"Rule '{key}' must be numeric")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise TypeError(f"Rule '{key}' must be numeric, got {value!r}") from exc


def _as_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError(f"Rule '{key}' must be numeric")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as exc:
        raise TypeError(f"Rule '{key}' must be numeric, got {value!r}") from exc
    if parsed < 0:
        raise ValueError(f"Rule '{key}' must not be negative")
    return parsed


def _as_positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Rule '{key}' must be a whole number, got {value!r}")
    if value < 1:
        raise ValueError(f"Rule '{key}' must be at least 1")
    return value


def _parse_weights(raw: Any) -> WindowWeights:
    if not isinstance(raw, Mapping):
        raise TypeError("'window_weights' must map windows (30d, 90d, 180d, 365d) to weights")
    unknown = sorted(set(map(str, raw)) - set(_WINDOW_KEYS))
    if unknown:
        raise ValueError(f"Unknown window(s) in 'window_weights': {', '.join(unknown)}")

    values: dict[str, float] = {}
    for window, attribute in _WINDOW_KEYS.items():
        if window not in raw:
            continue
        weight = _as_float(f"window_weights.{window}", raw[window])
        if weight < 0:
            raise ValueError(f"Weight for window {window} must not be negative")
        values[attribute] = weight
    return dataclasses.replace(DEFAULT_RULES.window_weights, **values)


def parse_rule_overrides(raw: Mapping[str, Any], base: RuleSet = DEFAULT_RULES) -> RuleSet:
    overrides: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "window_weights":
            overrides[key] = _parse_weights(value)
        elif key in _FLOAT_FIELDS:
            overrides[key] = _as_float(key, value)
        elif key in _DECIMAL_FIELDS:
            overrides[key] = _as_decimal(key, value)
        elif key in _POSITIVE_INT_FIELDS:
            overrides[key] = _as_positive_int(key, value)
        else:
            raise ValueError(f"Unknown rule '{key}'")

    rules = dataclasses.replace(base, **overrides)
    if rules.wrong_penalty > 1:
        raise ValueError("'wrong_penalty' must not exceed 1 (a loss cannot exceed the stake)")
    if rules.fails_threshold >= rules.works_threshold:
        raise ValueError("'fails_threshold' must be lower than 'works_threshold'")
    if not 0 <= rules.confidence_base <= rules.confidence_max:
        raise ValueError("'confidence_base' must lie between 0 and 'confidence_max'")
    return rules


def load_rule_overrides(path: str | Path) -> RuleSet:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise FileNotFoundError(f"Rules file not found: {file_path}")

    raw = yaml.safe_load(file_path.read_text())
    if raw is None:
        logger.debug("Rules file {} is empty; using default rules", file_path)
        return DEFAULT_RULES

    section = raw.get("rules") if isinstance(raw, Mapping) else None
    if section is None:
        raise ValueError(f"Rules file {file_path} must define a top-level 'rules' mapping")
    if not isinstance(section, Mapping):
        raise TypeError("'rules' must be a mapping of rule names to values")

    rules = parse_rule_overrides(section)
    logger.info("Loaded {} rule override(s) from {}", len(section), file_path)
    return rules


@lru_cache
def _cached_rules(path: str) -> RuleSet:
    return load_rule_overrides(path)


def active_rules(settings: Settings | None = None) -> RuleSet:
    """Rules in force: the configured overrides file, or the defaults."""

    rules_path = (settings or get_settings()).rules_path
    if not rules_path:
        return DEFAULT_RULES
    return _cached_rules(str(rules_path))
