from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser
from loguru import logger

from seedbank.domain import MeasureType, NormalizedIndicator, NormalizedSnapshot

# Feed timestamps above this are epoch milliseconds rather than seconds.
_EPOCH_MILLIS_THRESHOLD = 10_000_000_000

_MEASURE_ALIASES = {
    "baseline": MeasureType.BASELINE,
    "base": MeasureType.BASELINE,
    "30d": MeasureType.D30,
    "90d": MeasureType.D90,
    "180d": MeasureType.D180,
    "365d": MeasureType.D365,
    "1y": MeasureType.D365,
}


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (ValueError, TypeError):
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def _parse_measure(value: Any) -> MeasureType | None:
    if value is None:
        return None
    return _MEASURE_ALIASES.get(str(value).strip().lower())


def normalize_snapshot(
    raw_snapshot: dict[str, Any],
    *,
    indicator_id: str,
    indicator_name: str | None = None,
    unit: str | None = None,
    default_source: str = "indicator-feed",
) -> NormalizedSnapshot | None:
    """Parse one dated observation; None when it cannot be used for scoring."""

    measure = _parse_measure(_first(raw_snapshot, "measureType", "measure_type", "window"))
    value = _parse_float(_first(raw_snapshot, "value", "val"))
    observed_at = _parse_datetime(_first(raw_snapshot, "date", "observedAt", "observed_at"))
    if measure is None or value is None or observed_at is None:
        logger.warning(
            "Skipping unusable snapshot for indicator {}: measure={}, value={}, date={}",
            indicator_id,
            raw_snapshot.get("measureType") or raw_snapshot.get("measure_type"),
            raw_snapshot.get("value"),
            raw_snapshot.get("date") or raw_snapshot.get("observedAt"),
        )
        return None

    source = _first(raw_snapshot, "source")
    source_url = _first(raw_snapshot, "sourceUrl", "source_url")
    return NormalizedSnapshot(
        indicator_id=indicator_id,
        measure_type=measure,
        value=value,
        observed_at=observed_at,
        source=str(source) if source is not None else default_source,
        source_url=str(source_url) if source_url is not None else None,
        indicator_name=indicator_name,
        unit=unit,
    )


def normalize_indicator(raw_indicator: dict[str, Any]) -> NormalizedIndicator | None:
    raw_id = _first(raw_indicator, "id", "indicatorId", "indicator_id", "_id")
    if raw_id is None:
        return None

    indicator_id = str(raw_id)
    name = str(_first(raw_indicator, "name", "title") or indicator_id)
    slug = _first(raw_indicator, "slug")
    unit = _first(raw_indicator, "unit")

    raw_snapshots = _first(raw_indicator, "snapshots", "data", "values") or []
    snapshots: list[NormalizedSnapshot] = []
    if isinstance(raw_snapshots, list):
        for raw_snapshot in raw_snapshots:
            if not isinstance(raw_snapshot, dict):
                continue
            snapshot = normalize_snapshot(
                raw_snapshot,
                indicator_id=indicator_id,
                indicator_name=name,
                unit=str(unit) if unit is not None else None,
            )
            if snapshot is not None:
                snapshots.append(snapshot)

    return NormalizedIndicator(
        indicator_id=indicator_id,
        name=name,
        slug=str(slug) if slug is not None else None,
        unit=str(unit) if unit is not None else None,
        snapshots=snapshots,
    )
