from __future__ import annotations

from typing import Any, Iterable

import httpx
from loguru import logger

from seedbank.core.config import settings


class IndicatorFeedClient:
    """Thin wrapper around the indicator ingestion service."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        snapshots_path: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or str(settings.indicator_feed_base_url)
        self.snapshots_path = snapshots_path or settings.indicator_feed_snapshots_path
        self.timeout = timeout or settings.indicator_feed_timeout_seconds
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    def fetch_decision(self, decision_id: str, *, since: str | None = None) -> dict[str, Any]:
        path = self.snapshots_path.format(decision_id=decision_id)
        params: dict[str, Any] = {}
        if since:
            params["since"] = since
        logger.info("Indicator feed GET {} params={}", path, params)
        response = self.client.get(path, params=params)
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, list):
            return {"decision": {"id": decision_id}, "indicators": payload}
        if not isinstance(payload, dict):
            return {"decision": {"id": decision_id}, "indicators": []}
        return payload

    def iter_indicators(self, decision_id: str, *, since: str | None = None) -> Iterable[dict[str, Any]]:
        yield from self.extract_indicators(self.fetch_decision(decision_id, since=since))

    @staticmethod
    def extract_indicators(payload: dict[str, Any]) -> list[dict[str, Any]]:
        candidates: tuple[Any, ...] = (
            payload.get("indicators"),
            payload.get("data"),
            payload.get("result"),
        )
        raw_indicators = next((value for value in candidates if isinstance(value, list)), [])
        return [indicator for indicator in raw_indicators if isinstance(indicator, dict)]

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "IndicatorFeedClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
