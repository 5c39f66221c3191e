from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from seedbank.core.errors import AlreadyResolved
from seedbank.db import SessionScope, session_scope as default_session_scope
from seedbank.models import DecisionStatus
from seedbank.repositories import DecisionRepository

from .client import IndicatorFeedClient
from .normalize import normalize_indicator


@dataclass(slots=True)
class IngestionSummary:
    decision_id: str
    indicators: int = 0
    snapshots: int = 0
    skipped_indicators: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "decision_id": self.decision_id,
            "indicators": self.indicators,
            "snapshots": self.snapshots,
            "skipped_indicators": self.skipped_indicators,
        }


def ingest_indicator_snapshots(
    decision_id: str,
    *,
    client: IndicatorFeedClient | None = None,
    session_scope: SessionScope = default_session_scope,
    since: str | None = None,
) -> IngestionSummary:
    """Pull a decision's indicator snapshots and store them idempotently.

    The feed is read completely before the database transaction opens.
    """

    owns_client = client is None
    client = client or IndicatorFeedClient()
    try:
        payload = client.fetch_decision(decision_id, since=since)
        raw_indicators = client.extract_indicators(payload)
    finally:
        if owns_client:
            client.close()

    raw_decision = payload.get("decision") if isinstance(payload.get("decision"), dict) else {}
    title = str(raw_decision.get("title") or raw_decision.get("name") or decision_id)

    summary = IngestionSummary(decision_id=decision_id)
    with session_scope() as session:
        repo = DecisionRepository(session)
        decision = repo.get_decision(decision_id)
        if decision is not None and decision.status == DecisionStatus.RESOLVED.value:
            raise AlreadyResolved(f"Decision {decision_id} is resolved; its indicators are frozen")
        if decision is None:
            repo.upsert_decision(decision_id, title=title)

        for raw_indicator in raw_indicators:
            indicator = normalize_indicator(raw_indicator)
            if indicator is None:
                summary.skipped_indicators += 1
                continue
            repo.upsert_indicator(
                decision_id,
                indicator.indicator_id,
                name=indicator.name,
                slug=indicator.slug,
                unit=indicator.unit,
            )
            for snapshot in indicator.snapshots:
                repo.add_snapshot(snapshot)
                summary.snapshots += 1
            summary.indicators += 1

    logger.info(
        "Ingested {} snapshots across {} indicators for decision {}",
        summary.snapshots,
        summary.indicators,
        decision_id,
    )
    return summary
