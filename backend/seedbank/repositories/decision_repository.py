"""Decision, indicator and snapshot persistence helpers."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session, selectinload

from seedbank.domain import IndicatorSeries, MeasureType, NormalizedSnapshot, SnapshotPoint
from seedbank.models import (
    Decision,
    DecisionStatus,
    Indicator,
    IndicatorSnapshot,
    SettlementStatus,
    utcnow,
)


class DecisionRepository:
    """Encapsulate decision lifecycle and indicator data access."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def upsert_decision(
        self,
        decision_id: str,
        *,
        title: str,
        status: str = DecisionStatus.ACTIVE.value,
        archived: bool = False,
    ) -> Decision:
        existing = self._session.get(Decision, decision_id)
        if existing is None:
            existing = Decision(decision_id=decision_id, title=title, status=status, archived=archived)
            self._session.add(existing)
            self._session.flush()
            return existing

        existing.title = title
        existing.archived = archived
        if existing.status != DecisionStatus.RESOLVED.value:
            existing.status = status
        existing.updated_at = utcnow()
        return existing

    def upsert_indicator(
        self,
        decision_id: str,
        indicator_id: str,
        *,
        name: str,
        slug: str | None = None,
        unit: str | None = None,
    ) -> Indicator:
        existing = self._session.get(Indicator, indicator_id)
        if existing is None:
            existing = Indicator(indicator_id=indicator_id, decision_id=decision_id, name=name)
            self._session.add(existing)

        existing.name = name
        if slug is not None:
            existing.slug = slug
        if unit is not None:
            existing.unit = unit
        self._session.flush()
        return existing

    def add_snapshot(self, snapshot: NormalizedSnapshot) -> IndicatorSnapshot:
        query = select(IndicatorSnapshot).where(
            IndicatorSnapshot.indicator_id == snapshot.indicator_id,
            IndicatorSnapshot.measure_type == snapshot.measure_type.value,
            IndicatorSnapshot.observed_at == snapshot.observed_at,
        )
        existing = self._session.execute(query).scalar_one_or_none()
        if existing is None:
            existing = IndicatorSnapshot(
                indicator_id=snapshot.indicator_id,
                measure_type=snapshot.measure_type.value,
                observed_at=snapshot.observed_at,
                value=snapshot.value,
                source=snapshot.source,
            )
            self._session.add(existing)

        existing.value = snapshot.value
        existing.source = snapshot.source
        existing.source_url = snapshot.source_url
        self._session.flush()
        return existing

    def mark_resolved(
        self,
        decision_id: str,
        *,
        score: float,
        outcome: str,
        confidence: Decimal,
        details: dict[str, Any] | None,
        resolved_at: datetime,
    ) -> bool:
        """Write the resolution once; returns False if another run resolved it first."""

        statement = (
            update(Decision)
            .where(
                Decision.decision_id == decision_id,
                Decision.status != DecisionStatus.RESOLVED.value,
            )
            .values(
                status=DecisionStatus.RESOLVED.value,
                resolution_score=Decimal(str(round(score, 4))),
                resolution_outcome=outcome,
                resolution_confidence=confidence,
                resolution_details=details,
                resolved_at=resolved_at,
                updated_at=resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        return result.rowcount == 1

    def reserve_anticipation(self, decision_id: str) -> bool:
        """Count a new anticipation unless the decision was resolved or archived meanwhile.

        The row lock taken here orders the placement against ``mark_resolved``.
        """

        statement = (
            update(Decision)
            .where(
                Decision.decision_id == decision_id,
                Decision.status != DecisionStatus.RESOLVED.value,
                Decision.archived.is_(False),
            )
            .values(anticipations_count=Decision.anticipations_count + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(statement).rowcount == 1

    def acquire_settlement_lease(
        self, decision_id: str, *, now: datetime, lease_seconds: int
    ) -> bool:
        """Flip the decision into ``running`` unless a live settlement holds it."""

        expired_before = now - timedelta(seconds=lease_seconds)
        statement = (
            update(Decision)
            .where(
                Decision.decision_id == decision_id,
                or_(
                    Decision.settlement_status != SettlementStatus.RUNNING.value,
                    Decision.settlement_started_at.is_(None),
                    Decision.settlement_started_at < expired_before,
                ),
            )
            .values(
                settlement_status=SettlementStatus.RUNNING.value,
                settlement_started_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(statement).rowcount == 1

    def release_settlement_lease(self, decision_id: str, *, status: SettlementStatus) -> None:
        self._session.execute(
            update(Decision)
            .where(Decision.decision_id == decision_id)
            .values(settlement_status=status.value, settlement_started_at=None)
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Queries

    def get_decision(self, decision_id: str) -> Decision | None:
        return self._session.get(Decision, decision_id, populate_existing=True)

    def load_indicator_series(self, decision_id: str) -> list[IndicatorSeries]:
        query = (
            select(Indicator)
            .options(selectinload(Indicator.snapshots))
            .where(Indicator.decision_id == decision_id)
            .order_by(Indicator.indicator_id.asc())
        )
        indicators = self._session.execute(query).scalars().all()
        series: list[IndicatorSeries] = []
        for indicator in indicators:
            points = []
            for snapshot in indicator.snapshots:
                try:
                    measure = MeasureType(snapshot.measure_type)
                except ValueError:
                    continue
                points.append(
                    SnapshotPoint(
                        measure_type=measure,
                        value=float(snapshot.value),
                        observed_at=snapshot.observed_at,
                    )
                )
            series.append(
                IndicatorSeries(indicator_id=indicator.indicator_id, name=indicator.name, snapshots=points)
            )
        return series

    def list_due_decisions(
        self,
        *,
        limit: int | None = None,
        decision_ids: Sequence[str] | None = None,
    ) -> list[Decision]:
        """Unresolved, non-archived decisions that have at least one indicator."""

        has_indicator = select(Indicator.indicator_id).where(
            Indicator.decision_id == Decision.decision_id
        ).exists()
        filters: list[Any] = [
            Decision.status != DecisionStatus.RESOLVED.value,
            Decision.archived.is_(False),
            has_indicator,
        ]
        if decision_ids:
            filters.append(Decision.decision_id.in_(list(decision_ids)))

        query = select(Decision).where(*filters).order_by(
            Decision.created_at.asc(), Decision.decision_id.asc()
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars().all())

    def list_unsettled_decisions(
        self,
        *,
        now: datetime,
        lease_seconds: int,
        decision_ids: Sequence[str] | None = None,
    ) -> list[Decision]:
        """Resolved decisions whose settlement never ran, stopped partway or was abandoned."""

        expired_before = now - timedelta(seconds=lease_seconds)
        filters: list[Any] = [
            Decision.status == DecisionStatus.RESOLVED.value,
            or_(
                Decision.settlement_status.in_(
                    [SettlementStatus.PENDING.value, SettlementStatus.PARTIAL.value]
                ),
                and_(
                    Decision.settlement_status == SettlementStatus.RUNNING.value,
                    Decision.settlement_started_at < expired_before,
                ),
            ),
        ]
        if decision_ids:
            filters.append(Decision.decision_id.in_(list(decision_ids)))
        query = select(Decision).where(*filters).order_by(Decision.resolved_at.asc())
        return list(self._session.execute(query).scalars().all())


__all__ = ["DecisionRepository"]
