"""Settlement run bookkeeping, modelled on the processing-run records."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from seedbank.models import SettlementFailure, SettlementRun


class SettlementRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_run(self, *, run_id: str, decision_id: str, total: int) -> SettlementRun:
        record = SettlementRun(
            run_id=run_id,
            decision_id=decision_id,
            total_anticipations=total,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def finalize_run(
        self,
        run_id: str,
        *,
        status: str,
        settled: int,
        skipped: int,
        failed: int,
        finished_at: datetime,
    ) -> None:
        run = self._session.get(SettlementRun, run_id)
        if run is None:
            return
        run.status = status
        run.settled_anticipations = settled
        run.skipped_anticipations = skipped
        run.failed_anticipations = failed
        run.finished_at = finished_at

    def record_failure(
        self,
        *,
        run_id: str,
        anticipation_id: str,
        user_id: str | None,
        reason: str,
        retriable: bool,
        details: dict[str, Any] | None = None,
    ) -> None:
        failure = SettlementFailure(
            run_id=run_id,
            anticipation_id=anticipation_id,
            user_id=user_id,
            reason=reason,
            retriable=retriable,
            details=details,
        )
        self._session.add(failure)

    def latest_run(self, decision_id: str) -> SettlementRun | None:
        query = (
            select(SettlementRun)
            .where(SettlementRun.decision_id == decision_id)
            .order_by(SettlementRun.started_at.desc())
            .limit(1)
        )
        return self._session.execute(query).scalar_one_or_none()

    def list_failures(self, run_id: str) -> list[SettlementFailure]:
        query = (
            select(SettlementFailure)
            .where(SettlementFailure.run_id == run_id)
            .order_by(SettlementFailure.failure_id.asc())
        )
        return list(self._session.execute(query).scalars().all())


__all__ = ["SettlementRepository"]
