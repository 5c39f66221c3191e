"""Anticipation persistence and per-item settlement checkpoints."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from seedbank.models import Anticipation


class AnticipationRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        *,
        anticipation_id: str,
        decision_id: str,
        user_id: str,
        issue: str,
        seeds_engaged: int,
    ) -> Anticipation:
        record = Anticipation(
            anticipation_id=anticipation_id,
            decision_id=decision_id,
            user_id=user_id,
            issue=issue,
            seeds_engaged=seeds_engaged,
            resolved=False,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def get(self, anticipation_id: str) -> Anticipation | None:
        return self._session.get(Anticipation, anticipation_id, populate_existing=True)

    def find_for_user(self, decision_id: str, user_id: str) -> Anticipation | None:
        query = select(Anticipation).where(
            Anticipation.decision_id == decision_id,
            Anticipation.user_id == user_id,
        )
        return self._session.execute(query).scalar_one_or_none()

    def list_for_decision(self, decision_id: str) -> list[Anticipation]:
        query = (
            select(Anticipation)
            .where(Anticipation.decision_id == decision_id)
            .order_by(Anticipation.created_at.asc(), Anticipation.anticipation_id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def list_open_ids(self, decision_id: str) -> list[str]:
        query = (
            select(Anticipation.anticipation_id)
            .where(
                Anticipation.decision_id == decision_id,
                Anticipation.resolved.is_(False),
            )
            .order_by(Anticipation.created_at.asc(), Anticipation.anticipation_id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def count_open(self, decision_id: str) -> int:
        query = select(func.count(Anticipation.anticipation_id)).where(
            Anticipation.decision_id == decision_id,
            Anticipation.resolved.is_(False),
        )
        return int(self._session.execute(query).scalar_one())

    def mark_settled(
        self,
        anticipation_id: str,
        *,
        result: str,
        seeds_earned: int,
        resolved_at: datetime,
    ) -> bool:
        """Checkpoint one anticipation; False means it was already settled."""

        statement = (
            update(Anticipation)
            .where(
                Anticipation.anticipation_id == anticipation_id,
                Anticipation.resolved.is_(False),
            )
            .values(
                resolved=True,
                result=result,
                seeds_earned=seeds_earned,
                resolved_at=resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(statement).rowcount == 1


__all__ = ["AnticipationRepository"]
