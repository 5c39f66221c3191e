"""Placing anticipations: escrow the stake and record the prediction."""

from __future__ import annotations

import uuid

from loguru import logger
from sqlalchemy.exc import IntegrityError

from seedbank.core.errors import AlreadyResolved, NotFound, ValidationError
from seedbank.db import SessionScope, session_scope as default_session_scope
from seedbank.domain import DEFAULT_RULES, Outcome, RuleSet
from seedbank.models import DecisionStatus
from seedbank.repositories import AnticipationRepository, DecisionRepository
from seedbank.schemas import Anticipation

from .ledger_service import SeedsLedger


class AnticipationService:
    def __init__(
        self,
        session_scope: SessionScope = default_session_scope,
        rules: RuleSet = DEFAULT_RULES,
    ) -> None:
        self._session_scope = session_scope
        self._rules = rules

    def place_anticipation(
        self,
        decision_id: str,
        user_id: str,
        issue: Outcome | str,
        seeds_engaged: int,
    ) -> Anticipation:
        try:
            issue = Outcome(issue)
        except ValueError as exc:
            raise ValidationError(f"Unknown outcome {issue!r}") from exc
        if isinstance(seeds_engaged, bool) or not isinstance(seeds_engaged, int):
            raise ValidationError("Engaged Seeds must be a whole number")
        if seeds_engaged <= 0:
            raise ValidationError("Engaged Seeds must be positive")

        try:
            with self._session_scope() as session:
                decisions = DecisionRepository(session)
                anticipations = AnticipationRepository(session)

                decision = decisions.get_decision(decision_id)
                if decision is None:
                    raise NotFound(f"Decision {decision_id} not found")
                if decision.status == DecisionStatus.RESOLVED.value:
                    raise AlreadyResolved(f"Decision {decision_id} is already resolved")
                if decision.archived:
                    raise ValidationError(f"Decision {decision_id} is archived")
                if anticipations.find_for_user(decision_id, user_id) is not None:
                    raise ValidationError(
                        f"User {user_id} already anticipated decision {decision_id}"
                    )

                # Must precede the escrow so a concurrent resolution either sees
                # this anticipation or makes the placement fail.
                if not decisions.reserve_anticipation(decision_id):
                    current = decisions.get_decision(decision_id)
                    if current is not None and current.archived:
                        raise ValidationError(f"Decision {decision_id} is archived")
                    raise AlreadyResolved(f"Decision {decision_id} is already resolved")

                anticipation_id = uuid.uuid4().hex
                SeedsLedger(session, self._rules).escrow(
                    user_id,
                    seeds_engaged,
                    related_type="anticipation",
                    related_id=anticipation_id,
                )
                record = anticipations.create(
                    anticipation_id=anticipation_id,
                    decision_id=decision_id,
                    user_id=user_id,
                    issue=issue.value,
                    seeds_engaged=seeds_engaged,
                )
                payload = Anticipation.model_validate(record)
        except IntegrityError as exc:
            raise ValidationError(
                f"User {user_id} already anticipated decision {decision_id}"
            ) from exc

        logger.info(
            "User {} anticipated {} on decision {} with {} Seeds",
            user_id,
            issue.value,
            decision_id,
            seeds_engaged,
        )
        return payload

    def list_for_decision(self, decision_id: str) -> list[Anticipation]:
        with self._session_scope() as session:
            if DecisionRepository(session).get_decision(decision_id) is None:
                raise NotFound(f"Decision {decision_id} not found")
            records = AnticipationRepository(session).list_for_decision(decision_id)
            return [Anticipation.model_validate(record) for record in records]


__all__ = ["AnticipationService"]
