"""Resolve decisions from indicator data and hand them over to settlement."""

from __future__ import annotations

from loguru import logger

from seedbank.core.config import Settings, get_settings
from seedbank.core.errors import ConcurrencyConflict, InsufficientData, NotFound
from seedbank.db import SessionScope, session_scope as default_session_scope
from seedbank.domain import DEFAULT_RULES, Outcome, RuleSet, aggregate, classify
from seedbank.models import Decision as DecisionRecord
from seedbank.models import DecisionStatus, SettlementStatus, utcnow
from seedbank.repositories import AnticipationRepository, DecisionRepository
from seedbank.schemas import Decision, ResolutionResult, RuleSetResponse, SettlementReport

from .settlement_service import AnticipationSettlement


class ResolutionService:
    """Write-once resolution followed by (resumable) settlement."""

    def __init__(
        self,
        session_scope: SessionScope = default_session_scope,
        settings: Settings | None = None,
        rules: RuleSet = DEFAULT_RULES,
        *,
        settlement: AnticipationSettlement | None = None,
    ) -> None:
        self._session_scope = session_scope
        self.settings = settings or get_settings()
        self._rules = rules
        self._settlement = settlement or AnticipationSettlement(
            session_scope, self.settings, rules
        )

    def get_resolution_rules(self) -> RuleSetResponse:
        return RuleSetResponse.from_rules(self._rules)

    def resolve_decision(self, decision_id: str) -> ResolutionResult:
        """Resolve a decision once; later calls return the stored result.

        Repeated calls never recompute the outcome. They only resume a
        settlement that was interrupted or left partial.
        """

        with self._session_scope() as session:
            repo = DecisionRepository(session)
            decision = repo.get_decision(decision_id)
            if decision is None:
                raise NotFound(f"Decision {decision_id} not found")

            already_resolved = decision.status == DecisionStatus.RESOLVED.value
            if not already_resolved:
                series = repo.load_indicator_series(decision_id)
                try:
                    scored = aggregate(series, self._rules)
                except InsufficientData:
                    logger.warning(
                        "Decision {} cannot be resolved: {} indicator(s), none usable",
                        decision_id,
                        len(series),
                    )
                    raise
                classification = classify(scored.score, self._rules)
                won = repo.mark_resolved(
                    decision_id,
                    score=scored.score,
                    outcome=classification.outcome.value,
                    confidence=classification.confidence,
                    details=scored.details(),
                    resolved_at=utcnow(),
                )
                if won:
                    logger.info(
                        "Resolved decision {} as {} (score={:.2f}, confidence={})",
                        decision_id,
                        classification.outcome.value,
                        scored.score,
                        classification.confidence,
                    )
                else:
                    already_resolved = True
                    logger.info("Decision {} was resolved concurrently; using stored result", decision_id)
                decision = repo.get_decision(decision_id)

            result = self._result_payload(decision, already_resolved=already_resolved)
            settled = decision.settlement_status == SettlementStatus.SETTLED.value

        if not settled:
            result.settlement = self._run_settlement(decision_id)
        return result

    def settle_decision(self, decision_id: str) -> SettlementReport:
        return self._settlement.settle(decision_id)

    def get_decision(self, decision_id: str) -> Decision:
        with self._session_scope() as session:
            decision = DecisionRepository(session).get_decision(decision_id)
            if decision is None:
                raise NotFound(f"Decision {decision_id} not found")
            payload = Decision.model_validate(decision)
            payload.open_anticipations = AnticipationRepository(session).count_open(decision_id)
            return payload

    def _run_settlement(self, decision_id: str) -> SettlementReport | None:
        try:
            return self._settlement.settle(decision_id)
        except ConcurrencyConflict:
            logger.warning("Settlement for decision {} already in progress; not starting another", decision_id)
            return None

    @staticmethod
    def _result_payload(decision: DecisionRecord, *, already_resolved: bool) -> ResolutionResult:
        return ResolutionResult(
            decision_id=decision.decision_id,
            outcome=Outcome(decision.resolution_outcome),
            confidence=decision.resolution_confidence,
            score=decision.resolution_score,
            resolved_at=decision.resolved_at,
            already_resolved=already_resolved,
            details=decision.resolution_details,
        )


__all__ = ["ResolutionService"]
