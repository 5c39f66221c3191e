"""Batch settlement of anticipations once their decision has been resolved."""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from decimal import Decimal
from typing import Callable

from loguru import logger
from sqlalchemy.orm import Session

from seedbank.core.config import Settings, get_settings
from seedbank.core.errors import ConcurrencyConflict, NotFound, NotResolved, SeedbankError
from seedbank.db import SessionScope, session_scope as default_session_scope
from seedbank.domain import DEFAULT_RULES, Outcome, RuleSet, quote
from seedbank.models import DecisionStatus, SettlementStatus, utcnow
from seedbank.repositories import (
    AnticipationRepository,
    DecisionRepository,
    SettlementRepository,
)
from seedbank.schemas import SettlementReport

from .ledger_service import SeedsLedger

LedgerFactory = Callable[[Session, RuleSet], SeedsLedger]


class AnticipationSettlement:
    """Credit every open anticipation of a resolved decision exactly once.

    Each anticipation is checkpointed and credited in its own transaction, so
    an interrupted run can be resumed and a failing item never blocks the rest.
    Only one run per decision may hold the settlement lease at a time.
    """

    def __init__(
        self,
        session_scope: SessionScope = default_session_scope,
        settings: Settings | None = None,
        rules: RuleSet = DEFAULT_RULES,
        *,
        ledger_factory: LedgerFactory = SeedsLedger,
    ) -> None:
        self._session_scope = session_scope
        self.settings = settings or get_settings()
        self._rules = rules
        self._ledger_factory = ledger_factory

    def settle(self, decision_id: str) -> SettlementReport:
        started_at = utcnow()
        with self._session_scope() as session:
            decisions = DecisionRepository(session)
            decision = decisions.get_decision(decision_id)
            if decision is None:
                raise NotFound(f"Decision {decision_id} not found")
            if decision.status != DecisionStatus.RESOLVED.value or decision.resolution_outcome is None:
                raise NotResolved(f"Decision {decision_id} has not been resolved")

            outcome = Outcome(decision.resolution_outcome)
            confidence = Decimal(str(decision.resolution_confidence))

            acquired = decisions.acquire_settlement_lease(
                decision_id,
                now=started_at,
                lease_seconds=self.settings.settlement_lease_seconds,
            )
            if not acquired:
                raise ConcurrencyConflict(f"Settlement for decision {decision_id} is already running")

            open_ids = AnticipationRepository(session).list_open_ids(decision_id)
            run_id = uuid.uuid4().hex
            SettlementRepository(session).create_run(
                run_id=run_id, decision_id=decision_id, total=len(open_ids)
            )

        logger.info(
            "Settling decision {} ({} open anticipations, outcome={}, confidence={})",
            decision_id,
            len(open_ids),
            outcome.value,
            confidence,
        )

        settled = skipped = failed = 0
        try:
            if open_ids:
                workers = min(self.settings.settlement_workers, len(open_ids))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = {
                        pool.submit(
                            self._settle_one,
                            anticipation_id,
                            outcome=outcome,
                            confidence=confidence,
                            resolved_at=started_at,
                        ): anticipation_id
                        for anticipation_id in open_ids
                    }
                    for future in as_completed(futures):
                        anticipation_id = futures[future]
                        try:
                            applied = future.result()
                        except Exception as exc:  # noqa: BLE001
                            failed += 1
                            logger.exception(
                                "Failed to settle anticipation {} on decision {}",
                                anticipation_id,
                                decision_id,
                            )
                            self._record_failure(run_id, anticipation_id, exc)
                            continue
                        if applied:
                            settled += 1
                        else:
                            skipped += 1
        finally:
            status = self._finish(
                decision_id,
                run_id,
                settled=settled,
                skipped=skipped,
                failed=failed,
            )

        log = logger.info if status == SettlementStatus.SETTLED else logger.warning
        log(
            "Settlement of decision {} finished as {}: settled={}, skipped={}, failed={}",
            decision_id,
            status.value,
            settled,
            skipped,
            failed,
        )
        return SettlementReport(
            run_id=run_id,
            decision_id=decision_id,
            status=status.value,
            total=len(open_ids),
            settled=settled,
            skipped=skipped,
            failed=failed,
        )

    def _settle_one(
        self,
        anticipation_id: str,
        *,
        outcome: Outcome,
        confidence: Decimal,
        resolved_at: datetime,
    ) -> bool:
        """Checkpoint and credit one anticipation; False if it was already settled."""

        with self._session_scope() as session:
            repo = AnticipationRepository(session)
            anticipation = repo.get(anticipation_id)
            if anticipation is None or anticipation.resolved:
                return False

            result = quote(
                issue=anticipation.issue,
                seeds_engaged=anticipation.seeds_engaged,
                outcome=outcome,
                confidence=confidence,
                rules=self._rules,
            )
            if not repo.mark_settled(
                anticipation_id,
                result=outcome.value,
                seeds_earned=result.seeds_earned,
                resolved_at=resolved_at,
            ):
                return False

            if result.credit > 0:
                self._ledger_factory(session, self._rules).credit(
                    anticipation.user_id,
                    result.credit,
                    "anticipation_won" if result.correct else "anticipation_lost",
                    related_type="anticipation",
                    related_id=anticipation_id,
                )
            return True

    def _record_failure(self, run_id: str, anticipation_id: str, exc: Exception) -> None:
        retriable = exc.retryable if isinstance(exc, SeedbankError) else True
        try:
            with self._session_scope() as session:
                anticipation = AnticipationRepository(session).get(anticipation_id)
                SettlementRepository(session).record_failure(
                    run_id=run_id,
                    anticipation_id=anticipation_id,
                    user_id=anticipation.user_id if anticipation is not None else None,
                    reason=str(exc) or exc.__class__.__name__,
                    retriable=retriable,
                    details={"error_type": exc.__class__.__name__},
                )
        except Exception:  # noqa: BLE001
            logger.exception("Could not record settlement failure for {}", anticipation_id)

    def _finish(
        self,
        decision_id: str,
        run_id: str,
        *,
        settled: int,
        skipped: int,
        failed: int,
    ) -> SettlementStatus:
        with self._session_scope() as session:
            remaining = AnticipationRepository(session).count_open(decision_id)
            status = SettlementStatus.SETTLED if remaining == 0 else SettlementStatus.PARTIAL
            SettlementRepository(session).finalize_run(
                run_id,
                status=status.value,
                settled=settled,
                skipped=skipped,
                failed=failed,
                finished_at=utcnow(),
            )
            DecisionRepository(session).release_settlement_lease(decision_id, status=status)
        return status


__all__ = ["AnticipationSettlement"]
