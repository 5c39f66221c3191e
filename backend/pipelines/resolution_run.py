"""Standalone job that resolves due decisions and resumes unfinished settlements."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from loguru import logger

from seedbank.core.config import Settings, get_settings
from seedbank.core.errors import ConcurrencyConflict, InsufficientData, SeedbankError
from seedbank.core.rules_config import active_rules
from seedbank.db import SessionScope, init_db, session_scope as default_session_scope
from seedbank.models import utcnow
from seedbank.repositories import DecisionRepository
from seedbank.schemas import SettlementReport
from seedbank.services.resolution_service import ResolutionService


@dataclass(slots=True)
class ResolutionSummary:
    checked_decisions: int = 0
    newly_resolved: int = 0
    already_resolved: int = 0
    insufficient_data: int = 0
    resumed_settlements: int = 0
    settled_anticipations: int = 0
    partial_settlements: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_decisions": self.checked_decisions,
            "newly_resolved": self.newly_resolved,
            "already_resolved": self.already_resolved,
            "insufficient_data": self.insufficient_data,
            "resumed_settlements": self.resumed_settlements,
            "settled_anticipations": self.settled_anticipations,
            "partial_settlements": self.partial_settlements,
            "failures": self.failures,
        }

    def record_settlement(self, report: SettlementReport | None) -> None:
        if report is None:
            return
        self.settled_anticipations += report.settled
        if report.status != "settled":
            self.partial_settlements += 1


class ResolutionPipeline:
    """Coordinate decision resolution as an independent pipeline."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        session_scope: SessionScope = default_session_scope,
        service: ResolutionService | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_scope = session_scope
        self._service = service or ResolutionService(session_scope, self.settings, active_rules(self.settings))

    def run(
        self,
        *,
        limit: int | None = None,
        batch_size: int | None = None,
        decision_ids: Sequence[str] | None = None,
        resume_only: bool = False,
    ) -> ResolutionSummary:
        summary = ResolutionSummary()
        batch_size = batch_size or self.settings.resolution_batch_size
        decision_filter = list(decision_ids) if decision_ids else None

        logger.info(
            "Starting resolution sweep: limit={}, batch_size={}, decision_filter={}, resume_only={}",
            limit,
            batch_size,
            decision_filter,
            resume_only,
        )

        with self._session_scope() as session:
            repo = DecisionRepository(session)
            due_ids = (
                []
                if resume_only
                else [
                    decision.decision_id
                    for decision in repo.list_due_decisions(limit=limit, decision_ids=decision_filter)
                ]
            )
            unsettled_ids = [
                decision.decision_id
                for decision in repo.list_unsettled_decisions(
                    now=utcnow(),
                    lease_seconds=self.settings.settlement_lease_seconds,
                    decision_ids=decision_filter,
                )
            ]

        if not due_ids and not unsettled_ids:
            logger.info("No due decisions or unfinished settlements; sweep completed with no updates")
            return summary

        logger.info(
            "Resolution sweep evaluating {} due decisions and {} unfinished settlements",
            len(due_ids),
            len(unsettled_ids),
        )

        for chunk in _chunked(due_ids, batch_size):
            for decision_id in chunk:
                summary.checked_decisions += 1
                try:
                    result = self._service.resolve_decision(decision_id)
                except InsufficientData as exc:
                    summary.insufficient_data += 1
                    summary.failures.append({"decision_id": decision_id, "reason": str(exc)})
                    continue
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Resolution failed for decision {}", decision_id)
                    summary.failures.append({"decision_id": decision_id, "reason": str(exc)})
                    continue

                if result.already_resolved:
                    summary.already_resolved += 1
                else:
                    summary.newly_resolved += 1
                summary.record_settlement(result.settlement)

        for decision_id in unsettled_ids:
            try:
                report = self._service.settle_decision(decision_id)
            except ConcurrencyConflict:
                logger.warning("Settlement for decision {} is running elsewhere; skipping", decision_id)
                continue
            except SeedbankError as exc:
                summary.failures.append({"decision_id": decision_id, "reason": str(exc)})
                continue
            summary.resumed_settlements += 1
            summary.record_settlement(report)

        logger.info(
            "Resolution sweep finished: checked={}, newly_resolved={}, resumed={}, settled={}",
            summary.checked_decisions,
            summary.newly_resolved,
            summary.resumed_settlements,
            summary.settled_anticipations,
        )
        return summary


def _chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    if size <= 0:
        yield items
        return
    for index in range(0, len(items), size):
        yield items[index : index + size]


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resolve due decisions and resume unfinished Seeds settlements",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of decisions to resolve")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Override the number of decisions evaluated per chunk",
    )
    parser.add_argument(
        "--decision-id",
        dest="decision_ids",
        action="append",
        help="Restrict the sweep to specific decision IDs (can be provided multiple times)",
    )
    parser.add_argument(
        "--resume-only",
        action="store_true",
        help="Only resume partial or abandoned settlements; do not resolve new decisions",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: ResolutionSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Resolution summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> ResolutionSummary:
    args = _parse_args(argv)
    init_db()
    pipeline = ResolutionPipeline(get_settings())
    summary = pipeline.run(
        limit=args.limit,
        batch_size=args.batch_size,
        decision_ids=args.decision_ids,
        resume_only=args.resume_only,
    )

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return summary


if __name__ == "__main__":
    main()
