from __future__ import annotations

import json

import pytest

from pipelines.resolution_run import ResolutionPipeline, ResolutionSummary, _chunked, _parse_args, _write_summary
from seedbank.services.anticipation_service import AnticipationService
from seedbank.services.ledger_service import SeedsLedger
from seedbank.services.resolution_service import ResolutionService
from seedbank.services.settlement_service import AnticipationSettlement

WORKING = {"jobs": {"baseline": 100.0, "30d": 300.0}}


class BrokenLedger(SeedsLedger):
    def credit(self, *args, **kwargs):
        raise RuntimeError("ledger offline")


def test_chunked_splits_sequences():
    assert list(_chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(_chunked([1, 2], 0)) == [[1, 2]]


def test_parse_args_collects_decision_ids(tmp_path):
    args = _parse_args(
        ["--decision-id", "a", "--decision-id", "b", "--resume-only", "--summary-path", str(tmp_path / "s.json")]
    )

    assert args.decision_ids == ["a", "b"]
    assert args.resume_only is True
    assert args.limit is None


def test_sweep_resolves_due_decisions(session_scope, test_settings, make_decision, fund_user, ledger_service):
    make_decision("ready", WORKING)
    make_decision("no-data")
    make_decision("archived", WORKING, archived=True)
    fund_user("alice", 100)
    AnticipationService(session_scope).place_anticipation("ready", "alice", "works", 10)

    pipeline = ResolutionPipeline(test_settings, session_scope=session_scope)
    summary = pipeline.run()

    # "no-data" has no indicator so it is not due; "archived" is never swept
    assert summary.checked_decisions == 1
    assert summary.newly_resolved == 1
    assert summary.settled_anticipations == 1
    assert summary.failures == []
    assert ledger_service.verify("alice").seeds_balance == 120

    again = pipeline.run()
    assert again.checked_decisions == 0
    assert again.resumed_settlements == 0


def test_sweep_reports_insufficient_data(session_scope, test_settings, make_decision):
    make_decision("zero", {"jobs": {"baseline": 0.0, "30d": 10.0}})

    summary = ResolutionPipeline(test_settings, session_scope=session_scope).run()

    assert summary.insufficient_data == 1
    assert summary.failures[0]["decision_id"] == "zero"


def test_sweep_resumes_partial_settlements(session_scope, test_settings, make_decision, fund_user, ledger_service):
    make_decision("d-1", WORKING)
    fund_user("alice", 100)
    AnticipationService(session_scope).place_anticipation("d-1", "alice", "works", 10)
    broken = AnticipationSettlement(session_scope, test_settings, ledger_factory=BrokenLedger)
    first = ResolutionService(session_scope, test_settings, settlement=broken).resolve_decision("d-1")
    assert first.settlement.status == "partial"

    summary = ResolutionPipeline(test_settings, session_scope=session_scope).run(resume_only=True)

    assert summary.checked_decisions == 0
    assert summary.resumed_settlements == 1
    assert summary.settled_anticipations == 1
    assert summary.partial_settlements == 0
    assert ledger_service.verify("alice").seeds_balance == 120


def test_write_summary(tmp_path):
    summary = ResolutionSummary(checked_decisions=2, newly_resolved=1)
    path = tmp_path / "reports" / "summary.json"

    _write_summary(summary, path)

    assert json.loads(path.read_text())["newly_resolved"] == 1


@pytest.mark.parametrize("batch_size", [1, 10])
def test_batch_size_does_not_change_results(session_scope, test_settings, make_decision, batch_size):
    for index in range(3):
        make_decision(f"d-{index}", WORKING)

    summary = ResolutionPipeline(test_settings, session_scope=session_scope).run(batch_size=batch_size)

    assert summary.newly_resolved == 3
