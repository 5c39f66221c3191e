from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from seedbank.core.errors import AlreadyResolved, InsufficientFunds, NotFound, ValidationError
from seedbank.repositories import AnticipationRepository, DecisionRepository
from seedbank.services.anticipation_service import AnticipationService
from seedbank.services.resolution_service import ResolutionService

INDICATORS = {"jobs": {"baseline": 100.0, "30d": 300.0}}


@pytest.fixture
def service(session_scope) -> AnticipationService:
    return AnticipationService(session_scope)


def test_place_anticipation_escrows_stake(service, fund_user, ledger_service, make_decision, session_scope):
    fund_user("alice", 100)
    make_decision("d-1", INDICATORS)

    anticipation = service.place_anticipation("d-1", "alice", "works", 40)

    assert anticipation.issue.value == "works"
    assert anticipation.seeds_engaged == 40
    assert anticipation.resolved is False
    statement = ledger_service.history("alice")
    assert statement.seeds_balance == 60
    escrow = statement.transactions[0]
    assert escrow.amount == -40
    assert escrow.reason == "escrow"
    assert escrow.related_type == "anticipation"
    assert escrow.related_id == anticipation.anticipation_id
    with session_scope() as session:
        assert DecisionRepository(session).get_decision("d-1").anticipations_count == 1


def test_one_anticipation_per_user_and_decision(service, fund_user, ledger_service, make_decision):
    fund_user("alice", 100)
    make_decision("d-1", INDICATORS)
    service.place_anticipation("d-1", "alice", "works", 10)

    with pytest.raises(ValidationError):
        service.place_anticipation("d-1", "alice", "fails", 10)

    assert ledger_service.account("alice").seeds_balance == 90
    assert len(service.list_for_decision("d-1")) == 1


@pytest.mark.parametrize("stake", [0, -3, 1.5])
def test_stake_must_be_positive_whole_seeds(service, fund_user, make_decision, stake):
    fund_user("alice", 100)
    make_decision("d-1", INDICATORS)

    with pytest.raises(ValidationError):
        service.place_anticipation("d-1", "alice", "works", stake)


def test_unknown_outcome_is_rejected(service, fund_user, make_decision):
    fund_user("alice", 100)
    make_decision("d-1", INDICATORS)

    with pytest.raises(ValidationError):
        service.place_anticipation("d-1", "alice", "maybe", 10)


def test_insufficient_funds_creates_nothing(service, fund_user, ledger_service, make_decision):
    fund_user("alice", 5)
    make_decision("d-1", INDICATORS)

    with pytest.raises(InsufficientFunds):
        service.place_anticipation("d-1", "alice", "works", 10)

    assert service.list_for_decision("d-1") == []
    assert ledger_service.verify("alice").seeds_balance == 5


def test_cannot_anticipate_missing_archived_or_resolved(
    service, fund_user, make_decision, session_scope, test_settings
):
    fund_user("alice", 100)
    make_decision("archived", INDICATORS, archived=True)
    make_decision("done", INDICATORS)
    ResolutionService(session_scope, test_settings).resolve_decision("done")

    with pytest.raises(NotFound):
        service.place_anticipation("missing", "alice", "works", 10)
    with pytest.raises(ValidationError):
        service.place_anticipation("archived", "alice", "works", 10)
    with pytest.raises(AlreadyResolved):
        service.place_anticipation("done", "alice", "works", 10)


def test_unknown_user_cannot_anticipate(service, make_decision):
    make_decision("d-1", INDICATORS)

    with pytest.raises(NotFound):
        service.place_anticipation("d-1", "ghost", "works", 10)


def test_resolution_between_status_check_and_escrow_rejects_placement(
    service, fund_user, ledger_service, make_decision, session_scope, test_settings
):
    fund_user("alice", 100)
    make_decision("d-1", INDICATORS)
    resolver = ResolutionService(session_scope, test_settings)
    find_for_user = AnticipationRepository.find_for_user

    def resolve_first(self, decision_id, user_id):
        # runs after the status check has passed, before any write
        with ThreadPoolExecutor(max_workers=1) as pool:
            pool.submit(resolver.resolve_decision, decision_id).result(timeout=30)
        return find_for_user(self, decision_id, user_id)

    with patch.object(AnticipationRepository, "find_for_user", resolve_first):
        with pytest.raises(AlreadyResolved):
            service.place_anticipation("d-1", "alice", "works", 10)

    assert ledger_service.verify("alice").seeds_balance == 100
    decision = resolver.get_decision("d-1")
    assert decision.settlement_status == "settled"
    assert decision.anticipations_count == 0
    assert decision.open_anticipations == 0


def test_archiving_between_status_check_and_escrow_rejects_placement(
    service, fund_user, ledger_service, make_decision, session_scope
):
    fund_user("alice", 100)
    make_decision("d-1", INDICATORS)
    find_for_user = AnticipationRepository.find_for_user

    def archive_first(self, decision_id, user_id):
        with session_scope() as session:
            DecisionRepository(session).upsert_decision(decision_id, title="Archived", archived=True)
        return find_for_user(self, decision_id, user_id)

    with patch.object(AnticipationRepository, "find_for_user", archive_first):
        with pytest.raises(ValidationError):
            service.place_anticipation("d-1", "alice", "works", 10)

    assert ledger_service.verify("alice").seeds_balance == 100
