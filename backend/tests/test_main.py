from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from seedbank import schemas
from seedbank.core.errors import (
    BidTooLow,
    ConcurrencyConflict,
    InsufficientData,
    InsufficientFunds,
    NotFound,
)
from seedbank.domain import DEFAULT_RULES
from seedbank.main import (
    _anticipation_service,
    _auction_service,
    _ledger_service,
    _resolution_service,
    app,
)
from seedbank.services.anticipation_service import AnticipationService
from seedbank.services.auction_service import FeaturedArgumentAuction
from seedbank.services.ledger_service import LedgerService
from seedbank.services.resolution_service import ResolutionService

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def live_client(client, session_scope, test_settings):
    """Client wired to real services on a temporary database."""
    app.dependency_overrides[_resolution_service] = lambda: ResolutionService(session_scope, test_settings)
    app.dependency_overrides[_anticipation_service] = lambda: AnticipationService(session_scope)
    app.dependency_overrides[_auction_service] = lambda: FeaturedArgumentAuction(
        session_scope, test_settings, sleep=lambda _: None
    )
    app.dependency_overrides[_ledger_service] = lambda: LedgerService(session_scope)
    return client


def test_healthcheck(client):
    """Verify the healthcheck endpoint returns a successful response."""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_rules(client):
    mock_service = MagicMock()
    mock_service.get_resolution_rules.return_value = schemas.RuleSetResponse.from_rules(DEFAULT_RULES)
    app.dependency_overrides[_resolution_service] = lambda: mock_service

    response = client.get("/rules")

    assert response.status_code == 200
    body = response.json()
    assert body["works_threshold"] == 30.0
    assert body["auction_floor"] == 50
    assert body["window_weights"]["90d"] == 0.3


def test_resolve_decision_delegates(client):
    mock_service = MagicMock()
    mock_service.resolve_decision.return_value = schemas.ResolutionResult(
        decision_id="d-1",
        outcome="works",
        confidence=80,
        score=30.5,
        resolved_at=NOW,
    )
    app.dependency_overrides[_resolution_service] = lambda: mock_service

    response = client.post("/decisions/d-1/resolve")

    assert response.status_code == 200
    assert response.json()["outcome"] == "works"
    mock_service.resolve_decision.assert_called_once_with("d-1")


@pytest.mark.parametrize(
    ("error", "status_code", "code", "retryable"),
    [
        (NotFound("Decision d-1 not found"), 404, "not_found", False),
        (InsufficientData("no indicators"), 409, "insufficient_data", False),
        (InsufficientFunds("alice", 10, 50), 402, "insufficient_funds", False),
        (BidTooLow(40, 50), 422, "bid_too_low", False),
        (ConcurrencyConflict("slot changed"), 409, "concurrency_conflict", True),
    ],
)
def test_domain_errors_map_to_status_codes(client, error, status_code, code, retryable):
    mock_service = MagicMock()
    mock_service.resolve_decision.side_effect = error
    app.dependency_overrides[_resolution_service] = lambda: mock_service

    response = client.post("/decisions/d-1/resolve")

    assert response.status_code == status_code
    assert response.json() == {"error": code, "detail": str(error), "retryable": retryable}


def test_place_anticipation_validates_issue(client):
    mock_service = MagicMock()
    app.dependency_overrides[_anticipation_service] = lambda: mock_service

    response = client.post(
        "/decisions/d-1/anticipations",
        json={"user_id": "alice", "issue": "maybe", "seeds_engaged": 10},
    )

    assert response.status_code == 422
    mock_service.place_anticipation.assert_not_called()


def test_bid_uses_retrying_path(client):
    mock_service = MagicMock()
    mock_service.bid_with_retry.return_value = schemas.TopArgument(
        argument_id=1,
        decision_id="d-1",
        position="fails",
        current_bid=50,
        content="Nope",
        holder_user_id="alice",
        updated_at=NOW,
    )
    app.dependency_overrides[_auction_service] = lambda: mock_service

    response = client.post(
        "/decisions/d-1/arguments/fails/bids",
        json={"user_id": "alice", "content": "Nope", "amount": 50},
    )

    assert response.status_code == 201
    assert response.json()["current_bid"] == 50
    mock_service.bid_with_retry.assert_called_once()
    assert mock_service.bid_with_retry.call_args.args[0] == "d-1"
    assert mock_service.bid_with_retry.call_args.args[4] == 50


def test_unknown_argument_position_is_rejected(client):
    app.dependency_overrides[_auction_service] = lambda: MagicMock()

    response = client.get("/decisions/d-1/arguments/sideways")

    assert response.status_code == 422


def test_end_to_end_flow(live_client, make_decision):
    make_decision("d-1", {"jobs": {"baseline": 100.0, "30d": 300.0}})

    assert live_client.post("/users/alice/grants", json={"amount": 200}).status_code == 201
    assert live_client.post("/users/bob/grants", json={"amount": 200, "reason": "quest"}).status_code == 201

    placed = live_client.post(
        "/decisions/d-1/anticipations",
        json={"user_id": "alice", "issue": "works", "seeds_engaged": 10},
    )
    assert placed.status_code == 201

    too_low = live_client.post(
        "/decisions/d-1/arguments/works/bids",
        json={"user_id": "bob", "content": "Hiring is up", "amount": 40},
    )
    assert too_low.status_code == 422
    assert too_low.json()["error"] == "bid_too_low"

    accepted = live_client.post(
        "/decisions/d-1/arguments/works/bids",
        json={"user_id": "bob", "content": "Hiring is up", "amount": 50},
    )
    assert accepted.status_code == 201
    slot = live_client.get("/decisions/d-1/arguments/works").json()
    assert slot["minimum_bid"] == 51
    assert slot["top_argument"]["holder_user_id"] == "bob"

    resolved = live_client.post("/decisions/d-1/resolve")
    assert resolved.status_code == 200
    assert resolved.json()["outcome"] == "works"
    assert resolved.json()["settlement"]["settled"] == 1

    ledger = live_client.get("/users/alice/ledger").json()
    # 200 - 10 + 10 + 20
    assert ledger["seeds_balance"] == 220
    assert ledger["level"] == 2
    assert ledger["transactions"][0]["reason"] == "anticipation_won"

    again = live_client.post(
        "/decisions/d-1/anticipations",
        json={"user_id": "bob", "issue": "fails", "seeds_engaged": 10},
    )
    assert again.status_code == 409
    assert again.json()["error"] == "already_resolved"

    decision = live_client.get("/decisions/d-1").json()
    assert decision["status"] == "resolved"
    assert decision["settlement_status"] == "settled"
    assert decision["anticipations_count"] == 1


def test_missing_user_ledger(live_client):
    response = live_client.get("/users/ghost/ledger")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
