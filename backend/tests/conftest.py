from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from seedbank.core.config import Settings
from seedbank.db import create_db_engine, create_session_factory, init_db, make_session_scope
from seedbank.domain import MeasureType, NormalizedSnapshot
from seedbank.repositories import DecisionRepository
from seedbank.services.ledger_service import LedgerService

BASELINE_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'seedbank.db'}",
        settlement_workers=2,
        bid_retry_attempts=3,
        bid_retry_backoff_seconds=[0.0],
    )
    monkeypatch.setattr("seedbank.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("seedbank.core.config.settings", settings)
    return settings


@pytest.fixture
def engine(test_settings):
    engine = create_db_engine(test_settings.resolved_database_url)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_scope(engine):
    return make_session_scope(create_session_factory(engine))


@pytest.fixture
def ledger_service(session_scope) -> LedgerService:
    return LedgerService(session_scope)


@pytest.fixture
def fund_user(ledger_service):
    """Open an account and grant it an opening balance."""

    def _fund(user_id: str, amount: int) -> None:
        ledger_service.open_account(user_id)
        if amount:
            ledger_service.grant(user_id, amount, "signup_bonus")

    return _fund


@pytest.fixture
def make_decision(session_scope):
    """Create a decision whose indicators move by the given percentages.

    ``indicators`` maps an indicator id to ``{measure: value}`` where the
    ``baseline`` key holds the reference value.
    """

    def _make(
        decision_id: str,
        indicators: dict[str, dict[str, float]] | None = None,
        *,
        archived: bool = False,
    ) -> str:
        with session_scope() as session:
            repo = DecisionRepository(session)
            repo.upsert_decision(decision_id, title=f"Decision {decision_id}", archived=archived)
            for indicator_id, values in (indicators or {}).items():
                repo.upsert_indicator(decision_id, indicator_id, name=indicator_id.title())
                for measure, value in values.items():
                    repo.add_snapshot(
                        NormalizedSnapshot(
                            indicator_id=indicator_id,
                            measure_type=MeasureType(measure),
                            value=value,
                            observed_at=BASELINE_DATE,
                            source="test",
                        )
                    )
        return decision_id

    return _make
