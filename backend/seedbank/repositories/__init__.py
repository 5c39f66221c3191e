"""Repository abstractions for database interactions."""

from .anticipation_repository import AnticipationRepository
from .argument_repository import ArgumentRepository
from .decision_repository import DecisionRepository
from .ledger_repository import LedgerRepository
from .settlement_repository import SettlementRepository

__all__ = [
    "AnticipationRepository",
    "ArgumentRepository",
    "DecisionRepository",
    "LedgerRepository",
    "SettlementRepository",
]
