"""Error taxonomy shared by the ledger, settlement and auction services."""

from __future__ import annotations


class SeedbankError(Exception):
    """Base class for every domain error raised by the engine."""

    code = "seedbank_error"
    retryable = False


class ValidationError(SeedbankError):
    code = "validation_error"


class NotFound(SeedbankError):
    code = "not_found"


class InsufficientFunds(SeedbankError):
    code = "insufficient_funds"

    def __init__(self, user_id: str, balance: int, required: int) -> None:
        super().__init__(
            f"User {user_id} has {balance} Seeds but {required} are required"
        )
        self.user_id = user_id
        self.balance = balance
        self.required = required


class BidTooLow(ValidationError):
    code = "bid_too_low"

    def __init__(self, amount: int, minimum: int) -> None:
        super().__init__(f"Bid of {amount} Seeds is below the minimum of {minimum}")
        self.amount = amount
        self.minimum = minimum


class AlreadyResolved(SeedbankError):
    code = "already_resolved"


class NotResolved(SeedbankError):
    code = "not_resolved"


class InsufficientData(SeedbankError):
    code = "insufficient_data"


class ConcurrencyConflict(SeedbankError):
    code = "concurrency_conflict"
    retryable = True


class LedgerInvariantError(SeedbankError):
    code = "ledger_invariant_violated"


__all__ = [
    "AlreadyResolved",
    "BidTooLow",
    "ConcurrencyConflict",
    "InsufficientData",
    "InsufficientFunds",
    "LedgerInvariantError",
    "NotFound",
    "NotResolved",
    "SeedbankError",
    "ValidationError",
]
