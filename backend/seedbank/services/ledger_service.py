"""Seeds ledger: the only code path that mutates balances."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loguru import logger

from seedbank.core.errors import (
    InsufficientFunds,
    LedgerInvariantError,
    NotFound,
    ValidationError,
)
from seedbank.db import SessionScope, session_scope as default_session_scope
from seedbank.domain import DEFAULT_RULES, RuleSet
from seedbank.models import SeedsTransaction, User
from seedbank.repositories import LedgerRepository
from seedbank.schemas import LedgerAccount, LedgerStatement, Transaction


def _require_whole_seeds(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Seeds amounts must be whole numbers, got {amount!r}")
    if amount == 0:
        raise ValidationError("Seeds amount must not be zero")
    return amount


class SeedsLedger:
    """Apply balance changes inside the caller's unit of work.

    Every mutation goes through one conditional UPDATE on the user's row, so
    concurrent writers for the same user serialize on the row lock while other
    users proceed in parallel. The transaction log row is written in the same
    database transaction as the balance change.
    """

    def __init__(self, session: Session, rules: RuleSet = DEFAULT_RULES) -> None:
        self._repo = LedgerRepository(session)
        self._rules = rules

    def apply(
        self,
        user_id: str,
        amount: int,
        reason: str,
        *,
        related_type: str | None = None,
        related_id: str | None = None,
    ) -> SeedsTransaction:
        amount = _require_whole_seeds(amount)
        user = self._repo.get_user(user_id, refresh=True)
        if user is None:
            raise NotFound(f"User {user_id} not found")

        updated = self._repo.adjust_balance(user_id, amount)
        if updated is None:
            current = self._repo.get_user(user_id, refresh=True)
            balance = current.seeds_balance if current is not None else 0
            raise InsufficientFunds(user_id, balance, -amount)

        balance_after = updated.seeds_balance
        level_before = self._rules.level_for_balance(balance_after - amount)
        level_after = self._rules.level_for_balance(balance_after)
        updated.level = level_after

        if level_after != level_before:
            logger.info(
                "User {} moved from level {} to level {} ({} Seeds)",
                user_id,
                level_before,
                level_after,
                balance_after,
            )

        return self._repo.append_transaction(
            user_id=user_id,
            amount=amount,
            reason=reason,
            balance_after=balance_after,
            level_before=level_before,
            level_after=level_after,
            related_type=related_type,
            related_id=related_id,
        )

    def escrow(
        self,
        user_id: str,
        amount: int,
        *,
        reason: str = "escrow",
        related_type: str | None = None,
        related_id: str | None = None,
    ) -> SeedsTransaction:
        amount = _require_whole_seeds(amount)
        if amount < 0:
            raise ValidationError("Escrowed amount must be positive")
        return self.apply(
            user_id, -amount, reason, related_type=related_type, related_id=related_id
        )

    def credit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        *,
        related_type: str | None = None,
        related_id: str | None = None,
    ) -> SeedsTransaction:
        amount = _require_whole_seeds(amount)
        if amount < 0:
            raise ValidationError("Credited amount must be positive")
        return self.apply(
            user_id, amount, reason, related_type=related_type, related_id=related_id
        )

    def balance(self, user_id: str) -> int:
        user = self._repo.get_user(user_id, refresh=True)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user.seeds_balance


class LedgerService:
    """Account-level operations, each in its own transaction."""

    def __init__(
        self,
        session_scope: SessionScope = default_session_scope,
        rules: RuleSet = DEFAULT_RULES,
    ) -> None:
        self._session_scope = session_scope
        self._rules = rules

    def open_account(self, user_id: str) -> LedgerAccount:
        try:
            with self._session_scope() as session:
                user = LedgerRepository(session).ensure_user(user_id)
                return self._account_payload(user)
        except IntegrityError:
            # Another request created the row between our read and insert.
            logger.warning("Concurrent account creation for {}; reloading", user_id)
            return self.account(user_id)

    def grant(self, user_id: str, amount: int, reason: str = "grant") -> Transaction:
        amount = _require_whole_seeds(amount)
        if amount < 0:
            raise ValidationError("Granted amount must be positive")
        with self._session_scope() as session:
            record = SeedsLedger(session, self._rules).credit(user_id, amount, reason)
            payload = Transaction.model_validate(record)
        logger.info("Granted {} Seeds to {} ({})", amount, user_id, reason)
        return payload

    def account(self, user_id: str) -> LedgerAccount:
        with self._session_scope() as session:
            user = LedgerRepository(session).get_user(user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found")
            return self._account_payload(user)

    def history(self, user_id: str, *, limit: int = 50, offset: int = 0) -> LedgerStatement:
        with self._session_scope() as session:
            repo = LedgerRepository(session)
            user = repo.get_user(user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found")
            transactions, total = repo.list_transactions(user_id, limit=limit, offset=offset)
            account = self._account_payload(user)
            return LedgerStatement(
                **account.model_dump(),
                total_transactions=total,
                transactions=[Transaction.model_validate(item) for item in transactions],
            )

    def verify(self, user_id: str) -> LedgerAccount:
        """Check that the log and the live balance agree; raise on any drift."""

        with self._session_scope() as session:
            repo = LedgerRepository(session)
            user = repo.get_user(user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found")

            total = repo.sum_amounts(user_id)
            latest = repo.latest_transaction(user_id)
            latest_balance = latest.balance_after if latest is not None else 0
            if total != user.seeds_balance or latest_balance != user.seeds_balance:
                logger.error(
                    "Ledger drift for {}: balance={}, sum={}, latest_balance_after={}",
                    user_id,
                    user.seeds_balance,
                    total,
                    latest_balance,
                )
                raise LedgerInvariantError(
                    f"Ledger for {user_id} is inconsistent: balance {user.seeds_balance}, "
                    f"transaction sum {total}, latest balance_after {latest_balance}"
                )
            expected_level = self._rules.level_for_balance(user.seeds_balance)
            if user.level != expected_level:
                raise LedgerInvariantError(
                    f"Level for {user_id} is {user.level} but balance implies {expected_level}"
                )
            return self._account_payload(user)

    def _account_payload(self, user: User) -> LedgerAccount:
        return LedgerAccount(
            user_id=user.user_id,
            seeds_balance=user.seeds_balance,
            level=user.level,
            seeds_to_next_level=self._rules.seeds_to_next_level(user.seeds_balance),
        )


__all__ = ["LedgerService", "SeedsLedger"]
