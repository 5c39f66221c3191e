"""Seeds account and transaction-log persistence."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from seedbank.models import SeedsTransaction, User, utcnow


class LedgerRepository:
    """Encapsulate balance rows and the append-only transaction log."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Accounts

    def get_user(self, user_id: str, *, refresh: bool = False) -> User | None:
        return self._session.get(User, user_id, populate_existing=refresh)

    def ensure_user(self, user_id: str) -> User:
        existing = self._session.get(User, user_id)
        if existing is not None:
            return existing

        user = User(user_id=user_id, seeds_balance=0, level=1)
        self._session.add(user)
        self._session.flush()
        return user

    def adjust_balance(self, user_id: str, amount: int) -> User | None:
        """Atomically add ``amount`` unless the balance would drop below zero.

        Returns the refreshed account, or None when the guard rejected the change.
        The conditional UPDATE holds the row lock until the transaction ends,
        which serializes concurrent mutations of one account.
        """

        statement = (
            update(User)
            .where(User.user_id == user_id, User.seeds_balance + amount >= 0)
            .values(seeds_balance=User.seeds_balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        if result.rowcount != 1:
            return None
        return self._session.get(User, user_id, populate_existing=True)

    # ------------------------------------------------------------------
    # Transaction log

    def append_transaction(
        self,
        *,
        user_id: str,
        amount: int,
        reason: str,
        balance_after: int,
        level_before: int,
        level_after: int,
        related_type: str | None = None,
        related_id: str | None = None,
    ) -> SeedsTransaction:
        record = SeedsTransaction(
            user_id=user_id,
            amount=amount,
            reason=reason,
            balance_after=balance_after,
            level_before=level_before,
            level_after=level_after,
            related_type=related_type,
            related_id=related_id,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def list_transactions(
        self, user_id: str, *, limit: int = 50, offset: int = 0
    ) -> tuple[list[SeedsTransaction], int]:
        query = (
            select(SeedsTransaction)
            .where(SeedsTransaction.user_id == user_id)
            .order_by(SeedsTransaction.transaction_id.desc())
            .limit(limit)
            .offset(offset)
        )
        total_query = select(func.count(SeedsTransaction.transaction_id)).where(
            SeedsTransaction.user_id == user_id
        )
        transactions = self._session.execute(query).scalars().all()
        total = self._session.execute(total_query).scalar_one()
        return list(transactions), total

    def sum_amounts(self, user_id: str) -> int:
        query = select(func.coalesce(func.sum(SeedsTransaction.amount), 0)).where(
            SeedsTransaction.user_id == user_id
        )
        return int(self._session.execute(query).scalar_one())

    def latest_transaction(self, user_id: str) -> SeedsTransaction | None:
        query = (
            select(SeedsTransaction)
            .where(SeedsTransaction.user_id == user_id)
            .order_by(SeedsTransaction.transaction_id.desc())
            .limit(1)
        )
        return self._session.execute(query).scalar_one_or_none()


__all__ = ["LedgerRepository"]
