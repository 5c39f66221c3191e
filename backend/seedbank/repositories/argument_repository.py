"""Featured-argument slot persistence with compare-and-swap updates."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from seedbank.models import TopArgument, TopArgumentBid, utcnow


class ArgumentRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_slot(self, decision_id: str, position: str) -> TopArgument | None:
        query = (
            select(TopArgument)
            .where(
                TopArgument.decision_id == decision_id,
                TopArgument.position == position,
            )
            .execution_options(populate_existing=True)
        )
        return self._session.execute(query).scalar_one_or_none()

    def claim_empty_slot(
        self,
        *,
        decision_id: str,
        position: str,
        bid: int,
        holder_user_id: str,
        content: str,
    ) -> TopArgument | None:
        """Insert the first holder of a slot; None when a concurrent bid won the insert.

        A None result leaves the session unusable; the caller must abandon the
        transaction.
        """

        record = TopArgument(
            decision_id=decision_id,
            position=position,
            current_bid=bid,
            holder_user_id=holder_user_id,
            content=content,
        )
        self._session.add(record)
        try:
            self._session.flush()
        except IntegrityError:
            return None
        return record

    def swap_slot(
        self,
        argument_id: int,
        *,
        expected_bid: int,
        bid: int,
        holder_user_id: str,
        content: str,
    ) -> bool:
        """Replace the holder only if the slot still carries ``expected_bid``."""

        statement = (
            update(TopArgument)
            .where(
                TopArgument.argument_id == argument_id,
                TopArgument.current_bid == expected_bid,
            )
            .values(
                current_bid=bid,
                holder_user_id=holder_user_id,
                content=content,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(statement).rowcount == 1

    def get_argument(self, argument_id: int) -> TopArgument | None:
        return self._session.get(TopArgument, argument_id, populate_existing=True)

    def append_bid(
        self, *, argument_id: int, user_id: str, amount: int, content: str
    ) -> TopArgumentBid:
        record = TopArgumentBid(
            argument_id=argument_id,
            user_id=user_id,
            amount=amount,
            content=content,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def list_bids(self, decision_id: str, position: str) -> list[TopArgumentBid]:
        query = (
            select(TopArgumentBid)
            .join(TopArgument, TopArgumentBid.argument_id == TopArgument.argument_id)
            .where(
                TopArgument.decision_id == decision_id,
                TopArgument.position == position,
            )
            .order_by(TopArgumentBid.bid_id.asc())
        )
        return list(self._session.execute(query).scalars().all())


__all__ = ["ArgumentRepository"]
