"""Escalating-bid auction for the featured argument of each outcome camp."""

from __future__ import annotations

import time
from functools import partial
from typing import Callable

from loguru import logger

from seedbank.core.config import Settings, get_settings
from seedbank.core.errors import (
    BidTooLow,
    ConcurrencyConflict,
    InsufficientFunds,
    NotFound,
    ValidationError,
)
from seedbank.db import SessionScope, session_scope as default_session_scope
from seedbank.domain import DEFAULT_RULES, Outcome, RuleSet
from seedbank.models import TopArgument as TopArgumentRecord
from seedbank.repositories import ArgumentRepository, DecisionRepository, LedgerRepository
from seedbank.schemas import ArgumentBid, ArgumentSlot, TopArgument

from .ledger_service import SeedsLedger


def _position(value: Outcome | str) -> Outcome:
    try:
        return Outcome(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown argument position {value!r}") from exc


class FeaturedArgumentAuction:
    """One slot per (decision, position); each accepted bid must beat the last.

    The slot is updated by compare-and-swap on its current bid, and the
    escrow of the new holder and the refund of the previous one commit in the
    same transaction as the swap.
    """

    def __init__(
        self,
        session_scope: SessionScope = default_session_scope,
        settings: Settings | None = None,
        rules: RuleSet = DEFAULT_RULES,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_scope = session_scope
        self.settings = settings or get_settings()
        self._rules = rules
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Read accessors

    def minimum_bid(self, decision_id: str, position: Outcome | str) -> int:
        return self.slot(decision_id, position).minimum_bid

    def top_argument(self, decision_id: str, position: Outcome | str) -> TopArgument | None:
        return self.slot(decision_id, position).top_argument

    def slot(self, decision_id: str, position: Outcome | str) -> ArgumentSlot:
        position = _position(position)
        with self._session_scope() as session:
            decision = DecisionRepository(session).get_decision(decision_id)
            if decision is None:
                raise NotFound(f"Decision {decision_id} not found")
            record = ArgumentRepository(session).get_slot(decision_id, position.value)
            return ArgumentSlot(
                decision_id=decision_id,
                position=position,
                minimum_bid=self._minimum_for(record),
                closed=decision.archived,
                top_argument=TopArgument.model_validate(record) if record is not None else None,
            )

    def bid_history(self, decision_id: str, position: Outcome | str) -> list[ArgumentBid]:
        position = _position(position)
        with self._session_scope() as session:
            if DecisionRepository(session).get_decision(decision_id) is None:
                raise NotFound(f"Decision {decision_id} not found")
            bids = ArgumentRepository(session).list_bids(decision_id, position.value)
            return [ArgumentBid.model_validate(bid) for bid in bids]

    # ------------------------------------------------------------------
    # Bidding

    def bid(
        self,
        decision_id: str,
        position: Outcome | str,
        user_id: str,
        content: str,
        amount: int,
    ) -> TopArgument:
        position = _position(position)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Argument content must not be blank")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("Bid amount must be a whole number of Seeds")
        if amount <= 0:
            raise ValidationError("Bid amount must be positive")

        with self._session_scope() as session:
            decision = DecisionRepository(session).get_decision(decision_id)
            if decision is None:
                raise NotFound(f"Decision {decision_id} not found")
            if decision.archived:
                raise ValidationError(f"Auction for decision {decision_id} is closed")

            arguments = ArgumentRepository(session)
            current = arguments.get_slot(decision_id, position.value)
            minimum = self._minimum_for(current)
            if amount < minimum:
                raise BidTooLow(amount, minimum)

            bidder = LedgerRepository(session).get_user(user_id, refresh=True)
            if bidder is None:
                raise NotFound(f"User {user_id} not found")
            if bidder.seeds_balance < amount:
                raise InsufficientFunds(user_id, bidder.seeds_balance, amount)

            if current is None:
                previous_holder, previous_bid = None, 0
                record = arguments.claim_empty_slot(
                    decision_id=decision_id,
                    position=position.value,
                    bid=amount,
                    holder_user_id=user_id,
                    content=content,
                )
                if record is None:
                    raise ConcurrencyConflict(
                        f"Slot {decision_id}/{position.value} was claimed by a concurrent bid"
                    )
            else:
                previous_holder, previous_bid = current.holder_user_id, current.current_bid
                swapped = arguments.swap_slot(
                    current.argument_id,
                    expected_bid=previous_bid,
                    bid=amount,
                    holder_user_id=user_id,
                    content=content,
                )
                if not swapped:
                    raise ConcurrencyConflict(
                        f"Slot {decision_id}/{position.value} changed while bidding"
                    )
                record = arguments.get_argument(current.argument_id)

            ledger = SeedsLedger(session, self._rules)
            related_id = str(record.argument_id)
            movements = [
                (
                    user_id,
                    partial(
                        ledger.escrow,
                        user_id,
                        amount,
                        reason="top_argument_bid",
                        related_type="top_argument",
                        related_id=related_id,
                    ),
                )
            ]
            if previous_holder is not None:
                movements.append(
                    (
                        previous_holder,
                        partial(
                            ledger.credit,
                            previous_holder,
                            previous_bid,
                            "top_argument_refund",
                            related_type="top_argument",
                            related_id=related_id,
                        ),
                    )
                )
            # User rows are always locked in user_id order.
            for _, move in sorted(movements, key=lambda item: item[0]):
                move()
            arguments.append_bid(
                argument_id=record.argument_id,
                user_id=user_id,
                amount=amount,
                content=content,
            )
            payload = TopArgument.model_validate(record)

        logger.info(
            "User {} holds featured {} argument on decision {} with {} Seeds",
            user_id,
            position.value,
            decision_id,
            amount,
        )
        return payload

    def bid_with_retry(
        self,
        decision_id: str,
        position: Outcome | str,
        user_id: str,
        content: str,
        amount: int,
    ) -> TopArgument:
        """Retry lost compare-and-swap races; any other error surfaces at once."""

        attempts = self.settings.bid_retry_attempts
        backoff = self.settings.bid_retry_backoff_schedule
        for attempt in range(1, attempts + 1):
            try:
                return self.bid(decision_id, position, user_id, content, amount)
            except ConcurrencyConflict:
                if attempt >= attempts:
                    logger.warning(
                        "Bid by {} on {}/{} lost {} races; giving up",
                        user_id,
                        decision_id,
                        position,
                        attempts,
                    )
                    raise
                delay = backoff[min(attempt - 1, len(backoff) - 1)]
                logger.warning(
                    "Bid by {} on {}/{} lost a race (attempt {}/{}); retrying in {}s",
                    user_id,
                    decision_id,
                    position,
                    attempt,
                    attempts,
                    delay,
                )
                self._sleep(delay)
        raise ConcurrencyConflict(f"Bid on {decision_id}/{position} could not be placed")

    def _minimum_for(self, record: TopArgumentRecord | None) -> int:
        if record is None:
            return self._rules.auction_floor
        return record.current_bid + 1


__all__ = ["FeaturedArgumentAuction"]
