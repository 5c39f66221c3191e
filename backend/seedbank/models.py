from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class DecisionStatus(str, Enum):
    ANNOUNCED = "announced"
    ACTIVE = "active"
    RESOLVED = "resolved"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PARTIAL = "partial"
    SETTLED = "settled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    seeds_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    transactions: Mapped[list["SeedsTransaction"]] = relationship(
        "SeedsTransaction", back_populates="user", order_by="SeedsTransaction.transaction_id"
    )


class SeedsTransaction(Base):
    __tablename__ = "seeds_transactions"

    transaction_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.user_id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    level_before: Mapped[int] = mapped_column(Integer, nullable=False)
    level_after: Mapped[int] = mapped_column(Integer, nullable=False)
    related_type: Mapped[str | None] = mapped_column(String, nullable=True)
    related_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    user: Mapped[User] = relationship("User", back_populates="transactions")

    __table_args__ = (Index("ix_seeds_transactions_user", "user_id", "transaction_id"),)


class Decision(Base):
    __tablename__ = "decisions"

    decision_id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=DecisionStatus.ANNOUNCED.value)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    anticipations_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    resolution_score: Mapped[float | None] = mapped_column(Numeric(18, 4), nullable=True)
    resolution_outcome: Mapped[str | None] = mapped_column(String, nullable=True)
    resolution_confidence: Mapped[float | None] = mapped_column(Numeric(5, 2), nullable=True)
    resolution_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    settlement_status: Mapped[str] = mapped_column(
        String, nullable=False, default=SettlementStatus.PENDING.value
    )
    settlement_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    indicators: Mapped[list["Indicator"]] = relationship(
        "Indicator", back_populates="decision", cascade="all, delete-orphan"
    )
    anticipations: Mapped[list["Anticipation"]] = relationship(
        "Anticipation", back_populates="decision", cascade="all, delete-orphan"
    )
    settlement_runs: Mapped[list["SettlementRun"]] = relationship(
        "SettlementRun", back_populates="decision", cascade="all, delete-orphan"
    )


class Indicator(Base):
    __tablename__ = "indicators"

    indicator_id: Mapped[str] = mapped_column(String, primary_key=True)
    decision_id: Mapped[str] = mapped_column(String, ForeignKey("decisions.decision_id"), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str | None] = mapped_column(String, nullable=True)
    unit: Mapped[str | None] = mapped_column(String, nullable=True)

    decision: Mapped[Decision] = relationship("Decision", back_populates="indicators")
    snapshots: Mapped[list["IndicatorSnapshot"]] = relationship(
        "IndicatorSnapshot", back_populates="indicator", cascade="all, delete-orphan"
    )


class IndicatorSnapshot(Base):
    __tablename__ = "indicator_snapshots"

    snapshot_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    indicator_id: Mapped[str] = mapped_column(String, ForeignKey("indicators.indicator_id"), nullable=False)
    measure_type: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)
    source_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    indicator: Mapped[Indicator] = relationship("Indicator", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("indicator_id", "measure_type", "observed_at", name="uq_indicator_snapshot"),
    )


class Anticipation(Base):
    __tablename__ = "anticipations"

    anticipation_id: Mapped[str] = mapped_column(String, primary_key=True)
    decision_id: Mapped[str] = mapped_column(String, ForeignKey("decisions.decision_id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.user_id"), nullable=False)
    issue: Mapped[str] = mapped_column(String, nullable=False)
    seeds_engaged: Mapped[int] = mapped_column(Integer, nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    result: Mapped[str | None] = mapped_column(String, nullable=True)
    seeds_earned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    decision: Mapped[Decision] = relationship("Decision", back_populates="anticipations")

    __table_args__ = (
        UniqueConstraint("decision_id", "user_id", name="uq_anticipation_scope"),
        Index("ix_anticipations_decision_resolved", "decision_id", "resolved"),
    )


class TopArgument(Base):
    __tablename__ = "top_arguments"

    argument_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[str] = mapped_column(String, ForeignKey("decisions.decision_id"), nullable=False)
    position: Mapped[str] = mapped_column(String, nullable=False)
    current_bid: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    holder_user_id: Mapped[str] = mapped_column(String, ForeignKey("users.user_id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    bids: Mapped[list["TopArgumentBid"]] = relationship(
        "TopArgumentBid",
        back_populates="argument",
        cascade="all, delete-orphan",
        order_by="TopArgumentBid.bid_id",
    )

    __table_args__ = (
        UniqueConstraint("decision_id", "position", name="uq_top_argument_slot"),
    )


class TopArgumentBid(Base):
    __tablename__ = "top_argument_bids"

    bid_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    argument_id: Mapped[int] = mapped_column(Integer, ForeignKey("top_arguments.argument_id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.user_id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    argument: Mapped[TopArgument] = relationship("TopArgument", back_populates="bids")


class SettlementRun(Base):
    __tablename__ = "settlement_runs"

    run_id: Mapped[str] = mapped_column(String, primary_key=True)
    decision_id: Mapped[str] = mapped_column(String, ForeignKey("decisions.decision_id"), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=SettlementStatus.RUNNING.value)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_anticipations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    settled_anticipations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_anticipations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_anticipations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    decision: Mapped[Decision] = relationship("Decision", back_populates="settlement_runs")
    failures: Mapped[list["SettlementFailure"]] = relationship(
        "SettlementFailure", back_populates="settlement_run", cascade="all, delete-orphan"
    )


class SettlementFailure(Base):
    __tablename__ = "settlement_failures"

    failure_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String, ForeignKey("settlement_runs.run_id"), nullable=False)
    anticipation_id: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    retriable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    settlement_run: Mapped[SettlementRun] = relationship(
        "SettlementRun", back_populates="failures"
    )
