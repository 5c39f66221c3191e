from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .domain import Outcome, RuleSet


class RuleEntry(BaseModel):
    id: str
    category: str
    value: float | int | str
    unit: str
    description: str


class RuleSetResponse(BaseModel):
    window_weights: dict[str, float]
    significant_change_pct: float
    min_indicators: int
    works_threshold: float
    fails_threshold: float
    confidence_base: float
    confidence_max: float
    base_multiplier: float
    exact_bonus: float
    partial_bonus: float
    wrong_penalty: float
    min_gain: int
    min_loss: int
    level_step: int
    auction_floor: int
    rules: list[RuleEntry] = Field(default_factory=list)

    @classmethod
    def from_rules(cls, rules: RuleSet) -> "RuleSetResponse":
        weights = rules.window_weights
        return cls(
            window_weights={
                "30d": weights.d30,
                "90d": weights.d90,
                "180d": weights.d180,
                "365d": weights.d365,
            },
            significant_change_pct=rules.significant_change_pct,
            min_indicators=rules.min_indicators,
            works_threshold=rules.works_threshold,
            fails_threshold=rules.fails_threshold,
            confidence_base=rules.confidence_base,
            confidence_max=rules.confidence_max,
            base_multiplier=float(rules.base_multiplier),
            exact_bonus=float(rules.exact_bonus),
            partial_bonus=float(rules.partial_bonus),
            wrong_penalty=float(rules.wrong_penalty),
            min_gain=rules.min_gain,
            min_loss=rules.min_loss,
            level_step=rules.level_step,
            auction_floor=rules.auction_floor,
            rules=[RuleEntry.model_validate(entry) for entry in rules.describe()],
        )


class Transaction(BaseModel):
    transaction_id: int
    user_id: str
    amount: int
    reason: str
    balance_after: int
    level_before: int
    level_after: int
    related_type: str | None = None
    related_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerAccount(BaseModel):
    user_id: str
    seeds_balance: int
    level: int
    seeds_to_next_level: int


class LedgerStatement(LedgerAccount):
    total_transactions: int
    transactions: list[Transaction] = Field(default_factory=list)


class GrantRequest(BaseModel):
    amount: int
    reason: str = "grant"


class AnticipationCreate(BaseModel):
    user_id: str
    issue: Outcome
    seeds_engaged: int


class Anticipation(BaseModel):
    anticipation_id: str
    decision_id: str
    user_id: str
    issue: Outcome
    seeds_engaged: int
    resolved: bool
    result: Outcome | None = None
    seeds_earned: int | None = None
    created_at: datetime
    resolved_at: datetime | None = None

    model_config = {"from_attributes": True}


class SettlementReport(BaseModel):
    run_id: str | None = None
    decision_id: str
    status: str
    total: int = 0
    settled: int = 0
    skipped: int = 0
    failed: int = 0


class Decision(BaseModel):
    decision_id: str
    title: str
    status: str
    archived: bool
    anticipations_count: int
    resolution_score: float | None = None
    resolution_outcome: Outcome | None = None
    resolution_confidence: float | None = None
    resolution_details: dict[str, Any] | None = None
    resolved_at: datetime | None = None
    settlement_status: str
    open_anticipations: int = 0

    model_config = {"from_attributes": True}

    @field_validator("resolution_score", "resolution_confidence", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float | None:
        if value is None:
            return None
        return float(value)


class ResolutionResult(BaseModel):
    decision_id: str
    outcome: Outcome
    confidence: float
    score: float
    resolved_at: datetime | None = None
    already_resolved: bool = False
    details: dict[str, Any] | None = None
    settlement: SettlementReport | None = None

    @field_validator("confidence", "score", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float:
        return float(value)


class BidCreate(BaseModel):
    user_id: str
    content: str
    amount: int


class TopArgument(BaseModel):
    argument_id: int
    decision_id: str
    position: Outcome
    current_bid: int
    content: str
    holder_user_id: str
    updated_at: datetime

    model_config = {"from_attributes": True}


class ArgumentSlot(BaseModel):
    decision_id: str
    position: Outcome
    minimum_bid: int
    closed: bool
    top_argument: TopArgument | None = None


class ArgumentBid(BaseModel):
    bid_id: int
    user_id: str
    amount: int
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    error: str
    detail: str
    retryable: bool = False
