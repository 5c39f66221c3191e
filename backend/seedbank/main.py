from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from . import schemas
from .core.config import settings
from .core.rules_config import active_rules
from .core.errors import (
    AlreadyResolved,
    ConcurrencyConflict,
    InsufficientData,
    InsufficientFunds,
    LedgerInvariantError,
    NotFound,
    NotResolved,
    SeedbankError,
    ValidationError,
)
from .db import init_db
from .domain import Outcome
from .services.anticipation_service import AnticipationService
from .services.auction_service import FeaturedArgumentAuction
from .services.ledger_service import LedgerService
from .services.resolution_service import ResolutionService

app = FastAPI(title="Seedbank API", version="0.1.0", debug=settings.debug)

# Checked in order; subclasses must precede their bases.
_ERROR_STATUS: tuple[tuple[type[SeedbankError], int], ...] = (
    (NotFound, 404),
    (InsufficientFunds, 402),
    (ValidationError, 422),
    (AlreadyResolved, 409),
    (NotResolved, 409),
    (InsufficientData, 409),
    (ConcurrencyConflict, 409),
    (LedgerInvariantError, 500),
)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database connections when the API boots."""

    init_db()


@app.exception_handler(SeedbankError)
def handle_seedbank_error(request: Request, exc: SeedbankError) -> JSONResponse:
    """Translate domain errors into JSON bodies with a stable error code."""

    status_code = next(
        (code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)),
        400,
    )
    body = schemas.ErrorResponse(error=exc.code, detail=str(exc), retryable=exc.retryable)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _resolution_service() -> ResolutionService:
    return ResolutionService(rules=active_rules())


def _anticipation_service() -> AnticipationService:
    return AnticipationService(rules=active_rules())


def _auction_service() -> FeaturedArgumentAuction:
    return FeaturedArgumentAuction(rules=active_rules())


def _ledger_service() -> LedgerService:
    return LedgerService(rules=active_rules())


@app.get("/rules", response_model=schemas.RuleSetResponse, tags=["rules"])
def get_rules(service: ResolutionService = Depends(_resolution_service)):
    """Publish the constants used for resolution, settlement and levels."""

    return service.get_resolution_rules()


@app.get("/decisions/{decision_id}", response_model=schemas.Decision, tags=["decisions"])
def get_decision(decision_id: str, service: ResolutionService = Depends(_resolution_service)):
    """Resolution outcome and settlement state of a decision."""

    return service.get_decision(decision_id)


@app.post(
    "/decisions/{decision_id}/resolve",
    response_model=schemas.ResolutionResult,
    tags=["decisions"],
)
def resolve_decision(decision_id: str, service: ResolutionService = Depends(_resolution_service)):
    """Resolve a decision from its indicators; repeated calls return the stored result."""

    return service.resolve_decision(decision_id)


@app.post(
    "/decisions/{decision_id}/anticipations",
    response_model=schemas.Anticipation,
    status_code=201,
    tags=["anticipations"],
)
def place_anticipation(
    decision_id: str,
    payload: schemas.AnticipationCreate,
    service: AnticipationService = Depends(_anticipation_service),
):
    return service.place_anticipation(
        decision_id, payload.user_id, payload.issue, payload.seeds_engaged
    )


@app.get(
    "/decisions/{decision_id}/anticipations",
    response_model=list[schemas.Anticipation],
    tags=["anticipations"],
)
def list_anticipations(
    decision_id: str, service: AnticipationService = Depends(_anticipation_service)
):
    return service.list_for_decision(decision_id)


@app.get(
    "/decisions/{decision_id}/arguments/{position}",
    response_model=schemas.ArgumentSlot,
    tags=["arguments"],
)
def get_argument_slot(
    decision_id: str,
    position: Outcome,
    service: FeaturedArgumentAuction = Depends(_auction_service),
):
    """Current featured argument and the minimum bid needed to replace it."""

    return service.slot(decision_id, position)


@app.get(
    "/decisions/{decision_id}/arguments/{position}/bids",
    response_model=list[schemas.ArgumentBid],
    tags=["arguments"],
)
def list_argument_bids(
    decision_id: str,
    position: Outcome,
    service: FeaturedArgumentAuction = Depends(_auction_service),
):
    return service.bid_history(decision_id, position)


@app.post(
    "/decisions/{decision_id}/arguments/{position}/bids",
    response_model=schemas.TopArgument,
    status_code=201,
    tags=["arguments"],
)
def bid_on_argument(
    decision_id: str,
    position: Outcome,
    payload: schemas.BidCreate,
    service: FeaturedArgumentAuction = Depends(_auction_service),
):
    """Outbid the current featured argument of a camp."""

    return service.bid_with_retry(
        decision_id, position, payload.user_id, payload.content, payload.amount
    )


@app.get("/users/{user_id}/ledger", response_model=schemas.LedgerStatement, tags=["ledger"])
def get_ledger(
    user_id: str,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    service: LedgerService = Depends(_ledger_service),
):
    """Balance, level and the most recent Seeds transactions of a user."""

    return service.history(user_id, limit=limit, offset=offset)


@app.post(
    "/users/{user_id}/grants",
    response_model=schemas.Transaction,
    status_code=201,
    tags=["ledger"],
)
def grant_seeds(
    user_id: str,
    payload: schemas.GrantRequest,
    service: LedgerService = Depends(_ledger_service),
):
    """Credit Seeds earned from an external reward source."""

    service.open_account(user_id)
    return service.grant(user_id, payload.amount, payload.reason)
