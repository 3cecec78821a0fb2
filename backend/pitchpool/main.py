from __future__ import annotations

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from matchfeed.client import FootballDataClient

from . import crud, schemas
from .core.config import settings
from .db import SessionLocal, get_db, init_db
from .errors import (
    AlreadyResolvedError,
    AmountValidationError,
    ConfigurationError,
    DeprecatedOperationError,
    DuplicateParticipantError,
    InvalidOutcomeError,
    MarketClosedError,
    MatchFeedError,
    NotFoundError,
    OutcomeUnavailableError,
    PersistenceError,
    SettlementError,
    TransactionStateError,
)
from .services.automation_service import AutomationService
from .services.market_service import MarketService
from .services.transaction_service import TransactionService

app = FastAPI(title="PitchPool Settlement API", version="0.1.0", debug=settings.debug)

ERROR_STATUS_CODES: dict[type[SettlementError], int] = {
    NotFoundError: 404,
    AlreadyResolvedError: 409,
    DuplicateParticipantError: 409,
    TransactionStateError: 409,
    MarketClosedError: 409,
    OutcomeUnavailableError: 409,
    DeprecatedOperationError: 410,
    AmountValidationError: 422,
    InvalidOutcomeError: 422,
    ConfigurationError: 500,
    MatchFeedError: 502,
    PersistenceError: 503,
}


def status_code_for(exc: SettlementError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 500


@app.exception_handler(SettlementError)
def handle_settlement_error(request: Request, exc: SettlementError) -> JSONResponse:
    body = schemas.ErrorResponse(kind=exc.kind, message=str(exc), retryable=exc.retryable)
    return JSONResponse(status_code=status_code_for(exc), content=body.model_dump())


@app.on_event("startup")
def on_startup() -> None:
    """Create tables when the API boots."""

    init_db()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


def _automation_service() -> Generator[AutomationService, None, None]:
    """Provide the resolution engine wired to the match feed."""

    with FootballDataClient() as client:
        yield AutomationService(session_factory=SessionLocal, result_provider=client)


def _market_service(db: Session = Depends(get_db)) -> MarketService:
    return MarketService(db)


def _transaction_service(db: Session = Depends(get_db)) -> TransactionService:
    return TransactionService(db)


@app.get("/markets/{market_id}", response_model=schemas.Market, tags=["markets"])
def get_market(market_id: str, db: Session = Depends(get_db)):
    market = crud.get_market_by_id(db, market_id)
    if market is None:
        raise NotFoundError(f"Market {market_id} not found")
    return market


@app.get(
    "/markets/{market_id}/winnings",
    response_model=schemas.WinningsPreview,
    tags=["settlement"],
)
def preview_winnings(
    market_id: str,
    outcome: Annotated[str | None, Query(description="Outcome to preview (Home|Draw|Away)")] = None,
    service: AutomationService = Depends(_automation_service),
):
    """Fee and payout breakdown for a market without writing anything."""

    calculation = service.calculate_winnings(market_id, outcome)
    return schemas.WinningsPreview(**calculation.to_dict())


@app.get(
    "/markets/{market_id}/creator-reward",
    response_model=schemas.CreatorReward,
    tags=["settlement"],
)
def creator_reward(market_id: str, service: AutomationService = Depends(_automation_service)):
    return schemas.CreatorReward(
        market_id=market_id, creator_reward=service.calculate_creator_reward(market_id)
    )


@app.post(
    "/markets/{market_id}/resolve",
    response_model=schemas.Resolution,
    tags=["settlement"],
)
def resolve_market(market_id: str, service: AutomationService = Depends(_automation_service)):
    """Resolve a market from its match result and distribute the pool."""

    result = service.resolve_market(market_id)
    return schemas.Resolution(**result.to_dict())


@app.post("/markets/{market_id}/manual-resolve", tags=["settlement"])
def manual_resolve(
    market_id: str,
    payload: schemas.ManualResolutionRequest,
    service: MarketService = Depends(_market_service),
):
    service.resolve_market(market_id, payload.outcome, payload.resolver_id)


@app.get(
    "/markets/{market_id}/transactions",
    response_model=list[schemas.Transaction],
    tags=["ledger"],
)
def market_transactions(
    market_id: str,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    service: TransactionService = Depends(_transaction_service),
):
    return service.get_transactions_by_market(market_id, limit=limit)


@app.get(
    "/users/{user_id}/transactions",
    response_model=list[schemas.Transaction],
    tags=["ledger"],
)
def user_transactions(
    user_id: str,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    service: TransactionService = Depends(_transaction_service),
):
    return service.get_transactions_by_user(user_id, limit=limit)
