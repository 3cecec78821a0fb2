from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from pitchpool.repositories import MarketRepository
from pitchpool.services.transaction_service import TransactionService

from .models import (
    Market,
    Participant,
    Transaction,
    TransactionStatus,
    TransactionType,
)


def get_market_by_id(session: Session, market_id: str) -> Market | None:
    return MarketRepository(session).get_market(market_id)


def get_market_participants(session: Session, market_id: str) -> list[Participant]:
    return MarketRepository(session).list_participants(market_id)


def update_market(session: Session, market_id: str, **fields: Any) -> Market | None:
    return MarketRepository(session).update_market(market_id, **fields)


def update_participant_winnings(
    session: Session, participant_id: str, amount: int
) -> Participant | None:
    return MarketRepository(session).update_participant_winnings(participant_id, amount)


def create_transaction(
    session: Session,
    *,
    user_id: str,
    type: TransactionType,
    amount: int,
    description: str,
    market_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    status: TransactionStatus = TransactionStatus.PENDING,
) -> Transaction:
    return TransactionService(session).create_transaction(
        user_id=user_id,
        type=type,
        amount=amount,
        description=description,
        market_id=market_id,
        metadata=metadata,
        status=status,
    )


def update_transaction_status(
    session: Session,
    transaction_id: str,
    status: TransactionStatus,
    *,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Transaction:
    service = TransactionService(session)
    if TransactionStatus(status) is TransactionStatus.COMPLETED:
        return service.complete_transaction(transaction_id, extra_metadata=metadata)
    if TransactionStatus(status) is TransactionStatus.FAILED:
        return service.fail_transaction(
            transaction_id, reason or "unspecified", extra_metadata=metadata
        )
    raise ValueError("Transactions can only move to COMPLETED or FAILED")


def get_market_transactions(
    session: Session, market_id: str, *, limit: int | None = None
) -> list[Transaction]:
    return TransactionService(session).get_transactions_by_market(market_id, limit=limit)


def get_user_transactions(session: Session, user_id: str, *, limit: int = 50) -> list[Transaction]:
    return TransactionService(session).get_transactions_by_user(user_id, limit=limit)
