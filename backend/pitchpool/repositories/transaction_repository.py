"""Ledger persistence. Rows are appended and transitioned, never deleted."""

from __future__ import annotations

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from pitchpool.models import Transaction, TransactionStatus, TransactionType


class TransactionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(self, transaction: Transaction) -> Transaction:
        self._session.add(transaction)
        self._session.flush()
        return transaction

    def save(self, transaction: Transaction) -> Transaction:
        self._session.flush()
        return transaction

    # ------------------------------------------------------------------
    # Queries

    def get(self, transaction_id: str) -> Transaction | None:
        return self._session.get(Transaction, transaction_id)

    def list_by_market(self, market_id: str, *, limit: int | None = None) -> list[Transaction]:
        query = (
            select(Transaction)
            .where(Transaction.market_id == market_id)
            .order_by(desc(Transaction.created_at), desc(Transaction.id))
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars())

    def list_by_user(self, user_id: str, *, limit: int | None = None) -> list[Transaction]:
        query = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(desc(Transaction.created_at), desc(Transaction.id))
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars())

    def list_by_status(
        self, status: TransactionStatus, *, limit: int | None = None
    ) -> list[Transaction]:
        query = (
            select(Transaction)
            .where(Transaction.status == status)
            .order_by(desc(Transaction.created_at), desc(Transaction.id))
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars())

    def aggregate(
        self, *, market_id: str | None = None
    ) -> list[tuple[TransactionType, TransactionStatus, int, int]]:
        """Return ``(type, status, count, volume)`` rows."""

        query = select(
            Transaction.type,
            Transaction.status,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.amount), 0),
        ).group_by(Transaction.type, Transaction.status)
        if market_id is not None:
            query = query.where(Transaction.market_id == market_id)
        return [
            (row[0], row[1], int(row[2]), int(row[3]))
            for row in self._session.execute(query).all()
        ]


__all__ = ["TransactionRepository"]
