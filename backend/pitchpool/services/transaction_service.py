"""Append-only ledger of monetary movements."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pitchpool.domain.models import (
    BatchResult,
    TransactionBatch,
    TransactionSpec,
    TransactionStats,
)
from pitchpool.errors import (
    AmountValidationError,
    NotFoundError,
    SettlementError,
    TransactionStateError,
)
from pitchpool.models import Transaction, TransactionStatus, TransactionType, utcnow
from pitchpool.repositories.transaction_repository import TransactionRepository

TERMINAL_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.FAILED})


class TransactionService:
    """Create ledger entries and move them through PENDING -> COMPLETED | FAILED.

    Every method works inside the caller's session; committing is the
    caller's unit of work.
    """

    def __init__(self, session: Session, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._session = session
        self._repo = TransactionRepository(session)
        self._clock = clock

    # ------------------------------------------------------------------
    # Mutations

    def create_transaction(
        self,
        *,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        market_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        status: TransactionStatus = TransactionStatus.PENDING,
    ) -> Transaction:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise AmountValidationError(
                f"Ledger amounts must be positive integers, got {amount!r}"
            )
        if not description or not description.strip():
            raise ValueError("Ledger entries require a description")
        status = TransactionStatus(status)
        if status is TransactionStatus.FAILED:
            raise TransactionStateError("Ledger entries cannot be created as FAILED")

        now = self._clock()
        details: dict[str, Any] = {"automatedTransfer": True}
        details.update(metadata or {})
        if status is TransactionStatus.COMPLETED:
            details.setdefault("completedAt", now.isoformat())

        transaction = Transaction(
            user_id=user_id,
            market_id=market_id,
            type=TransactionType(type),
            amount=amount,
            description=description.strip(),
            status=status,
            details=details,
            created_at=now,
        )
        self._repo.add(transaction)
        logger.debug(
            "Ledger {} {} {} for user {} (market={})",
            transaction.id,
            transaction.type.value,
            amount,
            user_id,
            market_id,
        )
        return transaction

    def complete_transaction(
        self, transaction_id: str, *, extra_metadata: dict[str, Any] | None = None
    ) -> Transaction:
        transaction = self._pending(transaction_id)
        details = dict(transaction.details or {})
        details.update(extra_metadata or {})
        details["completedAt"] = self._clock().isoformat()
        transaction.details = details
        transaction.status = TransactionStatus.COMPLETED
        return self._repo.save(transaction)

    def fail_transaction(
        self,
        transaction_id: str,
        reason: str,
        *,
        extra_metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        transaction = self._pending(transaction_id)
        details = dict(transaction.details or {})
        details.update(extra_metadata or {})
        details["failedAt"] = self._clock().isoformat()
        details["failureReason"] = reason
        transaction.details = details
        transaction.status = TransactionStatus.FAILED
        logger.warning("Ledger entry {} failed: {}", transaction_id, reason)
        return self._repo.save(transaction)

    def process_batch(self, batch: TransactionBatch) -> BatchResult:
        """Post every entry of ``batch`` and complete it.

        Entries are validated up front so a bad entry is reported before any
        row is written. A storage error stops the batch; the session must then
        be rolled back by the caller.
        """

        result = BatchResult(success=True)
        for index, spec in enumerate(batch.transactions):
            problem = self._check_spec(spec)
            if problem:
                result.errors.append(f"entry {index}: {problem}")
        if result.errors:
            result.success = False
            return result

        for index, spec in enumerate(batch.transactions):
            metadata = dict(spec.metadata)
            metadata["batchId"] = batch.batch_id
            try:
                transaction = self.create_transaction(
                    user_id=spec.user_id,
                    type=spec.type,
                    amount=spec.amount,
                    description=spec.description,
                    market_id=spec.market_id,
                    metadata=metadata,
                )
                self.complete_transaction(transaction.id)
            except SettlementError as exc:
                result.errors.append(f"entry {index}: {exc}")
                continue
            except SQLAlchemyError as exc:
                logger.error("Batch {} aborted at entry {}: {}", batch.batch_id, index, exc)
                result.errors.append(f"entry {index}: storage error: {exc}")
                break
            result.transactions.append(transaction)

        result.success = not result.errors
        return result

    def record_market_entry(
        self,
        *,
        user_id: str,
        market_id: str,
        amount: int,
        prediction: str,
        market_title: str,
        participant_id: str | None = None,
    ) -> Transaction:
        return self.create_transaction(
            user_id=user_id,
            market_id=market_id,
            type=TransactionType.MARKET_ENTRY,
            amount=amount,
            description=f"Entry into market '{market_title}' predicting {prediction}",
            metadata={
                "automatedTransfer": False,
                "marketId": market_id,
                "predictionId": participant_id,
                "prediction": prediction,
                "entryAmount": amount,
            },
            status=TransactionStatus.COMPLETED,
        )

    def record_withdrawal(
        self,
        *,
        user_id: str,
        market_id: str,
        amount: int,
        market_title: str,
    ) -> Transaction:
        return self.create_transaction(
            user_id=user_id,
            market_id=market_id,
            type=TransactionType.AUTOMATED_TRANSFER,
            amount=amount,
            description=f"Refund of entry into market '{market_title}' after leaving",
            metadata={"marketId": market_id, "refund": True},
            status=TransactionStatus.COMPLETED,
        )

    # ------------------------------------------------------------------
    # Queries

    def get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self._repo.get(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    def get_transactions_by_market(
        self, market_id: str, *, limit: int | None = None
    ) -> list[Transaction]:
        return self._repo.list_by_market(market_id, limit=limit)

    def get_transactions_by_user(self, user_id: str, *, limit: int = 50) -> list[Transaction]:
        return self._repo.list_by_user(user_id, limit=limit)

    def get_transactions_by_status(
        self, status: TransactionStatus, *, limit: int = 50
    ) -> list[Transaction]:
        return self._repo.list_by_status(TransactionStatus(status), limit=limit)

    def get_transaction_stats(self, *, market_id: str | None = None) -> TransactionStats:
        stats = TransactionStats()
        for type_, status, count, volume in self._repo.aggregate(market_id=market_id):
            stats.total_transactions += count
            stats.total_volume += volume
            stats.by_type[type_.value] = stats.by_type.get(type_.value, 0) + count
            stats.by_status[status.value] = stats.by_status.get(status.value, 0) + count
        return stats

    # ------------------------------------------------------------------
    # Helpers

    def _pending(self, transaction_id: str) -> Transaction:
        transaction = self.get_transaction(transaction_id)
        if transaction.status in TERMINAL_STATUSES:
            raise TransactionStateError(
                f"Transaction {transaction_id} is already {transaction.status.value}"
            )
        return transaction

    @staticmethod
    def _check_spec(spec: TransactionSpec) -> str | None:
        if isinstance(spec.amount, bool) or not isinstance(spec.amount, int) or spec.amount <= 0:
            return f"amount must be a positive integer, got {spec.amount!r}"
        if not spec.description or not spec.description.strip():
            return "description is required"
        if not spec.user_id:
            return "user_id is required"
        return None


__all__ = ["TERMINAL_STATUSES", "TransactionService"]
