from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from pitchpool.domain.models import TransactionBatch, TransactionSpec
from pitchpool.errors import AmountValidationError, NotFoundError, TransactionStateError
from pitchpool.models import TransactionStatus, TransactionType
from pitchpool.repositories import TransactionRepository, UserRepository
from pitchpool.services.transaction_service import TransactionService


@pytest.fixture
def ledger(session, clock) -> TransactionService:
    return TransactionService(session, clock=clock)


@pytest.fixture
def user_id(session) -> str:
    return UserRepository(session).create_user(display_name="alice").id


def _entry(ledger: TransactionService, user_id: str, amount: int = 5_000, **kwargs):
    return ledger.create_transaction(
        user_id=user_id,
        type=kwargs.pop("type", TransactionType.WINNINGS),
        amount=amount,
        description=kwargs.pop("description", "Winnings from market 'Test'"),
        **kwargs,
    )


def test_create_defaults_to_pending_with_automated_flag(ledger, user_id):
    transaction = _entry(ledger, user_id, market_id=None, metadata={"marketId": "m-1"})

    assert transaction.status is TransactionStatus.PENDING
    assert transaction.details["automatedTransfer"] is True
    assert transaction.details["marketId"] == "m-1"
    assert "completedAt" not in transaction.details


def test_create_completed_stamps_completion_time(ledger, user_id):
    transaction = _entry(ledger, user_id, status=TransactionStatus.COMPLETED)
    assert transaction.status is TransactionStatus.COMPLETED
    assert "completedAt" in transaction.details


@pytest.mark.parametrize("amount", [0, -10, 1.5, True])
def test_create_rejects_non_positive_or_fractional_amounts(ledger, user_id, amount):
    with pytest.raises(AmountValidationError):
        _entry(ledger, user_id, amount=amount)


def test_create_rejects_blank_description(ledger, user_id):
    with pytest.raises(ValueError):
        _entry(ledger, user_id, description="   ")


def test_create_rejects_failed_status(ledger, user_id):
    with pytest.raises(TransactionStateError):
        _entry(ledger, user_id, status=TransactionStatus.FAILED)


def test_complete_merges_metadata_and_is_terminal(ledger, user_id):
    transaction = _entry(ledger, user_id, metadata={"marketId": "m-1"})

    completed = ledger.complete_transaction(transaction.id, extra_metadata={"note": "paid"})

    assert completed.status is TransactionStatus.COMPLETED
    assert completed.details["marketId"] == "m-1"
    assert completed.details["note"] == "paid"
    assert "completedAt" in completed.details
    with pytest.raises(TransactionStateError):
        ledger.complete_transaction(transaction.id)
    with pytest.raises(TransactionStateError):
        ledger.fail_transaction(transaction.id, "too late")


def test_fail_records_reason(ledger, user_id):
    transaction = _entry(ledger, user_id)

    failed = ledger.fail_transaction(transaction.id, "wallet unreachable")

    assert failed.status is TransactionStatus.FAILED
    assert failed.details["failureReason"] == "wallet unreachable"
    assert "failedAt" in failed.details
    assert failed.amount == 5_000
    with pytest.raises(TransactionStateError):
        ledger.complete_transaction(transaction.id)


def test_unknown_transaction_raises_not_found(ledger):
    with pytest.raises(NotFoundError):
        ledger.complete_transaction("missing")


def test_queries_return_newest_first(ledger, user_id, session):
    other_user = UserRepository(session).create_user(display_name="bob").id
    first = _entry(ledger, user_id, amount=1_000)
    second = _entry(ledger, user_id, amount=2_000)
    _entry(ledger, other_user, amount=3_000)
    ledger.complete_transaction(second.id)

    by_user = ledger.get_transactions_by_user(user_id)
    assert [t.id for t in by_user] == [second.id, first.id]

    pending = ledger.get_transactions_by_status(TransactionStatus.PENDING)
    assert first.id in {t.id for t in pending}
    assert second.id not in {t.id for t in pending}


def test_process_batch_posts_and_completes_every_entry(ledger, user_id):
    batch = TransactionBatch(
        batch_id="batch-1",
        transactions=[
            TransactionSpec(user_id=user_id, type=TransactionType.WINNINGS, amount=100, description="a"),
            TransactionSpec(user_id=user_id, type=TransactionType.PLATFORM_FEE, amount=5, description="b"),
        ],
    )

    result = ledger.process_batch(batch)

    assert result.success
    assert result.errors == []
    assert len(result.transactions) == 2
    for transaction in result.transactions:
        assert transaction.status is TransactionStatus.COMPLETED
        assert transaction.details["batchId"] == "batch-1"


def test_process_batch_reports_invalid_entries_without_writing(ledger, user_id, session):
    batch = TransactionBatch(
        batch_id="batch-2",
        transactions=[
            TransactionSpec(user_id=user_id, type=TransactionType.WINNINGS, amount=100, description="ok"),
            TransactionSpec(user_id=user_id, type=TransactionType.WINNINGS, amount=0, description="zero"),
        ],
    )

    result = ledger.process_batch(batch)

    assert not result.success
    assert len(result.errors) == 1
    assert "entry 1" in result.errors[0]
    assert ledger.get_transactions_by_user(user_id) == []


def test_process_batch_stops_on_storage_error(ledger, user_id, monkeypatch):
    original_add = TransactionRepository.add

    def flaky_add(self, transaction):
        if transaction.type is TransactionType.PLATFORM_FEE:
            raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))
        return original_add(self, transaction)

    monkeypatch.setattr(TransactionRepository, "add", flaky_add)
    batch = TransactionBatch(
        batch_id="batch-3",
        transactions=[
            TransactionSpec(user_id=user_id, type=TransactionType.WINNINGS, amount=100, description="a"),
            TransactionSpec(user_id=user_id, type=TransactionType.PLATFORM_FEE, amount=5, description="b"),
            TransactionSpec(user_id=user_id, type=TransactionType.CREATOR_REWARD, amount=3, description="c"),
        ],
    )

    result = ledger.process_batch(batch)

    assert not result.success
    assert len(result.transactions) == 1
    assert len(result.errors) == 1
    assert "storage error" in result.errors[0]


def test_stats_break_down_by_type_and_status(ledger, user_id):
    _entry(ledger, user_id, amount=100, market_id=None)
    entry = _entry(ledger, user_id, amount=50, type=TransactionType.PLATFORM_FEE)
    ledger.complete_transaction(entry.id)

    stats = ledger.get_transaction_stats()

    assert stats.total_transactions == 2
    assert stats.total_volume == 150
    assert stats.by_type == {"winnings": 1, "platform_fee": 1}
    assert stats.by_status == {"PENDING": 1, "COMPLETED": 1}
