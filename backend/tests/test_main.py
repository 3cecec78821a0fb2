from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pitchpool.db import get_db
from pitchpool.domain.models import ResolutionResult, WinningsCalculation
from pitchpool.errors import AlreadyResolvedError, MatchFeedError, PersistenceError
from pitchpool.main import _automation_service, _market_service, app
from pitchpool.models import TransactionStatus, TransactionType
from pitchpool.services.market_service import MarketService
from pitchpool.services.transaction_service import TransactionService


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def db_override(session):
    def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    return session


def _calculation(**overrides) -> WinningsCalculation:
    values = dict(
        total_pool=30_000,
        platform_fee=900,
        creator_reward=600,
        participant_pool=28_500,
        winnings_per_winner=28_500,
        winner_ids=("p-1",),
        winning_outcome="Home",
        market_id="m-1",
    )
    values.update(overrides)
    return WinningsCalculation(**values)


def test_healthcheck(client):
    """Verify the healthcheck endpoint returns a successful response."""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_market_success(client, db_override, seed_market):
    seeded = seed_market(["Home", "Away"])

    response = client.get(f"/markets/{seeded.market_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == seeded.market_id
    assert body["status"] == "SCHEDULED"
    assert body["total_pool"] == 20_000
    assert body["title"] == "Arsenal vs Chelsea"


def test_get_market_not_found(client, db_override):
    response = client.get("/markets/non-existent-id")

    assert response.status_code == 404
    assert response.json() == {
        "kind": "not_found",
        "message": "Market non-existent-id not found",
        "retryable": False,
    }


def test_winnings_preview(client):
    mock_service = MagicMock()
    mock_service.calculate_winnings.return_value = _calculation()
    app.dependency_overrides[_automation_service] = lambda: mock_service

    response = client.get("/markets/m-1/winnings", params={"outcome": "Home"})

    assert response.status_code == 200
    assert response.json()["winnings_per_winner"] == 28_500
    assert response.json()["winner_ids"] == ["p-1"]
    mock_service.calculate_winnings.assert_called_once_with("m-1", "Home")


def test_creator_reward(client):
    mock_service = MagicMock()
    mock_service.calculate_creator_reward.return_value = 600
    app.dependency_overrides[_automation_service] = lambda: mock_service

    response = client.get("/markets/m-1/creator-reward")

    assert response.status_code == 200
    assert response.json() == {"market_id": "m-1", "creator_reward": 600}


def test_resolve_returns_distribution(client):
    mock_service = MagicMock()
    mock_service.resolve_market.return_value = ResolutionResult(
        market_id="m-1",
        winning_outcome="Home",
        calculation=_calculation(),
        transaction_ids=["t-1", "t-2", "t-3"],
        resolved_at=datetime(2025, 3, 1, 21, 0, tzinfo=timezone.utc),
    )
    app.dependency_overrides[_automation_service] = lambda: mock_service

    response = client.post("/markets/m-1/resolve")

    assert response.status_code == 200
    body = response.json()
    assert body["winning_outcome"] == "Home"
    assert body["platform_fee"] == 900
    assert body["transaction_ids"] == ["t-1", "t-2", "t-3"]


@pytest.mark.parametrize(
    ("error", "status_code", "retryable"),
    [
        (AlreadyResolvedError("Market m-1 is FINISHED"), 409, False),
        (PersistenceError("rolled back"), 503, True),
        (MatchFeedError("football-data unavailable"), 502, True),
    ],
)
def test_resolve_maps_errors_to_status_codes(client, error, status_code, retryable):
    mock_service = MagicMock()
    mock_service.resolve_market.side_effect = error
    app.dependency_overrides[_automation_service] = lambda: mock_service

    response = client.post("/markets/m-1/resolve")

    assert response.status_code == status_code
    assert response.json()["kind"] == error.kind
    assert response.json()["retryable"] is retryable


def test_manual_resolution_is_gone(client, test_settings):
    app.dependency_overrides[_market_service] = lambda: MarketService(MagicMock(), settings=test_settings)

    response = client.post("/markets/m-1/manual-resolve", json={"outcome": "Home", "resolver_id": "u-1"})

    assert response.status_code == 410
    assert response.json()["kind"] == "deprecated_operation"


def test_ledger_listings(client, db_override, seed_market, clock):
    seeded = seed_market(["Home"])
    ledger = TransactionService(db_override, clock=clock)
    ledger.create_transaction(
        user_id=seeded.user_ids[0],
        market_id=seeded.market_id,
        type=TransactionType.WINNINGS,
        amount=9_500,
        description="Winnings from market 'Arsenal vs Chelsea' (Home)",
        status=TransactionStatus.COMPLETED,
    )
    db_override.flush()

    by_market = client.get(f"/markets/{seeded.market_id}/transactions")
    by_user = client.get(f"/users/{seeded.user_ids[0]}/transactions", params={"limit": 5})

    assert by_market.status_code == 200
    assert by_market.json() == by_user.json()
    entry = by_market.json()[0]
    assert entry["type"] == "winnings"
    assert entry["status"] == "COMPLETED"
    assert entry["amount"] == 9_500
    assert entry["metadata"]["automatedTransfer"] is True
