from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest

from pitchpool.core.config import Settings
from pitchpool.db import create_db_engine, create_session_factory, init_db, session_scope
from pitchpool.domain.models import MatchSnapshot
from pitchpool.models import Market, MarketStatus, Participant
from pitchpool.repositories import UserRepository


@dataclass
class SeededMarket:
    market_id: str
    creator_id: str
    participant_ids: list[str] = field(default_factory=list)
    user_ids: list[str] = field(default_factory=list)


class TickingClock:
    """Returns a strictly increasing UTC timestamp on every call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class StubMatchFeed:
    def __init__(self) -> None:
        self.snapshots: dict[int, MatchSnapshot] = {}
        self.calls: list[int] = []

    def set_result(self, match_id: int, home: int | None, away: int | None, status: str = "FINISHED") -> None:
        self.snapshots[match_id] = MatchSnapshot(
            match_id=match_id, status=status, home_score=home, away_score=away
        )

    def get_match(self, match_id: int) -> MatchSnapshot | None:
        self.calls.append(match_id)
        return self.snapshots.get(match_id)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'pitchpool.db'}",
        football_data_api_keys=[],
    )
    monkeypatch.setattr("pitchpool.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("pitchpool.core.config.settings", settings)
    return settings


@pytest.fixture
def engine(test_settings):
    db_engine = create_db_engine(str(test_settings.database_url))
    init_db(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    db_session = session_factory()
    yield db_session
    db_session.rollback()
    db_session.close()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def match_feed() -> StubMatchFeed:
    return StubMatchFeed()


@pytest.fixture
def seed_market(session_factory):
    """Insert a market with one participant per prediction and return its ids."""

    def _seed(
        predictions: list[str],
        *,
        entry_amount: int = 10_000,
        platform_fee: Decimal | None = Decimal("0.03"),
        creator_reward: Decimal | None = Decimal("0.02"),
        status: MarketStatus = MarketStatus.SCHEDULED,
        match_id: int | None = 4242,
        total_pool: int | None = None,
        stakes: list[int] | None = None,
    ) -> SeededMarket:
        amounts = list(stakes) if stakes is not None else [entry_amount] * len(predictions)
        joined = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
        with session_scope(session_factory) as db_session:
            users = UserRepository(db_session)
            creator = users.create_user(display_name="creator")
            market = Market(
                creator_id=creator.id,
                title="Arsenal vs Chelsea",
                match_id=match_id,
                home_team_name="Arsenal",
                away_team_name="Chelsea",
                entry_fee=entry_amount,
                total_pool=sum(amounts) if total_pool is None else total_pool,
                platform_fee_percentage=platform_fee,
                creator_reward_percentage=creator_reward,
                status=status,
            )
            db_session.add(market)
            db_session.flush()

            seeded = SeededMarket(market_id=market.id, creator_id=creator.id)
            for index, prediction in enumerate(predictions):
                user = users.create_user(display_name=f"player-{index}")
                participant = Participant(
                    market_id=market.id,
                    user_id=user.id,
                    prediction=prediction,
                    entry_amount=amounts[index],
                    joined_at=joined + timedelta(minutes=index),
                )
                db_session.add(participant)
                db_session.flush()
                seeded.participant_ids.append(participant.id)
                seeded.user_ids.append(user.id)
            return seeded

    return _seed
