"""Market lifecycle before resolution: creation, joining and leaving."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from pitchpool.core.config import Settings, get_settings
from pitchpool.domain.models import MarketStats
from pitchpool.domain.units import AmountUnit
from pitchpool.errors import (
    DeprecatedOperationError,
    DuplicateParticipantError,
    InvalidOutcomeError,
    MarketClosedError,
    NotFoundError,
)
from pitchpool.models import Market, MarketStatus, MatchOutcome, Participant, utcnow
from pitchpool.repositories import (
    MarketRepository,
    PlatformConfigRepository,
    UserRepository,
)
from pitchpool.services.fee_policy import FeePolicy
from pitchpool.services.transaction_service import TransactionService
from pitchpool.services.winnings import calculate_potential_winnings

VALID_OUTCOMES = tuple(member.value for member in MatchOutcome)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MarketService:
    """Writes ``total_pool`` and participant rows; never resolves markets."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self.settings = settings or get_settings()
        self._clock = clock
        self._markets = MarketRepository(session)
        self._users = UserRepository(session)
        self._ledger = TransactionService(session, clock=clock)
        self._unit = AmountUnit.from_settings(self.settings)

    def create_market(
        self,
        *,
        creator_id: str,
        title: str,
        entry_fee: int,
        match_id: int | None = None,
        description: str | None = None,
        home_team_name: str | None = None,
        away_team_name: str | None = None,
        end_time: datetime | None = None,
    ) -> Market:
        self._require_user(creator_id)
        entry_fee = self._unit.validate_amount(entry_fee)
        fees = FeePolicy.load(self.settings, PlatformConfigRepository(self._session)).defaults()
        market = Market(
            creator_id=creator_id,
            title=title,
            description=description,
            match_id=match_id,
            home_team_name=home_team_name,
            away_team_name=away_team_name,
            end_time=end_time,
            entry_fee=entry_fee,
            total_pool=0,
            platform_fee_percentage=fees.platform_fee_percentage,
            creator_reward_percentage=fees.creator_reward_percentage,
            status=MarketStatus.SCHEDULED,
        )
        self._markets.add_market(market)
        logger.info("Created market {} ({}) for match {}", market.id, title, match_id)
        return market

    def join_market(
        self,
        *,
        market_id: str,
        user_id: str,
        prediction: str,
        entry_amount: int,
    ) -> Participant:
        market = self._require_open_market(market_id)
        self._require_user(user_id)
        if prediction not in VALID_OUTCOMES:
            raise InvalidOutcomeError(
                f"Prediction must be one of {', '.join(VALID_OUTCOMES)}, got {prediction!r}"
            )
        entry_amount = self._unit.validate_amount(entry_amount, min_amount=market.entry_fee)
        if self._markets.get_participant(market_id, user_id) is not None:
            raise DuplicateParticipantError(f"User {user_id} already joined market {market_id}")

        potential = self._preview(market, prediction, entry_amount)
        participant = Participant(
            market_id=market_id,
            user_id=user_id,
            prediction=prediction,
            entry_amount=entry_amount,
            potential_winnings=potential,
            joined_at=self._clock(),
        )
        self._markets.add_participant(participant)
        self._markets.adjust_total_pool(market, entry_amount)
        if entry_amount > 0:
            self._ledger.record_market_entry(
                user_id=user_id,
                market_id=market_id,
                amount=entry_amount,
                prediction=prediction,
                market_title=market.title,
                participant_id=participant.id,
            )
        logger.info(
            "User {} joined market {} on {} with {}",
            user_id,
            market_id,
            prediction,
            self._unit.format_amount(entry_amount),
        )
        return participant

    def leave_market(self, *, market_id: str, user_id: str) -> int:
        """Withdraw a participant and refund the stake; returns the refunded amount."""

        market = self._require_open_market(market_id)
        participant = self._markets.get_participant(market_id, user_id)
        if participant is None:
            raise NotFoundError(f"User {user_id} has not joined market {market_id}")

        refund = participant.entry_amount
        self._markets.remove_participant(participant)
        self._markets.adjust_total_pool(market, -refund)
        if refund > 0:
            self._ledger.record_withdrawal(
                user_id=user_id,
                market_id=market_id,
                amount=refund,
                market_title=market.title,
            )
        logger.info("User {} left market {}; refunded {}", user_id, market_id, refund)
        return refund

    def estimate_potential_winnings(
        self, market_id: str, prediction: str, entry_amount: int
    ) -> int:
        market = self._require_market(market_id)
        if prediction not in VALID_OUTCOMES:
            raise InvalidOutcomeError(f"Unknown prediction {prediction!r}")
        return self._preview(market, prediction, self._unit.validate_amount(entry_amount))

    def get_market_stats(self, market_id: str) -> MarketStats:
        market = self._require_market(market_id)
        participants = self._markets.list_participants(market_id)
        counts = Counter(participant.prediction for participant in participants)
        volume: Counter[str] = Counter()
        for participant in participants:
            volume[participant.prediction] += participant.entry_amount
        return MarketStats(
            market_id=market_id,
            participant_count=len(participants),
            total_pool=market.total_pool,
            prediction_counts={outcome: counts.get(outcome, 0) for outcome in VALID_OUTCOMES},
            prediction_volume={outcome: volume.get(outcome, 0) for outcome in VALID_OUTCOMES},
        )

    def resolve_market(self, market_id: str, outcome: str, resolver_id: str | None = None) -> None:
        logger.warning(
            "Rejected manual resolution of market {} by {}", market_id, resolver_id or "unknown"
        )
        raise DeprecatedOperationError(
            "Manual market resolution is disabled; markets resolve automatically from match results"
        )

    def can_user_resolve_market(self, market_id: str, user_id: str) -> bool:
        return False

    # ------------------------------------------------------------------
    # Helpers

    def _preview(self, market: Market, prediction: str, entry_amount: int) -> int:
        fees = FeePolicy.load(self.settings, PlatformConfigRepository(self._session)).for_market(market)
        return calculate_potential_winnings(
            total_pool=market.total_pool,
            entry_amount=entry_amount,
            entry_fee=market.entry_fee,
            fees=fees,
            existing_predictions=[p.prediction for p in self._markets.list_participants(market.id)],
            prediction=prediction,
        )

    def _require_market(self, market_id: str) -> Market:
        market = self._markets.get_market(market_id)
        if market is None:
            raise NotFoundError(f"Market {market_id} not found")
        return market

    def _require_open_market(self, market_id: str) -> Market:
        market = self._require_market(market_id)
        if market.status is not MarketStatus.SCHEDULED:
            raise MarketClosedError(f"Market {market_id} is {market.status.value}")
        if market.end_time is not None and _as_aware(market.end_time) <= self._clock():
            raise MarketClosedError(f"Market {market_id} closed at {market.end_time.isoformat()}")
        return market

    def _require_user(self, user_id: str) -> None:
        if self._users.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")


__all__ = ["MarketService", "VALID_OUTCOMES"]
