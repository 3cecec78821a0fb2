"""Automated market resolution and fund distribution.

Markets are resolved from match results only. A resolution reads the market
and its participants, applies the fee policy, computes the equal split and
then writes the FINISHED status, each winner's ``actual_winnings`` and the
ledger batch in a single unit of work. Either all of it commits or none of it
does.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pitchpool.core.config import Settings, get_settings
from pitchpool.db import SessionFactory, session_scope
from pitchpool.domain.models import (
    AutomationCycleSummary,
    FeeSchedule,
    MarketStatusSyncResult,
    MatchSnapshot,
    ResolutionResult,
    StakeEntry,
    TransactionBatch,
    TransactionSpec,
    WinningsCalculation,
)
from pitchpool.errors import (
    AlreadyResolvedError,
    ConfigurationError,
    InvalidOutcomeError,
    NotFoundError,
    OutcomeUnavailableError,
    PersistenceError,
    SettlementError,
)
from pitchpool.models import (
    RESOLVABLE_STATUSES,
    Market,
    MarketStatus,
    MatchOutcome,
    Participant,
    TransactionType,
    utcnow,
)
from pitchpool.repositories import MarketRepository, PlatformConfigRepository
from pitchpool.services.fee_policy import FeePolicy
from pitchpool.services.transaction_service import TransactionService
from pitchpool.services.winnings import calculate_creator_reward, calculate_winnings


class MatchResultProvider(Protocol):
    def get_match(self, match_id: int) -> MatchSnapshot | None: ...


def map_match_status(raw_status: str | None) -> MarketStatus | None:
    """Translate a match feed status into a market status (``None`` if unknown)."""

    if not raw_status:
        return None
    try:
        return MarketStatus(raw_status.strip().upper())
    except ValueError:
        return None


def determine_outcome(snapshot: MatchSnapshot) -> str | None:
    """Home / Draw / Away from the full-time score, or ``None`` without one."""

    if snapshot.home_score is None or snapshot.away_score is None:
        return None
    if snapshot.home_score > snapshot.away_score:
        return MatchOutcome.HOME.value
    if snapshot.away_score > snapshot.home_score:
        return MatchOutcome.AWAY.value
    return MatchOutcome.DRAW.value


def _normalize_outcome(outcome: str) -> str:
    try:
        return MatchOutcome(outcome).value
    except ValueError as exc:
        valid = ", ".join(member.value for member in MatchOutcome)
        raise InvalidOutcomeError(f"Unknown outcome {outcome!r}; expected one of {valid}") from exc


def _stake_entries(participants: list[Participant]) -> list[StakeEntry]:
    return [
        StakeEntry(
            participant_id=participant.id,
            user_id=participant.user_id,
            prediction=participant.prediction,
            entry_amount=participant.entry_amount,
        )
        for participant in participants
    ]


class AutomationService:
    """Resolve markets from match results and distribute their pools."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory | None = None,
        settings: Settings | None = None,
        result_provider: MatchResultProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or get_settings()
        self._result_provider = result_provider
        self._clock = clock

    # ------------------------------------------------------------------
    # Resolution

    def resolve_market(self, market_id: str) -> ResolutionResult:
        """Fetch the market's match result and settle the market with it."""

        match_id = self._resolvable_match_id(market_id)
        snapshot = self._provider().get_match(match_id)
        if snapshot is None:
            raise OutcomeUnavailableError(f"No data for match {match_id} (market {market_id})")
        return self.apply_match_result(market_id, snapshot)

    def apply_match_result(self, market_id: str, snapshot: MatchSnapshot) -> ResolutionResult:
        status = map_match_status(snapshot.status)
        if status is not MarketStatus.FINISHED:
            raise OutcomeUnavailableError(
                f"Match {snapshot.match_id} is {snapshot.status}; market {market_id} cannot resolve yet"
            )
        outcome = determine_outcome(snapshot)
        if outcome is None:
            raise OutcomeUnavailableError(
                f"Match {snapshot.match_id} finished without a full-time score"
            )
        return self._settle(market_id, outcome, match_id=snapshot.match_id)

    def _settle(self, market_id: str, outcome: str, *, match_id: int | None) -> ResolutionResult:
        outcome = _normalize_outcome(outcome)
        try:
            with session_scope(self._session_factory) as session:
                result = self._settle_in_session(session, market_id, outcome, match_id=match_id)
        except SQLAlchemyError as exc:
            logger.error("Storage failure while resolving market {}: {}", market_id, exc)
            raise PersistenceError(f"Resolution of market {market_id} was rolled back: {exc}") from exc

        calc = result.calculation
        logger.info(
            "Resolved market {} as {}: pool={} fee={} reward={} winners={} per_winner={}",
            market_id,
            outcome,
            calc.total_pool,
            calc.platform_fee,
            calc.creator_reward,
            calc.winner_count,
            calc.winnings_per_winner,
        )
        return result

    def _settle_in_session(
        self,
        session: Session,
        market_id: str,
        outcome: str,
        *,
        match_id: int | None,
    ) -> ResolutionResult:
        markets = MarketRepository(session)
        market = markets.get_market_for_update(market_id)
        if market is None:
            raise NotFoundError(f"Market {market_id} not found")
        if market.status not in RESOLVABLE_STATUSES:
            raise AlreadyResolvedError(
                f"Market {market_id} is {market.status.value} and cannot be resolved"
            )

        fees = self._fee_policy(session).for_market(market)
        participants = markets.list_participants(market_id)
        staked = markets.sum_entry_amounts(market_id)
        if staked != market.total_pool:
            logger.warning(
                "Market {} total_pool={} differs from staked sum={}; distributing total_pool",
                market_id,
                market.total_pool,
                staked,
            )

        calculation = calculate_winnings(
            market.total_pool,
            fees,
            _stake_entries(participants),
            outcome,
            market_id=market_id,
        )

        resolved_at = self._clock()
        if not markets.claim_resolution(market_id, outcome=outcome, resolved_at=resolved_at):
            raise AlreadyResolvedError(f"Market {market_id} was resolved concurrently")

        for participant_id in calculation.winner_ids:
            markets.update_participant_winnings(participant_id, calculation.winnings_per_winner)

        batch = self._build_batch(market, calculation, fees, participants, match_id=match_id)
        batch_result = TransactionService(session, clock=self._clock).process_batch(batch)
        if not batch_result.success:
            raise PersistenceError(
                f"Ledger batch {batch.batch_id} failed for market {market_id}: "
                + "; ".join(batch_result.errors)
            )

        return ResolutionResult(
            market_id=market_id,
            winning_outcome=outcome,
            calculation=calculation,
            transaction_ids=[transaction.id for transaction in batch_result.transactions],
            resolved_at=resolved_at,
        )

    def _build_batch(
        self,
        market: Market,
        calculation: WinningsCalculation,
        fees: FeeSchedule,
        participants: list[Participant],
        *,
        match_id: int | None,
    ) -> TransactionBatch:
        batch = TransactionBatch(batch_id=f"resolution-{market.id}-{uuid.uuid4().hex[:8]}")
        by_id = {participant.id: participant for participant in participants}
        base_metadata = {
            "marketId": market.id,
            "matchId": match_id if match_id is not None else market.match_id,
            "resolutionOutcome": calculation.winning_outcome,
            "totalPool": calculation.total_pool,
        }

        if calculation.winnings_per_winner > 0:
            for participant_id in calculation.winner_ids:
                participant = by_id[participant_id]
                batch.transactions.append(
                    TransactionSpec(
                        user_id=participant.user_id,
                        market_id=market.id,
                        type=TransactionType.WINNINGS,
                        amount=calculation.winnings_per_winner,
                        description=(
                            f"Winnings from market '{market.title}' "
                            f"({calculation.winning_outcome})"
                        ),
                        metadata={
                            **base_metadata,
                            "predictionId": participant.id,
                            "prediction": participant.prediction,
                        },
                    )
                )

        if calculation.creator_reward > 0:
            batch.transactions.append(
                TransactionSpec(
                    user_id=market.creator_id,
                    market_id=market.id,
                    type=TransactionType.CREATOR_REWARD,
                    amount=calculation.creator_reward,
                    description=f"Creator reward for market '{market.title}'",
                    metadata={
                        **base_metadata,
                        "rewardPercentage": str(fees.creator_reward_percentage),
                    },
                )
            )

        if calculation.platform_fee > 0:
            batch.transactions.append(
                TransactionSpec(
                    user_id=market.creator_id,
                    market_id=market.id,
                    type=TransactionType.PLATFORM_FEE,
                    amount=calculation.platform_fee,
                    description=f"Platform fee collected from market '{market.title}'",
                    metadata={
                        **base_metadata,
                        "feePercentage": str(fees.platform_fee_percentage),
                    },
                )
            )
        return batch

    # ------------------------------------------------------------------
    # Read-only previews

    def calculate_winnings(
        self, market_id: str, winning_outcome: str | None = None
    ) -> WinningsCalculation:
        """Preview the payout; a resolved market always uses its stored outcome."""

        with session_scope(self._session_factory) as session:
            markets = MarketRepository(session)
            market = self._require_market(markets, market_id)
            outcome = market.resolution_outcome or (
                _normalize_outcome(winning_outcome) if winning_outcome else None
            )
            fees = self._fee_policy(session).for_market(market)
            return calculate_winnings(
                market.total_pool,
                fees,
                _stake_entries(markets.list_participants(market_id)),
                outcome,
                market_id=market_id,
            )

    def calculate_creator_reward(self, market_id: str) -> int:
        with session_scope(self._session_factory) as session:
            market = self._require_market(MarketRepository(session), market_id)
            fees = self._fee_policy(session).for_market(market)
            return calculate_creator_reward(market.total_pool, fees)

    # ------------------------------------------------------------------
    # Match status sync

    def sync_match_statuses(self, *, limit: int | None = None) -> list[MarketStatusSyncResult]:
        """Poll the match feed for every pending market.

        FINISHED matches are routed into resolution; other statuses are copied
        onto the market. Failures are recorded per market and do not stop the
        sweep.
        """

        provider = self._provider()
        with session_scope(self._session_factory) as session:
            candidates = [
                (market.id, market.match_id, market.status)
                for market in MarketRepository(session).list_syncable_markets(limit=limit)
            ]

        results: list[MarketStatusSyncResult] = []
        for market_id, match_id, current_status in candidates:
            result = MarketStatusSyncResult(
                market_id=market_id, match_id=match_id, previous_status=current_status
            )
            results.append(result)
            try:
                snapshot = provider.get_match(match_id)
                if snapshot is None:
                    result.error = "match data unavailable"
                    continue
                new_status = map_match_status(snapshot.status)
                if new_status is None:
                    logger.warning(
                        "Unknown match status {!r} for match {} (market {})",
                        snapshot.status,
                        match_id,
                        market_id,
                    )
                    result.error = f"unknown match status {snapshot.status!r}"
                elif new_status is MarketStatus.FINISHED:
                    self.apply_match_result(market_id, snapshot)
                    result.new_status = MarketStatus.FINISHED
                    result.resolved = True
                elif new_status is not current_status:
                    if self._transition_status(market_id, new_status):
                        result.new_status = new_status
                        logger.info(
                            "Market {} status {} -> {}",
                            market_id,
                            current_status.value,
                            new_status.value,
                        )
            except SettlementError as exc:
                logger.warning("Status sync failed for market {}: {}", market_id, exc)
                result.error = str(exc)
        return results

    def run_automation_cycle(self, *, limit: int | None = None) -> AutomationCycleSummary:
        summary = AutomationCycleSummary()
        for result in self.sync_match_statuses(limit=limit):
            summary.checked_markets += 1
            summary.results.append(result)
            if result.resolved:
                summary.resolved_markets += 1
            elif result.new_status is not None:
                summary.status_updates += 1
            if result.error:
                summary.failures.append({"market_id": result.market_id, "reason": result.error})
        logger.info(
            "Automation cycle finished: checked={}, resolved={}, status_updates={}, failures={}",
            summary.checked_markets,
            summary.resolved_markets,
            summary.status_updates,
            len(summary.failures),
        )
        return summary

    # ------------------------------------------------------------------
    # Helpers

    def _provider(self) -> MatchResultProvider:
        if self._result_provider is None:
            raise ConfigurationError("No match result provider configured")
        return self._result_provider

    def _transition_status(self, market_id: str, new_status: MarketStatus) -> bool:
        try:
            with session_scope(self._session_factory) as session:
                return MarketRepository(session).transition_status(market_id, new_status)
        except SQLAlchemyError as exc:
            logger.error("Storage failure while updating market {} status: {}", market_id, exc)
            raise PersistenceError(
                f"Status update of market {market_id} to {new_status.value} was rolled back: {exc}"
            ) from exc

    def _fee_policy(self, session: Session) -> FeePolicy:
        return FeePolicy.load(self.settings, PlatformConfigRepository(session))

    def _resolvable_match_id(self, market_id: str) -> int:
        with session_scope(self._session_factory) as session:
            market = self._require_market(MarketRepository(session), market_id)
            if market.status not in RESOLVABLE_STATUSES:
                raise AlreadyResolvedError(
                    f"Market {market_id} is {market.status.value} and cannot be resolved"
                )
            if market.match_id is None:
                raise OutcomeUnavailableError(f"Market {market_id} is not linked to a match")
            return market.match_id

    @staticmethod
    def _require_market(markets: MarketRepository, market_id: str) -> Market:
        market = markets.get_market(market_id)
        if market is None:
            raise NotFoundError(f"Market {market_id} not found")
        return market


__all__ = [
    "AutomationService",
    "MatchResultProvider",
    "determine_outcome",
    "map_match_status",
]
