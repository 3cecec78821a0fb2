"""Typed value objects passed between the settlement services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from pitchpool.models import MarketStatus, TransactionType


@dataclass(frozen=True, slots=True)
class FeeSchedule:
    """Fee fractions applied to a market's total pool."""

    platform_fee_percentage: Decimal
    creator_reward_percentage: Decimal

    @property
    def total_percentage(self) -> Decimal:
        return self.platform_fee_percentage + self.creator_reward_percentage


@dataclass(frozen=True, slots=True)
class FeeLimits:
    max_platform_fee_percentage: Decimal
    max_creator_reward_percentage: Decimal


@dataclass(frozen=True, slots=True)
class StakeEntry:
    """A participant's prediction and stake as seen by the calculator."""

    participant_id: str
    user_id: str
    prediction: str
    entry_amount: int


@dataclass(frozen=True, slots=True)
class WinningsCalculation:
    total_pool: int
    platform_fee: int
    creator_reward: int
    participant_pool: int
    winnings_per_winner: int
    winner_ids: tuple[str, ...] = ()
    winning_outcome: str | None = None
    market_id: str | None = None

    @property
    def winner_count(self) -> int:
        return len(self.winner_ids)

    @property
    def total_distributed(self) -> int:
        return self.winnings_per_winner * self.winner_count

    @property
    def undistributed(self) -> int:
        """Atomic units left with the platform after fees and payouts."""

        return self.participant_pool - self.total_distributed

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "winning_outcome": self.winning_outcome,
            "total_pool": self.total_pool,
            "platform_fee": self.platform_fee,
            "creator_reward": self.creator_reward,
            "participant_pool": self.participant_pool,
            "winnings_per_winner": self.winnings_per_winner,
            "winner_ids": list(self.winner_ids),
        }


@dataclass(slots=True)
class TransactionSpec:
    """A ledger entry waiting to be posted."""

    user_id: str
    type: TransactionType
    amount: int
    description: str
    market_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TransactionBatch:
    batch_id: str
    transactions: list[TransactionSpec] = field(default_factory=list)


@dataclass(slots=True)
class BatchResult:
    """Outcome of posting a batch; failures are reported, never dropped."""

    success: bool
    transactions: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResolutionResult:
    market_id: str
    winning_outcome: str
    calculation: WinningsCalculation
    transaction_ids: list[str] = field(default_factory=list)
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "winning_outcome": self.winning_outcome,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "transaction_ids": list(self.transaction_ids),
            **{
                key: value
                for key, value in self.calculation.to_dict().items()
                if key not in {"market_id", "winning_outcome"}
            },
        }


@dataclass(frozen=True, slots=True)
class MatchSnapshot:
    """Normalized view of one match as reported by the match feed."""

    match_id: int
    status: str
    home_score: int | None = None
    away_score: int | None = None
    home_team: str | None = None
    away_team: str | None = None
    kickoff: datetime | None = None
    raw_data: dict[str, Any] | None = None


@dataclass(slots=True)
class MarketStatusSyncResult:
    market_id: str
    match_id: int | None
    previous_status: MarketStatus
    new_status: MarketStatus | None = None
    resolved: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "match_id": self.match_id,
            "previous_status": self.previous_status.value,
            "new_status": self.new_status.value if self.new_status else None,
            "resolved": self.resolved,
            "error": self.error,
        }


@dataclass(slots=True)
class AutomationCycleSummary:
    checked_markets: int = 0
    status_updates: int = 0
    resolved_markets: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)
    results: list[MarketStatusSyncResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_markets": self.checked_markets,
            "status_updates": self.status_updates,
            "resolved_markets": self.resolved_markets,
            "failures": self.failures,
            "results": [result.to_dict() for result in self.results],
        }


@dataclass(slots=True)
class TransactionStats:
    total_transactions: int = 0
    total_volume: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_status: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class MarketStats:
    market_id: str
    participant_count: int
    total_pool: int
    prediction_counts: dict[str, int] = field(default_factory=dict)
    prediction_volume: dict[str, int] = field(default_factory=dict)
