"""Pure payout arithmetic for pooled-stake markets.

Nothing in this module touches storage. Fees come off the top of the pool,
and whatever remains is split equally between participants whose prediction
matches the winning outcome. All amounts are integer atomic units and every
division floors.
"""

from __future__ import annotations

from collections.abc import Iterable

from pitchpool.domain.models import FeeSchedule, StakeEntry, WinningsCalculation
from pitchpool.domain.units import apply_rate, floor_divide


def _split_pool(total_pool: int, fees: FeeSchedule) -> tuple[int, int, int]:
    platform_fee = apply_rate(total_pool, fees.platform_fee_percentage)
    creator_reward = apply_rate(total_pool, fees.creator_reward_percentage)
    participant_pool = total_pool - platform_fee - creator_reward
    return platform_fee, creator_reward, participant_pool


def calculate_creator_reward(total_pool: int, fees: FeeSchedule) -> int:
    return apply_rate(total_pool, fees.creator_reward_percentage)


def calculate_winnings(
    total_pool: int,
    fees: FeeSchedule,
    participants: Iterable[StakeEntry],
    winning_outcome: str | None,
    *,
    market_id: str | None = None,
) -> WinningsCalculation:
    """Compute fees and the equal per-winner payout.

    With no winners the fees are still charged and the participant pool stays
    undistributed; nothing is refunded.
    """

    platform_fee, creator_reward, participant_pool = _split_pool(total_pool, fees)
    winner_ids = tuple(
        entry.participant_id
        for entry in participants
        if winning_outcome is not None and entry.prediction == winning_outcome
    )
    per_winner = floor_divide(participant_pool, len(winner_ids)) if winner_ids else 0

    return WinningsCalculation(
        total_pool=total_pool,
        platform_fee=platform_fee,
        creator_reward=creator_reward,
        participant_pool=participant_pool,
        winnings_per_winner=per_winner,
        winner_ids=winner_ids,
        winning_outcome=winning_outcome,
        market_id=market_id,
    )


def calculate_potential_winnings(
    *,
    total_pool: int,
    entry_amount: int,
    entry_fee: int,
    fees: FeeSchedule,
    existing_predictions: Iterable[str],
    prediction: str,
) -> int:
    """Estimate what a new participant would receive if ``prediction`` wins.

    The estimate assumes nobody else joins. An empty market has no pool to
    split yet, so the entry fee is quoted instead.
    """

    predictions = list(existing_predictions)
    if not predictions:
        return entry_fee

    pool_after_join = total_pool + entry_amount
    _, _, participant_pool = _split_pool(pool_after_join, fees)
    backers = sum(1 for existing in predictions if existing == prediction)
    return floor_divide(participant_pool, backers + 1)


__all__ = [
    "calculate_creator_reward",
    "calculate_potential_winnings",
    "calculate_winnings",
]
