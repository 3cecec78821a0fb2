"""Market and participant persistence."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import asc, func, select, update
from sqlalchemy.orm import Session

from pitchpool.models import (
    RESOLVABLE_STATUSES,
    SYNCABLE_STATUSES,
    Market,
    MarketStatus,
    Participant,
    utcnow,
)

_UPDATABLE_MARKET_FIELDS = frozenset(
    {
        "title",
        "description",
        "home_team_name",
        "away_team_name",
        "end_time",
        "match_id",
        "entry_fee",
        "platform_fee_percentage",
        "creator_reward_percentage",
    }
)


class MarketRepository:
    """Encapsulate market and participant persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add_market(self, market: Market) -> Market:
        self._session.add(market)
        self._session.flush()
        return market

    def update_market(self, market_id: str, **fields: Any) -> Market | None:
        """Apply descriptive field updates.

        Status, outcome and pool totals are not accepted here; they move
        only through :meth:`claim_resolution`, :meth:`transition_status`
        and :meth:`adjust_total_pool`.
        """

        unknown = set(fields) - _UPDATABLE_MARKET_FIELDS
        if unknown:
            raise ValueError(f"Unsupported market fields: {', '.join(sorted(unknown))}")
        market = self.get_market(market_id)
        if market is None:
            return None
        for key, value in fields.items():
            setattr(market, key, value)
        self._session.flush()
        return market

    def claim_resolution(
        self,
        market_id: str,
        *,
        outcome: str,
        resolved_at: datetime,
    ) -> bool:
        """Move a market to FINISHED if, and only if, it is still resolvable.

        The status guard lives in the UPDATE itself so two concurrent
        resolutions cannot both match a row.
        """

        statement = (
            update(Market)
            .where(Market.id == market_id, Market.status.in_(list(RESOLVABLE_STATUSES)))
            .values(
                status=MarketStatus.FINISHED,
                resolution_outcome=outcome,
                resolved_at=resolved_at,
                updated_at=resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        claimed = result.rowcount == 1
        market = self._session.get(Market, market_id)
        if market is not None:
            self._session.refresh(market)
        return claimed

    def transition_status(
        self,
        market_id: str,
        new_status: MarketStatus,
        *,
        from_statuses: Iterable[MarketStatus] = SYNCABLE_STATUSES,
    ) -> bool:
        if new_status is MarketStatus.FINISHED:
            raise ValueError("FINISHED is only reachable through claim_resolution")
        statement = (
            update(Market)
            .where(Market.id == market_id, Market.status.in_(list(from_statuses)))
            .values(status=new_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        changed = self._session.execute(statement).rowcount == 1
        market = self._session.get(Market, market_id)
        if market is not None:
            self._session.refresh(market)
        return changed

    def adjust_total_pool(self, market: Market, delta: int) -> Market:
        """Add ``delta`` to the stored pool in a single UPDATE.

        The increment is computed by the database from the current row, not
        from ``market``, which may have been loaded before another join
        committed.
        """

        statement = (
            update(Market)
            .where(Market.id == market.id, Market.total_pool + delta >= 0)
            .values(total_pool=Market.total_pool + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(statement).rowcount != 1:
            raise ValueError(f"total_pool for market {market.id} cannot go negative")
        self._session.refresh(market)
        return market

    def add_participant(self, participant: Participant) -> Participant:
        self._session.add(participant)
        self._session.flush()
        return participant

    def remove_participant(self, participant: Participant) -> None:
        self._session.delete(participant)
        self._session.flush()

    def update_participant_winnings(self, participant_id: str, amount: int) -> Participant | None:
        participant = self._session.get(Participant, participant_id)
        if participant is None:
            return None
        participant.actual_winnings = amount
        self._session.flush()
        return participant

    # ------------------------------------------------------------------
    # Queries

    def get_market(self, market_id: str) -> Market | None:
        return self._session.get(Market, market_id)

    def get_market_for_update(self, market_id: str) -> Market | None:
        """Load a market with a row lock on backends that support it."""

        query = select(Market).where(Market.id == market_id).with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def list_participants(self, market_id: str) -> list[Participant]:
        query = (
            select(Participant)
            .where(Participant.market_id == market_id)
            .order_by(asc(Participant.joined_at), asc(Participant.id))
        )
        return list(self._session.execute(query).scalars())

    def get_participant(self, market_id: str, user_id: str) -> Participant | None:
        query = select(Participant).where(
            Participant.market_id == market_id,
            Participant.user_id == user_id,
        )
        return self._session.execute(query).scalar_one_or_none()

    def sum_entry_amounts(self, market_id: str) -> int:
        query = select(func.coalesce(func.sum(Participant.entry_amount), 0)).where(
            Participant.market_id == market_id
        )
        return int(self._session.execute(query).scalar_one())

    def list_syncable_markets(self, *, limit: int | None = None) -> list[Market]:
        """Markets tied to a match whose result is still pending."""

        query = (
            select(Market)
            .where(
                Market.match_id.is_not(None),
                Market.status.in_(list(SYNCABLE_STATUSES)),
            )
            .order_by(asc(Market.end_time), asc(Market.created_at))
        )
        if limit:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars())


__all__ = ["MarketRepository"]
