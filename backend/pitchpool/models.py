from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class MarketStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    IN_PLAY = "IN_PLAY"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    POSTPONED = "POSTPONED"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"


RESOLVABLE_STATUSES: frozenset[MarketStatus] = frozenset(
    {
        MarketStatus.SCHEDULED,
        MarketStatus.LIVE,
        MarketStatus.IN_PLAY,
        MarketStatus.PAUSED,
    }
)


# Non-terminal statuses that the match-status sync keeps polling.
SYNCABLE_STATUSES: frozenset[MarketStatus] = RESOLVABLE_STATUSES | {
    MarketStatus.POSTPONED,
    MarketStatus.SUSPENDED,
}


class MatchOutcome(str, Enum):
    HOME = "Home"
    DRAW = "Draw"
    AWAY = "Away"


class TransactionType(str, Enum):
    MARKET_ENTRY = "market_entry"
    WINNINGS = "winnings"
    PLATFORM_FEE = "platform_fee"
    CREATOR_REWARD = "creator_reward"
    AUTOMATED_TRANSFER = "automated_transfer"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls: type[Enum]) -> SQLEnum:
    return SQLEnum(
        enum_cls,
        native_enum=False,
        validate_strings=True,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    wallet_address: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Market(Base):
    __tablename__ = "markets"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    creator_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    match_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    home_team_name: Mapped[str | None] = mapped_column(String, nullable=True)
    away_team_name: Mapped[str | None] = mapped_column(String, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    entry_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_pool: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    platform_fee_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)
    creator_reward_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)
    status: Mapped[MarketStatus] = mapped_column(
        _enum_column(MarketStatus), nullable=False, default=MarketStatus.SCHEDULED
    )
    resolution_outcome: Mapped[str | None] = mapped_column(String(16), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    creator: Mapped[User] = relationship("User")
    participants: Mapped[list["Participant"]] = relationship(
        "Participant",
        back_populates="market",
        cascade="all, delete-orphan",
        order_by="Participant.joined_at",
    )


class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    market_id: Mapped[str] = mapped_column(
        String, ForeignKey("markets.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    prediction: Mapped[str] = mapped_column(String(16), nullable=False)
    entry_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    potential_winnings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    actual_winnings: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    market: Mapped[Market] = relationship("Market", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("market_id", "user_id", name="uq_participant_market_user"),
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    market_id: Mapped[str | None] = mapped_column(String, ForeignKey("markets.id"), nullable=True)
    type: Mapped[TransactionType] = mapped_column(_enum_column(TransactionType), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum_column(TransactionStatus), nullable=False, default=TransactionStatus.PENDING
    )
    # "metadata" is reserved on declarative classes.
    details: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_transactions_market_created", "market_id", "created_at"),
        Index("ix_transactions_user_created", "user_id", "created_at"),
    )


class PlatformConfig(Base):
    __tablename__ = "platform_config"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
