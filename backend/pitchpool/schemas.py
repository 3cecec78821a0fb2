from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class Market(BaseModel):
    id: str
    creator_id: str
    match_id: int | None = None
    title: str
    description: str | None = None
    home_team_name: str | None = None
    away_team_name: str | None = None
    end_time: datetime | None = None
    entry_fee: int
    total_pool: int
    platform_fee_percentage: Decimal | None = None
    creator_reward_percentage: Decimal | None = None
    status: str
    resolution_outcome: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        return _enum_value(value)

    @field_serializer("platform_fee_percentage", "creator_reward_percentage")
    def _serialize_fraction(self, value: Decimal | None) -> str | None:
        return None if value is None else str(value)


class Transaction(BaseModel):
    id: str
    user_id: str
    market_id: str | None = None
    type: str
    amount: int
    description: str
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}

    @field_validator("type", "status", mode="before")
    @classmethod
    def _coerce_enums(cls, value: Any) -> Any:
        return _enum_value(value)


class WinningsPreview(BaseModel):
    market_id: str | None = None
    winning_outcome: str | None = None
    total_pool: int
    platform_fee: int
    creator_reward: int
    participant_pool: int
    winnings_per_winner: int
    winner_ids: list[str] = Field(default_factory=list)


class CreatorReward(BaseModel):
    market_id: str
    creator_reward: int


class Resolution(BaseModel):
    market_id: str
    winning_outcome: str
    resolved_at: datetime | None = None
    total_pool: int
    platform_fee: int
    creator_reward: int
    participant_pool: int
    winnings_per_winner: int
    winner_ids: list[str] = Field(default_factory=list)
    transaction_ids: list[str] = Field(default_factory=list)


class ManualResolutionRequest(BaseModel):
    outcome: str
    resolver_id: str | None = None


class ErrorResponse(BaseModel):
    kind: str
    message: str
    retryable: bool
