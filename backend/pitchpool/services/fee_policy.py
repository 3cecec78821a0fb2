"""Resolve and validate the fee fractions charged on a market's pool."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from loguru import logger

from pitchpool.core.config import Settings, get_settings
from pitchpool.domain.models import FeeLimits, FeeSchedule
from pitchpool.errors import ConfigurationError
from pitchpool.models import Market
from pitchpool.repositories.config_repository import PlatformConfigRepository

PLATFORM_FEE_KEY = "default_platform_fee_percentage"
CREATOR_REWARD_KEY = "default_creator_reward_percentage"
MAX_PLATFORM_FEE_KEY = "max_platform_fee_percentage"
MAX_CREATOR_REWARD_KEY = "max_creator_reward_percentage"

CONFIG_KEYS = (
    PLATFORM_FEE_KEY,
    CREATOR_REWARD_KEY,
    MAX_PLATFORM_FEE_KEY,
    MAX_CREATOR_REWARD_KEY,
)


def _to_fraction(value: Any, *, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be numeric, got {value!r}")
    try:
        fraction = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"{name} must be numeric, got {value!r}") from exc
    if not fraction.is_finite():
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return fraction


class FeePolicy:
    """Fee defaults and bounds, captured once and passed around explicitly.

    Percentages are fractions in ``[0, 1]``: ``Decimal("0.03")`` is a three
    percent fee.
    """

    def __init__(self, defaults: FeeSchedule, limits: FeeLimits) -> None:
        self._defaults = defaults
        self._limits = limits

    @classmethod
    def load(
        cls,
        settings: Settings | None = None,
        config_repository: PlatformConfigRepository | None = None,
    ) -> FeePolicy:
        """Build a policy from settings, overlaid with ``platform_config`` rows."""

        settings = settings or get_settings()
        values: dict[str, Any] = {
            PLATFORM_FEE_KEY: settings.default_platform_fee_percentage,
            CREATOR_REWARD_KEY: settings.default_creator_reward_percentage,
            MAX_PLATFORM_FEE_KEY: settings.max_platform_fee_percentage,
            MAX_CREATOR_REWARD_KEY: settings.max_creator_reward_percentage,
        }
        if config_repository is not None:
            overrides = {
                key: value
                for key, value in config_repository.get_values(CONFIG_KEYS).items()
                if value is not None
            }
            if overrides:
                logger.debug("Applying platform_config fee overrides: {}", sorted(overrides))
            values.update(overrides)

        fractions = {key: _to_fraction(value, name=key) for key, value in values.items()}
        if fractions[MAX_PLATFORM_FEE_KEY] + fractions[MAX_CREATOR_REWARD_KEY] > 1:
            logger.warning(
                "Configured fee maxima sum above 100% (platform={}, creator={})",
                fractions[MAX_PLATFORM_FEE_KEY],
                fractions[MAX_CREATOR_REWARD_KEY],
            )
        return cls(
            defaults=FeeSchedule(
                platform_fee_percentage=fractions[PLATFORM_FEE_KEY],
                creator_reward_percentage=fractions[CREATOR_REWARD_KEY],
            ),
            limits=FeeLimits(
                max_platform_fee_percentage=fractions[MAX_PLATFORM_FEE_KEY],
                max_creator_reward_percentage=fractions[MAX_CREATOR_REWARD_KEY],
            ),
        )

    @property
    def limits(self) -> FeeLimits:
        return self._limits

    def defaults(self) -> FeeSchedule:
        return self.validate(self._defaults)

    def for_market(self, market: Market) -> FeeSchedule:
        platform = market.platform_fee_percentage
        creator = market.creator_reward_percentage
        schedule = FeeSchedule(
            platform_fee_percentage=(
                self._defaults.platform_fee_percentage
                if platform is None
                else _to_fraction(platform, name="platform_fee_percentage")
            ),
            creator_reward_percentage=(
                self._defaults.creator_reward_percentage
                if creator is None
                else _to_fraction(creator, name="creator_reward_percentage")
            ),
        )
        try:
            return self.validate(schedule)
        except ConfigurationError as exc:
            raise ConfigurationError(f"Market {market.id}: {exc}") from exc

    def validate(self, schedule: FeeSchedule) -> FeeSchedule:
        platform = schedule.platform_fee_percentage
        creator = schedule.creator_reward_percentage
        limits = self._limits
        if platform < 0 or platform > limits.max_platform_fee_percentage:
            raise ConfigurationError(
                f"platform fee {platform} outside [0, {limits.max_platform_fee_percentage}]"
            )
        if creator < 0 or creator > limits.max_creator_reward_percentage:
            raise ConfigurationError(
                f"creator reward {creator} outside [0, {limits.max_creator_reward_percentage}]"
            )
        if platform + creator >= 1:
            raise ConfigurationError(
                f"platform fee and creator reward sum to {platform + creator}; must stay below 1"
            )
        return schedule


__all__ = [
    "CONFIG_KEYS",
    "CREATOR_REWARD_KEY",
    "FeePolicy",
    "MAX_CREATOR_REWARD_KEY",
    "MAX_PLATFORM_FEE_KEY",
    "PLATFORM_FEE_KEY",
]
