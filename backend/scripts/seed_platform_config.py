import argparse
from decimal import Decimal, InvalidOperation

from loguru import logger

from pitchpool.core.config import get_settings
from pitchpool.db import init_db, session_scope
from pitchpool.errors import ConfigurationError
from pitchpool.repositories import PlatformConfigRepository
from pitchpool.services.fee_policy import (
    CREATOR_REWARD_KEY,
    MAX_CREATOR_REWARD_KEY,
    MAX_PLATFORM_FEE_KEY,
    PLATFORM_FEE_KEY,
    FeePolicy,
)


def _fraction(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"{raw!r} is not a decimal fraction") from exc


def _pick(override: Decimal | None, default: Decimal) -> Decimal:
    return default if override is None else override


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Write fee defaults and limits into the platform_config table"
    )
    parser.add_argument("--platform-fee", type=_fraction, default=None, help="e.g. 0.03 for 3%%")
    parser.add_argument("--creator-reward", type=_fraction, default=None, help="e.g. 0.02 for 2%%")
    parser.add_argument("--max-platform-fee", type=_fraction, default=None)
    parser.add_argument("--max-creator-reward", type=_fraction, default=None)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = get_settings()
    init_db()

    values = {
        PLATFORM_FEE_KEY: _pick(args.platform_fee, settings.default_platform_fee_percentage),
        CREATOR_REWARD_KEY: _pick(args.creator_reward, settings.default_creator_reward_percentage),
        MAX_PLATFORM_FEE_KEY: _pick(args.max_platform_fee, settings.max_platform_fee_percentage),
        MAX_CREATOR_REWARD_KEY: _pick(
            args.max_creator_reward, settings.max_creator_reward_percentage
        ),
    }

    with session_scope() as session:
        repo = PlatformConfigRepository(session)
        for key, value in values.items():
            repo.set_value(key, str(value))
        try:
            FeePolicy.load(settings, repo).defaults()
        except ConfigurationError as exc:
            logger.error("Refusing to store invalid fee configuration: {}", exc)
            raise

    for key, value in values.items():
        logger.info("platform_config {} = {}", key, value)


if __name__ == "__main__":
    main()
