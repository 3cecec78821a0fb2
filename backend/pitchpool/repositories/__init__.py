"""Repository abstractions for database interactions."""

from .config_repository import PlatformConfigRepository
from .market_repository import MarketRepository
from .transaction_repository import TransactionRepository
from .user_repository import UserRepository

__all__ = [
    "MarketRepository",
    "PlatformConfigRepository",
    "TransactionRepository",
    "UserRepository",
]
