"""Domain value objects and amount handling for market settlement."""

from .models import (
    AutomationCycleSummary,
    BatchResult,
    FeeLimits,
    FeeSchedule,
    MarketStats,
    MarketStatusSyncResult,
    MatchSnapshot,
    ResolutionResult,
    StakeEntry,
    TransactionBatch,
    TransactionSpec,
    TransactionStats,
    WinningsCalculation,
)
from .units import AmountUnit

__all__ = [
    "AmountUnit",
    "AutomationCycleSummary",
    "BatchResult",
    "FeeLimits",
    "FeeSchedule",
    "MarketStats",
    "MarketStatusSyncResult",
    "MatchSnapshot",
    "ResolutionResult",
    "StakeEntry",
    "TransactionBatch",
    "TransactionSpec",
    "TransactionStats",
    "WinningsCalculation",
]
