"""Error taxonomy shared by the settlement services and the API layer."""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for every error raised by market settlement code."""

    kind = "settlement_error"
    retryable = False


class NotFoundError(SettlementError, LookupError):
    """A market, participant, user or transaction does not exist."""

    kind = "not_found"


class AlreadyResolvedError(SettlementError):
    """The market is no longer in a resolvable status."""

    kind = "already_resolved"


class ConfigurationError(SettlementError):
    """Fee percentages are missing, out of bounds or sum to 100% or more."""

    kind = "configuration_error"


class PersistenceError(SettlementError):
    """Storage failed while committing a unit of work; nothing was written."""

    kind = "persistence_error"
    retryable = True


class DeprecatedOperationError(SettlementError):
    """The operation has been retired in favour of automated resolution."""

    kind = "deprecated_operation"


class AmountValidationError(SettlementError, ValueError):
    """An amount is not a non-negative integer or falls outside its bounds."""

    kind = "invalid_amount"


class InvalidOutcomeError(SettlementError, ValueError):
    kind = "invalid_outcome"


class DuplicateParticipantError(SettlementError):
    kind = "duplicate_participant"


class MarketClosedError(SettlementError):
    """The market no longer accepts joins or withdrawals."""

    kind = "market_closed"


class TransactionStateError(SettlementError):
    """A ledger entry has already reached a terminal status."""

    kind = "invalid_transaction_state"


class OutcomeUnavailableError(SettlementError):
    """The match feed has no final score for the market's match yet."""

    kind = "outcome_unavailable"
    retryable = True


class MatchFeedError(SettlementError):
    """The match feed could not be reached or returned an unusable payload."""

    kind = "match_feed_error"
    retryable = True


__all__ = [
    "AlreadyResolvedError",
    "AmountValidationError",
    "ConfigurationError",
    "DeprecatedOperationError",
    "DuplicateParticipantError",
    "InvalidOutcomeError",
    "MarketClosedError",
    "MatchFeedError",
    "NotFoundError",
    "OutcomeUnavailableError",
    "PersistenceError",
    "SettlementError",
    "TransactionStateError",
]
