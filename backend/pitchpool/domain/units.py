"""Integer atomic amounts and their decimal display form.

Every amount stored or moved by the platform is an integer count of atomic
units. Decimal values only exist at the edges (user input and display), and
conversion into atomic units always floors so that distributions can never
exceed the pool they are carved from.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any

from pitchpool.core.config import Settings
from pitchpool.errors import AmountValidationError

_AMOUNT_PATTERN = re.compile(r"^\d+(\.\d+)?$")


def _as_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise AmountValidationError("Booleans are not amounts")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise AmountValidationError(f"Not a numeric amount: {value!r}") from exc
    else:
        raise AmountValidationError(f"Unsupported amount type: {type(value).__name__}")

    if not result.is_finite():
        raise AmountValidationError(f"Amount must be finite, got {value!r}")
    if result < 0:
        raise AmountValidationError(f"Amount cannot be negative, got {value!r}")
    return result


def _require_atomic(atomic: Any) -> int:
    if isinstance(atomic, bool) or not isinstance(atomic, int):
        raise AmountValidationError(f"Atomic amounts must be integers, got {atomic!r}")
    if atomic < 0:
        raise AmountValidationError(f"Atomic amounts cannot be negative, got {atomic}")
    return atomic


def floor_decimal(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def apply_rate(atomic: int, rate: Decimal) -> int:
    """Return ``floor(atomic * rate)``; the fractional remainder is dropped."""

    return floor_decimal(Decimal(_require_atomic(atomic)) * rate)


def floor_divide(atomic: int, parts: int) -> int:
    if parts <= 0:
        raise AmountValidationError("Cannot split an amount into zero parts")
    return _require_atomic(atomic) // parts


@dataclass(frozen=True, slots=True)
class AmountUnit:
    """Conversion rules for one token denomination."""

    atomic_units_per_token: int = 100_000
    decimals: int = 5
    symbol: str = "MNEE"
    min_transfer_amount: int = 1_000
    max_transfer_amount: int = 100_000_000_000

    @classmethod
    def from_settings(cls, settings: Settings) -> AmountUnit:
        return cls(
            atomic_units_per_token=settings.atomic_units_per_token,
            decimals=settings.token_decimals,
            symbol=settings.token_symbol,
            min_transfer_amount=settings.min_transfer_amount,
            max_transfer_amount=settings.max_transfer_amount,
        )

    def to_atomic(self, value: Any) -> int:
        return floor_decimal(_as_decimal(value) * self.atomic_units_per_token)

    def to_decimal(self, atomic: int) -> Decimal:
        return Decimal(_require_atomic(atomic)) / Decimal(self.atomic_units_per_token)

    def format_amount(
        self,
        atomic: int,
        *,
        include_symbol: bool = True,
        decimals: int | None = None,
    ) -> str:
        places = self.decimals if decimals is None else decimals
        quantum = Decimal(1).scaleb(-places)
        value = self.to_decimal(atomic).quantize(quantum, rounding=ROUND_FLOOR)
        text = f"{value:f}"
        return f"{text} {self.symbol}" if include_symbol else text

    def parse_amount(self, text: str) -> int:
        if not isinstance(text, str):
            raise AmountValidationError(f"Expected a string amount, got {type(text).__name__}")
        cleaned = re.sub(re.escape(self.symbol), "", text, flags=re.IGNORECASE)
        cleaned = cleaned.replace(",", "").replace(" ", "").strip()
        if not _AMOUNT_PATTERN.match(cleaned):
            raise AmountValidationError(f"Unparseable amount: {text!r}")
        return self.to_atomic(Decimal(cleaned))

    def validate_amount(
        self,
        atomic: Any,
        *,
        min_amount: int | None = None,
        max_amount: int | None = None,
    ) -> int:
        value = _require_atomic(atomic)
        if min_amount is not None and value < min_amount:
            raise AmountValidationError(
                f"Amount {self.format_amount(value)} is below the minimum of "
                f"{self.format_amount(min_amount)}"
            )
        if max_amount is not None and value > max_amount:
            raise AmountValidationError(
                f"Amount {self.format_amount(value)} exceeds the maximum of "
                f"{self.format_amount(max_amount)}"
            )
        return value

    def is_within_transfer_limits(self, atomic: int) -> bool:
        try:
            self.validate_amount(
                atomic,
                min_amount=self.min_transfer_amount,
                max_amount=self.max_transfer_amount,
            )
        except AmountValidationError:
            return False
        return True


__all__ = [
    "AmountUnit",
    "apply_rate",
    "floor_decimal",
    "floor_divide",
]
