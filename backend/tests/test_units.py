from __future__ import annotations

from decimal import Decimal

import pytest

from pitchpool.domain.units import AmountUnit, apply_rate, floor_divide
from pitchpool.errors import AmountValidationError

UNIT = AmountUnit()


def test_to_atomic_scales_and_floors():
    assert UNIT.to_atomic(Decimal("1")) == 100_000
    assert UNIT.to_atomic("0.30000") == 30_000
    assert UNIT.to_atomic(2) == 200_000
    # Sub-atomic precision is truncated, never rounded up.
    assert UNIT.to_atomic(Decimal("0.000019")) == 1


def test_to_atomic_accepts_floats_through_their_repr():
    assert UNIT.to_atomic(0.1) == 10_000
    assert UNIT.to_atomic(1.23456) == 123_456


@pytest.mark.parametrize("value", [Decimal("NaN"), float("inf"), "-1", -0.5, True, None, "abc"])
def test_to_atomic_rejects_invalid_values(value):
    with pytest.raises(AmountValidationError):
        UNIT.to_atomic(value)


def test_to_decimal_round_trips_representable_values():
    for text in ("0", "0.00001", "1.5", "123.45678", "1000000"):
        value = Decimal(text)
        assert UNIT.to_decimal(UNIT.to_atomic(value)) == value


@pytest.mark.parametrize("atomic", [-1, 1.5, "10", False])
def test_to_decimal_rejects_non_integer_or_negative(atomic):
    with pytest.raises(AmountValidationError):
        UNIT.to_decimal(atomic)


def test_format_amount_uses_fixed_decimals_and_symbol():
    assert UNIT.format_amount(12_345) == "0.12345 MNEE"
    assert UNIT.format_amount(100_000, include_symbol=False) == "1.00000"
    assert UNIT.format_amount(150_000, decimals=2) == "1.50 MNEE"
    assert UNIT.format_amount(0) == "0.00000 MNEE"


def test_parse_amount_recovers_formatted_value():
    for atomic in (0, 1, 999, 28_500, 100_000_000_000):
        assert UNIT.parse_amount(UNIT.format_amount(atomic)) == atomic


def test_parse_amount_is_lenient_about_symbol_and_separators():
    assert UNIT.parse_amount("1,234.5 mnee") == 123_450_000
    assert UNIT.parse_amount("  7 ") == 700_000


@pytest.mark.parametrize("text", ["", "MNEE", "-1 MNEE", "1.2.3", "ten"])
def test_parse_amount_rejects_garbage(text):
    with pytest.raises(AmountValidationError):
        UNIT.parse_amount(text)


def test_validate_amount_enforces_bounds():
    assert UNIT.validate_amount(5_000, min_amount=1_000, max_amount=10_000) == 5_000
    with pytest.raises(AmountValidationError):
        UNIT.validate_amount(999, min_amount=1_000)
    with pytest.raises(AmountValidationError):
        UNIT.validate_amount(10_001, max_amount=10_000)
    with pytest.raises(AmountValidationError):
        UNIT.validate_amount(-5)


def test_transfer_limits():
    assert UNIT.is_within_transfer_limits(1_000)
    assert UNIT.is_within_transfer_limits(100_000_000_000)
    assert not UNIT.is_within_transfer_limits(999)
    assert not UNIT.is_within_transfer_limits(100_000_000_001)


def test_from_settings_uses_configured_denomination(test_settings):
    custom = test_settings.model_copy(
        update={"atomic_units_per_token": 100, "token_decimals": 2, "token_symbol": "PTS"}
    )
    unit = AmountUnit.from_settings(custom)
    assert unit.to_atomic("1.25") == 125
    assert unit.format_amount(125) == "1.25 PTS"


def test_rate_and_split_helpers_floor():
    assert apply_rate(30_000, Decimal("0.03")) == 900
    assert apply_rate(333, Decimal("0.05")) == 16
    assert floor_divide(28_500, 2) == 14_250
    assert floor_divide(10, 3) == 3
    with pytest.raises(AmountValidationError):
        floor_divide(10, 0)
