"""Tests for price and amount arithmetic."""

from decimal import Decimal

import pytest

from colony_kernel.domain.pricing import (
    compute_total_price,
    remaining_amount,
    require_measure,
    require_non_negative,
    require_positive,
    to_decimal,
)
from colony_kernel.exceptions import ValidationError


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1, "area") == Decimal("0.1")

    def test_string_with_whitespace(self):
        assert to_decimal(" 250.5 ", "area") == Decimal("250.5")

    @pytest.mark.parametrize("value", [None, True, "abc", "", "NaN", "Infinity"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError) as exc_info:
            to_decimal(value, "price_per_sqft")
        assert exc_info.value.field == "price_per_sqft"


class TestBounds:

    def test_positive_rejects_zero(self):
        with pytest.raises(ValidationError, match="greater than zero"):
            require_positive(0, "area")

    def test_non_negative_accepts_zero(self):
        assert require_non_negative("0", "advance_amount") == Decimal("0")

    def test_non_negative_rejects_negative(self):
        with pytest.raises(ValidationError, match="must not be negative"):
            require_non_negative("-1", "advance_amount")


class TestTotals:

    def test_total_price_is_exact_product(self):
        assert compute_total_price(Decimal("1000"), Decimal("500")) == Decimal("500000")

    def test_total_price_fractional(self):
        assert compute_total_price(Decimal("1234.5"), Decimal("321.75")) == Decimal("397200.375")

    def test_total_price_requires_positive_factors(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_total_price(Decimal("0"), Decimal("500"))
        assert exc_info.value.field == "area"

    def test_remaining_amount(self):
        assert remaining_amount(Decimal("500000"), Decimal("50000")) == Decimal("450000")


class TestMeasures:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("987.654321", Decimal("987.6543")),
            ("987.65435", Decimal("987.6544")),
            ("1234.5678", Decimal("1234.5678")),
            (1000, Decimal("1000.0000")),
            ("0.00005", Decimal("0.0001")),
        ],
    )
    def test_rounded_half_up_to_four_places(self, value, expected):
        assert require_measure(value, "area") == expected

    def test_rounds_to_zero_rejected(self):
        with pytest.raises(ValidationError, match="greater than zero"):
            require_measure("0.00004", "price_per_sqft")

    def test_too_many_digits(self):
        with pytest.raises(ValidationError, match="too many digits") as exc_info:
            require_measure("1e30", "area")
        assert exc_info.value.field == "area"

    def test_total_of_fine_measures_is_product_of_rounded(self):
        total = compute_total_price(Decimal("1234.5678"), Decimal("987.654321"))
        assert total == Decimal("1234.5678") * Decimal("987.6543")
        assert total.as_tuple().exponent == -8
