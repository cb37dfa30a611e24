# Overview: Pytest coverage for money parsing, rounding and formatting.

from decimal import Decimal

import pytest

from ledger.errors import InvalidAmount
from ledger.money import (
    MAX_AMOUNT,
    MoneyType,
    ZERO,
    format_money,
    from_cents,
    money_sum,
    to_cents,
    to_money,
    to_positive_money,
)


class TestToMoney:
    def test_quantizes_to_two_places(self):
        assert to_money("10") == Decimal("10.00")
        assert to_money(Decimal("1.005")) == Decimal("1.01")

    def test_rounds_half_up(self):
        assert to_money("2.345") == Decimal("2.35")
        assert to_money("-2.345") == Decimal("-2.35")
        assert to_money("2.344") == Decimal("2.34")

    def test_float_goes_through_string(self):
        assert to_money(0.1) == Decimal("0.10")
        assert to_money(0.1) + to_money(0.2) == Decimal("0.30")

    @pytest.mark.parametrize(
        "bad",
        [None, True, "abc", "", "NaN", "Infinity", [1], "1" + "0" * 28, "-1e40", Decimal("1E+100"), "10000000000000000"],
    )
    def test_rejects_non_numbers(self, bad):
        with pytest.raises(InvalidAmount):
            to_money(bad)

    def test_error_names_the_field(self):
        with pytest.raises(InvalidAmount) as exc:
            to_money("x", field="credit_limit")
        assert exc.value.details["field"] == "credit_limit"

    def test_maximum_amount_is_accepted(self):
        assert to_money(MAX_AMOUNT) == MAX_AMOUNT
        assert to_money(-MAX_AMOUNT) == -MAX_AMOUNT
        assert to_cents(MAX_AMOUNT) < 2 ** 63

    def test_oversized_amount_names_field_and_maximum(self):
        with pytest.raises(InvalidAmount) as exc:
            to_money("1" + "0" * 28, field="total_due")
        assert exc.value.details["field"] == "total_due"
        assert exc.value.details["maximum"] == MAX_AMOUNT

    def test_rounding_past_the_maximum_is_rejected(self):
        with pytest.raises(InvalidAmount):
            to_money("9999999999999999.995")

    def test_positive_money_rejects_zero_and_negative(self):
        with pytest.raises(InvalidAmount):
            to_positive_money("0")
        with pytest.raises(InvalidAmount):
            to_positive_money("-5")
        assert to_positive_money("5") == Decimal("5.00")


class TestHelpers:
    def test_money_sum(self):
        assert money_sum(["0.10", "0.20", Decimal("0.30")]) == Decimal("0.60")
        assert money_sum([]) == ZERO

    def test_format_money(self):
        assert format_money(Decimal("1234.5")) == "$1,234.50"
        assert format_money(Decimal("-20")) == "-$20.00"
        assert format_money(ZERO) == "$0.00"

    def test_cents_conversion(self):
        assert to_cents("12.34") == 1234
        assert to_cents("-0.01") == -1
        assert from_cents(1234) == Decimal("12.34")
        assert from_cents(-5) == Decimal("-0.05")


class TestMoneyType:
    def test_binds_as_cents_and_reads_back_decimal(self):
        column_type = MoneyType()
        assert column_type.process_bind_param(Decimal("99.99"), None) == 9999
        assert column_type.process_result_value(9999, None) == Decimal("99.99")

    def test_none_passes_through(self):
        column_type = MoneyType()
        assert column_type.process_bind_param(None, None) is None
        assert column_type.process_result_value(None, None) is None
