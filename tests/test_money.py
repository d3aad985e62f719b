"""Tests for the money helpers."""
from datetime import datetime
from decimal import Decimal

import pytest
from moneyed import Money

from emasjid_billing.utils.money import (
    create_money,
    currency_precision,
    floor_money,
    month_key,
    round_money,
    to_money,
)


def test_create_money_uses_configured_currency():
    money = create_money("49.90")
    assert isinstance(money, Money)
    assert money.currency.code == "MYR"
    assert money.amount == Decimal("49.90")


def test_currency_code_is_case_insensitive():
    assert create_money(10, "jpy").currency.code == "JPY"


def test_unknown_currency_is_rejected():
    with pytest.raises(ValueError) as exc_info:
        create_money(10, "XXZ")
    assert "Invalid currency code" in str(exc_info.value)


@pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity", ""])
def test_invalid_amounts_are_rejected(amount):
    with pytest.raises(ValueError):
        create_money(amount)


def test_precision_follows_the_currency():
    assert currency_precision("MYR") == 2
    assert currency_precision("JPY") == 0


def test_round_money_half_up_to_minor_unit():
    assert round_money(create_money("10.005")).amount == Decimal("10.01")
    assert round_money(create_money("1234.5", "JPY")).amount == Decimal("1235")


def test_floor_money_never_rounds_up():
    assert floor_money(create_money("33.339")).amount == Decimal("33.33")
    assert floor_money(create_money("0.009")).amount == Decimal("0.00")


def test_to_money_returns_a_rounded_decimal():
    assert to_money(30) == Decimal("30.00")
    assert to_money(0.1) == Decimal("0.10")
    assert to_money("99.995") == Decimal("100.00")


def test_month_key():
    assert month_key(datetime(2025, 3, 1)) == "2025-03"
