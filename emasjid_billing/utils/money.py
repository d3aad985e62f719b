"""
Money helpers built on py-moneyed and Babel.

Amounts are held as Money in the configured currency and rounded to that
currency's minor unit as Babel reports it.
"""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

from babel.numbers import get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

from emasjid_billing.core.config import settings

Amount = Union[Decimal, int, float, str]


def resolve_currency(code: Optional[str] = None) -> Currency:
    code = code or settings.CURRENCY
    try:
        return get_currency(code.upper())
    except CurrencyDoesNotExist:
        raise ValueError(f"Invalid currency code: {code}")


def create_money(amount: Amount, currency: Optional[str] = None) -> Money:
    """Create a Money value; unparsable or non-finite amounts raise ValueError."""
    try:
        decimal_amount = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not decimal_amount.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    return Money(amount=decimal_amount, currency=resolve_currency(currency))


def currency_precision(code: str) -> int:
    return get_currency_precision(code.upper())


def round_money(money: Money, rounding: str = ROUND_HALF_UP) -> Money:
    """Round Money to its currency's minor unit."""
    precision = currency_precision(money.currency.code)
    rounded_amount = money.amount.quantize(Decimal("0.1") ** precision, rounding=rounding)
    return Money(amount=rounded_amount, currency=money.currency)


def floor_money(money: Money) -> Money:
    return round_money(money, rounding=ROUND_DOWN)


def to_money(value: Amount, currency: Optional[str] = None) -> Decimal:
    """Parse an amount and round it to the smallest currency unit."""
    return round_money(create_money(value, currency)).amount


def month_key(moment) -> str:
    return moment.strftime("%Y-%m")
