"""Tests for statement date and amount parsing."""

from datetime import date

import pytest

from ledgersync.domain.money import Money
from ledgersync.utils import parse_amount, parse_date, parse_optional_amount


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-01-15", date(2024, 1, 15)),
        ("01/15/2024", date(2024, 1, 15)),
        ("1/5/24", date(2024, 1, 5)),
        ("15.01.2024", date(2024, 1, 15)),
        ("Jan 15, 2024", date(2024, 1, 15)),
        ("15 Jan 2024", date(2024, 1, 15)),
        ("January 15, 2024", date(2024, 1, 15)),
    ],
)
def test_parse_date_formats(value, expected):
    """Common bank date formats are recognised."""
    assert parse_date(value) == expected


def test_parse_date_slash_is_month_first():
    """Ambiguous slash dates are read month first."""
    assert parse_date("02/03/2024") == date(2024, 2, 3)


@pytest.mark.parametrize("value", ["", "   ", "garbage"])
def test_parse_date_invalid(value):
    with pytest.raises(ValueError):
        parse_date(value)


@pytest.mark.parametrize(
    "value,cents",
    [
        ("123.45", 12345),
        ("$123.45", 12345),
        ("-123.45", -12345),
        ("-$123.45", -12345),
        ("$-123.45", -12345),
        ("1,234.56", 123456),
        ("(123.45)", -12345),
        ("123.45-", -12345),
        ("€7", 700),
    ],
)
def test_parse_amount_formats(value, cents):
    """Bank amount notations parse to exact cents."""
    assert parse_amount(value) == Money(cents)


@pytest.mark.parametrize("value", ["", "abc", "NaN", "Infinity"])
def test_parse_amount_invalid(value):
    with pytest.raises(ValueError):
        parse_amount(value)


def test_parse_optional_amount_blank_is_zero():
    """Blank debit/credit cells mean zero."""
    assert parse_optional_amount("") == Money(0)
    assert parse_optional_amount("  ") == Money(0)
    assert parse_optional_amount("12.50") == Money(1250)
