"""Amount parsing utilities."""

import re
from decimal import Decimal, InvalidOperation

from ledgersync.domain.money import Money


def parse_amount(amount_str: str) -> Money:
    """Parse a bank statement amount into Money.

    Handles various formats:
    - "123.45"
    - "$123.45"
    - "-123.45"
    - "-$123.45"
    - "$-123.45"
    - "1,234.56"
    - "(123.45)" (negative in parentheses)
    - "123.45-" (trailing minus)

    Args:
        amount_str: Amount string

    Returns:
        Money amount rounded half-up to the cent

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    # Remove whitespace
    amount_str = amount_str.strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]
    elif amount_str.endswith("-"):
        is_negative = True
        amount_str = amount_str[:-1]

    # Remove currency symbols
    amount_str = re.sub(r"[$€£¥]", "", amount_str)

    # Remove commas
    amount_str = amount_str.replace(",", "")

    # Remove whitespace again
    amount_str = amount_str.strip()

    try:
        amount = Decimal(amount_str)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}'") from e

    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if is_negative:
        amount = -amount
    return Money.from_decimal(amount)


def parse_optional_amount(amount_str: str) -> Money:
    """Parse an amount where a blank cell means zero (debit/credit columns)."""
    if not amount_str or not amount_str.strip():
        return Money(0)
    return parse_amount(amount_str)
