"""Date parsing utilities."""

from datetime import date, datetime

from dateutil import parser as date_parser

# Unambiguous and common US bank formats, tried before the generic parser
STATEMENT_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%d %b %Y",
)


def parse_date(date_str: str) -> date:
    """Parse a statement date string into a date object.

    Supports various formats:
    - ISO dates: "2024-01-15"
    - US dates: "01/15/2024", "1/15/24"
    - European dotted dates: "15.01.2024"
    - Named months: "Jan 15, 2024", "15 Jan 2024", "January 15, 2024"

    Slash dates are read month first, as US banks export them.

    Args:
        date_str: Date string

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Empty date string")

    date_str = date_str.strip()

    for fmt in STATEMENT_DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    # Try the generic parser last
    try:
        dt = date_parser.parse(date_str)
        return dt.date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}") from e
