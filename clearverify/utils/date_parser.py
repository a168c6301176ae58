"""Date parsing utilities for payer payloads."""

from __future__ import annotations

from datetime import date, datetime

# Coverage periods outside these years are treated as garbage
MIN_VALID_YEAR = 1900
MAX_VALID_YEAR = 2100

_FORMATS = (
    "%Y-%m-%d",  # ISO 8601 / FHIR date
    "%Y%m%d",  # X12 D8
    "%m/%d/%Y",  # vendor REST payloads
)


def parse_flexible_date(date_str: str | None) -> date | None:
    """Parse a date from the formats payers actually send.

    FHIR dateTime values are accepted by dropping the time part. Impossible
    calendar dates and years outside 1900-2100 yield None.

    Examples:
        >>> parse_flexible_date("2024-01-15T08:30:00Z")
        datetime.date(2024, 1, 15)
        >>> parse_flexible_date("20240115")
        datetime.date(2024, 1, 15)
        >>> parse_flexible_date("2024-02-30")
    """
    if not date_str:
        return None

    value = str(date_str).strip().split("T", 1)[0]

    for fmt in _FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if MIN_VALID_YEAR <= parsed.year <= MAX_VALID_YEAR:
            return parsed.date()

    return None


def parse_date_range(range_str: str | None) -> tuple[date | None, date | None]:
    """Parse an X12 RD8 range (CCYYMMDD-CCYYMMDD) into start and end dates."""
    if not range_str:
        return None, None
    start, _, end = range_str.partition("-")
    return parse_flexible_date(start), parse_flexible_date(end)
