"""
Fiscal Calendar

Calendar-month periods ("YYYY-MM") and UK fiscal labels ("FY26/27",
"FY26/27-Q1"). The fiscal year runs April to March:

Q1 = Apr-Jun, Q2 = Jul-Sep, Q3 = Oct-Dec, Q4 = Jan-Mar (following calendar year)

These label shapes are persisted and exported; do not change them.
"""

import re
from datetime import date

from engines.exceptions import ParseError

FISCAL_YEAR_START_MONTH = 4

PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
FISCAL_YEAR_PATTERN = re.compile(r"^FY(\d{2})/(\d{2})$")
FISCAL_PERIOD_PATTERN = re.compile(r"^FY(\d{2})/(\d{2})-Q([1-4])$")

# Calendar month each fiscal quarter starts in, with the year offset from the
# fiscal year's start year.
QUARTER_START: dict[int, tuple[int, int]] = {
    1: (4, 0),
    2: (7, 0),
    3: (10, 0),
    4: (1, 1),
}

QUARTER_LABELS: dict[int, str] = {
    1: "Q1 (Apr-Jun)",
    2: "Q2 (Jul-Sep)",
    3: "Q3 (Oct-Dec)",
    4: "Q4 (Jan-Mar)",
}


def _add_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def period_of(value: date) -> str:
    """Calendar-month period label for a date, e.g. ``2026-05``."""
    return f"{value.year:04d}-{value.month:02d}"


def parse_period(period: str) -> tuple[int, int]:
    """Split a ``YYYY-MM`` label into ``(year, month)``."""
    match = PERIOD_PATTERN.fullmatch(period or "")
    if not match:
        raise ParseError(f"Invalid period format: {period!r} (expected YYYY-MM)")
    return int(match.group(1)), int(match.group(2))


def date_range_of(period: str) -> tuple[date, date]:
    """
    Half-open date range ``[start, end)`` covered by a monthly period.

    ``end`` is the first day of the following month.
    """
    year, month = parse_period(period)
    next_year, next_month = _add_months(year, month, 1)
    return date(year, month, 1), date(next_year, next_month, 1)


def _fiscal_start_year(value: date) -> int:
    return value.year if value.month >= FISCAL_YEAR_START_MONTH else value.year - 1


def _fy_label(start_year: int) -> str:
    return f"FY{start_year % 100:02d}/{(start_year + 1) % 100:02d}"


def fiscal_year_of(value: date) -> str:
    """
    Fiscal year label for a date.

    Jan-Mar belongs to the fiscal year that started the previous April,
    so both 2026-04-01 and 2027-03-31 map to ``FY26/27``.
    """
    return _fy_label(_fiscal_start_year(value))


def fiscal_quarter_of(value: date) -> int:
    """Fiscal quarter number (1-4) for a date."""
    offset = (value.month - FISCAL_YEAR_START_MONTH) % 12
    return offset // 3 + 1


def fiscal_period_of(value: date) -> str:
    """Fiscal quarter label for a date, e.g. ``FY26/27-Q1``."""
    return f"{fiscal_year_of(value)}-Q{fiscal_quarter_of(value)}"


def fiscal_year_start(fiscal_year: str) -> int:
    """Calendar year a fiscal year label starts in (``FY26/27`` -> 2026)."""
    match = FISCAL_YEAR_PATTERN.fullmatch(fiscal_year or "")
    if not match:
        raise ParseError(f"Invalid fiscal year format: {fiscal_year!r}")
    start, end = int(match.group(1)), int(match.group(2))
    if (start + 1) % 100 != end:
        raise ParseError(f"Fiscal year {fiscal_year!r} does not span consecutive years")
    return 2000 + start


def quarters_for_fiscal_year(fiscal_year: str) -> list[str]:
    """The four quarter labels of a fiscal year."""
    fiscal_year_start(fiscal_year)
    return [f"{fiscal_year}-Q{q}" for q in range(1, 5)]


def _parse_fiscal_period(fiscal_period: str) -> tuple[int, int]:
    match = FISCAL_PERIOD_PATTERN.fullmatch(fiscal_period or "")
    if not match:
        raise ParseError(f"Invalid fiscal period format: {fiscal_period!r}")
    start_year = fiscal_year_start(f"FY{match.group(1)}/{match.group(2)}")
    return start_year, int(match.group(3))


def quarter_date_range(fiscal_period: str) -> tuple[date, date]:
    """Half-open date range ``[start, end)`` of a fiscal quarter."""
    start_year, quarter = _parse_fiscal_period(fiscal_period)
    month, year_offset = QUARTER_START[quarter]
    year = start_year + year_offset
    end_year, end_month = _add_months(year, month, 3)
    return date(year, month, 1), date(end_year, end_month, 1)


def months_in_quarter(fiscal_period: str) -> list[str]:
    """
    Monthly periods contained in a fiscal quarter.

    ``months_in_quarter("FY26/27-Q1") == ["2026-04", "2026-05", "2026-06"]``
    """
    start, _ = quarter_date_range(fiscal_period)
    months = []
    for i in range(3):
        year, month = _add_months(start.year, start.month, i)
        months.append(f"{year:04d}-{month:02d}")
    return months


def quarter_label(quarter: int) -> str:
    """Human-readable label for a quarter number."""
    return QUARTER_LABELS.get(quarter, f"Q{quarter}")


def fiscal_year_options(count: int = 5, today: date | None = None) -> list[str]:
    """Fiscal years for selectors: the previous one, the current one, then future ones."""
    current = _fiscal_start_year(today or date.today())
    return [_fy_label(current + i) for i in range(-1, count - 1)]
