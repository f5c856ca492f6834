"""Date parsing utilities."""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

EXCEL_EPOCH = date(1899, 12, 30)

SUPPORTED_PERIODS = (
    "this-month",
    "next-month",
    "last-month",
    "this-year",
    "next-30-days",
    "next-90-days",
)


def parse_date(value: str | date | datetime | int | float, dayfirst: bool = True,
               today: Optional[date] = None) -> date:
    """Parse a statement or CLI date value into a date object.

    Supports:
    - date/datetime objects (as returned by spreadsheet readers)
    - Excel serial numbers (e.g. 45306)
    - Absolute dates: "15/01/2024", "2024-01-15", "20240115", "15 Jan 2024"
    - Relative dates: "today", "yesterday", "tomorrow"

    Day-first is the default because Spanish banks export DD/MM/YYYY.
    ISO dates are always read year-month-day.

    Args:
        value: Date value
        dayfirst: Interpret ambiguous numeric dates as day-first
        today: Reference date for relative values (defaults to date.today())

    Returns:
        Date object

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 20000 < value < 80000:
            return EXCEL_EPOCH + timedelta(days=int(value))
        value = str(int(value))

    if value is None:
        raise ValueError("Empty date string")
    date_str = str(value).strip().lower()
    if not date_str:
        raise ValueError("Empty date string")

    today = today or date.today()
    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "tomorrow": today + timedelta(days=1),
    }
    if date_str in relative_dates:
        return relative_dates[date_str]

    if len(date_str) == 8 and date_str.isdigit():
        # OFX style YYYYMMDD
        try:
            return datetime.strptime(date_str, "%Y%m%d").date()
        except ValueError:
            pass

    iso_like = len(date_str) >= 8 and date_str[:4].isdigit() and date_str[4] in "-/"
    try:
        dt = date_parser.parse(date_str, dayfirst=dayfirst and not iso_like)
        return dt.date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{value}': {e}")


def month_end(day: date) -> date:
    """Return the last day of the month containing day."""
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def get_date_range(period: str, today: Optional[date] = None) -> tuple[date, date]:
    """Get start and end dates for a projection period.

    Periods are whole calendar ranges, including days still in the future,
    since projections look ahead.

    Args:
        period: One of SUPPORTED_PERIODS
        today: Reference date (defaults to date.today())

    Returns:
        Tuple of (start_date, end_date)

    Raises:
        ValueError: If period string is not recognized
    """
    period = period.strip().lower()
    today = today or date.today()

    if period == "this-month":
        return (today.replace(day=1), month_end(today))

    elif period == "next-month":
        start_date = (today + relativedelta(months=1)).replace(day=1)
        return (start_date, month_end(start_date))

    elif period == "last-month":
        start_date = (today - relativedelta(months=1)).replace(day=1)
        return (start_date, month_end(start_date))

    elif period == "this-year":
        return (today.replace(month=1, day=1), today.replace(month=12, day=31))

    elif period == "next-30-days":
        return (today, today + timedelta(days=29))

    elif period == "next-90-days":
        return (today, today + timedelta(days=89))

    else:
        raise ValueError(
            f"Unknown period: '{period}'. Supported periods: {', '.join(SUPPORTED_PERIODS)}"
        )
