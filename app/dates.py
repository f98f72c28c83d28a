import calendar
from datetime import date, datetime, timedelta
from typing import Optional

from .config import settings
from .errors import validation_failed


DAY_FORMAT = "%Y-%m-%d"
WEEKDAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def local_today() -> date:
    tz = settings.get_timezone()
    if tz is not None:
        return datetime.now(tz).date()
    return datetime.now().date()


def format_day(value: date) -> str:
    return value.strftime(DAY_FORMAT)


def today_str() -> str:
    return format_day(local_today())


def parse_day(raw: str) -> Optional[date]:
    try:
        return datetime.strptime(raw, DAY_FORMAT).date()
    except (TypeError, ValueError):
        return None


def parse_day_param(raw_date: Optional[str], field: str = "date") -> date:
    if raw_date is None:
        return local_today()
    parsed = parse_day(raw_date)
    if parsed is None:
        raise validation_failed(field, "must be YYYY-MM-DD")
    return parsed


def sunday_index(value: date) -> int:
    """Weekday index with Sunday as 0."""
    return (value.weekday() + 1) % 7


def week_days(anchor: date) -> list[date]:
    """Sunday..Saturday week containing ``anchor``."""
    start = anchor - timedelta(days=sunday_index(anchor))
    return [start + timedelta(days=offset) for offset in range(7)]


def month_days(anchor: date) -> list[date]:
    _, days_in_month = calendar.monthrange(anchor.year, anchor.month)
    return [date(anchor.year, anchor.month, day) for day in range(1, days_in_month + 1)]


def trailing_days(anchor: date, count: int) -> list[date]:
    """``count`` days ending at ``anchor``, oldest first."""
    return [anchor - timedelta(days=offset) for offset in range(count - 1, -1, -1)]
