from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import RangeError, ValidationError

DAY_START = time.min
# Windows close on the last whole millisecond of the day.
DAY_END = time(23, 59, 59, 999000)

TREND_MONTHS = 12
MIN_YEAR = 2000
MAX_YEAR = 2100


@dataclass(frozen=True)
class Period:
    start: Optional[datetime]
    end: Optional[datetime]

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True

    def as_dict(self) -> dict[str, Optional[datetime]]:
        return {"startDate": self.start, "endDate": self.end}


def local_now() -> datetime:
    zone = ZoneInfo(get_settings().timezone)
    return datetime.now(zone).replace(tzinfo=None)


def to_local(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    zone = ZoneInfo(get_settings().timezone)
    return moment.astimezone(zone).replace(tzinfo=None)


def parse_bound(value: str, *, end_of_day: bool = False) -> datetime:
    """Parse an ISO-8601 date or timestamp into a naive server-local datetime.

    A bare date expands to the start of that day, or to its last millisecond
    when it closes a window.
    """
    text = value.strip()
    try:
        day = date.fromisoformat(text)
    except ValueError:
        pass
    else:
        return datetime.combine(day, DAY_END if end_of_day else DAY_START)
    try:
        return to_local(datetime.fromisoformat(text))
    except (ValueError, OverflowError) as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc


def _month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def _add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def _month_window(year: int, month: int) -> Period:
    return Period(
        datetime.combine(_month_start(year, month), DAY_START),
        datetime.combine(_month_end(year, month), DAY_END),
    )


def _checked(period: Period) -> Period:
    if period.start and period.end and period.start > period.end:
        raise ValidationError("Start date must be before end date")
    return period


def validate_month(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise RangeError("Month must be between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise RangeError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")


def month_period(month: int, year: int) -> Period:
    validate_month(month, year)
    return _month_window(year, month)


def current_month(now: Optional[datetime] = None) -> Period:
    now = now or local_now()
    return _month_window(now.year, now.month)


def resolve_period(
    start: Optional[str],
    end: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> Period:
    """Window for category breakdowns; defaults to the current month."""
    if not start and not end:
        return current_month(now)
    return _checked(
        Period(
            parse_bound(start) if start else None,
            parse_bound(end, end_of_day=True) if end else None,
        )
    )


def resolve_trend_period(
    start: Optional[str],
    end: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> Period:
    """Window for monthly trends; missing bounds fall back to a rolling year."""
    end_at = parse_bound(end, end_of_day=True) if end else (now or local_now())
    if start:
        start_at = parse_bound(start)
    else:
        try:
            first = _add_months(end_at.date(), -(TREND_MONTHS - 1))
        except ValueError as exc:
            raise ValidationError(
                f"Trend window starts before year {date.min.year}"
            ) from exc
        start_at = datetime.combine(first, DAY_START)
    return _checked(Period(start_at, end_at))


def resolve_filter_period(
    start: Optional[str], end: Optional[str]
) -> Optional[Period]:
    if not start and not end:
        return None
    return _checked(
        Period(
            parse_bound(start) if start else None,
            parse_bound(end, end_of_day=True) if end else None,
        )
    )
