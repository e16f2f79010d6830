from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

DAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")
PLANNED_MEAL_TYPES = ("BREAKFAST", "LUNCH", "DINNER")

DateLike = Union[date, datetime]


def _as_midnight(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return datetime.combine(value.date(), time.min)
    return datetime.combine(value, time.min)


def parse_week_start(value: str) -> datetime:
    """Parse an ISO-8601 date or date-time into a naive UTC datetime.

    Browsers send ``2025-01-06T00:00:00.000Z``; plain ``2025-01-06`` works too.
    """
    text = (value or "").strip()
    if not text:
        raise ValueError("Date is required")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def week_window(week_start: DateLike) -> tuple[datetime, datetime]:
    start = _as_midnight(week_start)
    return start, start + timedelta(days=7)


def week_start_for(moment: DateLike) -> datetime:
    start = _as_midnight(moment)
    return start - timedelta(days=start.weekday())


def monday_first_index(native_dow: int) -> int:
    """Map a Sunday=0 weekday number onto Monday=0 .. Sunday=6."""
    return (native_dow + 6) % 7


def day_index(moment: DateLike, week_start: DateLike) -> Optional[int]:
    start, end = week_window(week_start)
    point = moment if isinstance(moment, datetime) else _as_midnight(moment)
    if point < start or point >= end:
        return None
    return (point.date() - start.date()).days


def day_date(week_start: DateLike, day: str) -> datetime:
    start, _ = week_window(week_start)
    return start + timedelta(days=DAYS.index(day))
