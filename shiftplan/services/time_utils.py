from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from shiftplan.errors import ApiError

MINUTES_PER_DAY = 24 * 60


def fixed_offset(offset_minutes: int) -> timezone:
    return timezone(timedelta(minutes=offset_minutes))


def parse_hhmm(value: str) -> time:
    try:
        hour_str, minute_str = value.strip().split(":")
        if len(hour_str) != 2 or len(minute_str) != 2:
            raise ValueError
        hour = int(hour_str)
        minute = int(minute_str)
        if hour < 0 or hour > 23 or minute < 0 or minute > 59:
            raise ValueError
        return time(hour=hour, minute=minute)
    except ValueError as exc:
        raise ApiError(
            status_code=400,
            code="INVALID_TIME_FORMAT",
            message="Invalid time format. Use HH:mm.",
        ) from exc


def hhmm_to_minutes(value: str) -> int:
    parsed = parse_hhmm(value)
    return parsed.hour * 60 + parsed.minute


def local_datetime_to_instant(day: date, hhmm: str, offset_minutes: int) -> datetime:
    """Combine a local calendar date and ``HH:mm`` wall time into a UTC instant."""
    local_dt = datetime.combine(day, parse_hhmm(hhmm), tzinfo=fixed_offset(offset_minutes))
    return local_dt.astimezone(timezone.utc)


def local_midnight(day: date, offset_minutes: int) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=fixed_offset(offset_minutes)).astimezone(timezone.utc)


def normalize_instant(value: datetime, offset_minutes: int) -> datetime:
    # Naive input is local wall-clock time.
    if value.tzinfo is None:
        value = value.replace(tzinfo=fixed_offset(offset_minutes))
    return value.astimezone(timezone.utc)


def to_local(instant: datetime, offset_minutes: int) -> datetime:
    return normalize_instant(instant, offset_minutes).astimezone(fixed_offset(offset_minutes))


def minute_of_day(instant: datetime, offset_minutes: int) -> int:
    local_dt = to_local(instant, offset_minutes)
    return local_dt.hour * 60 + local_dt.minute


def local_date(instant: datetime, offset_minutes: int) -> date:
    return to_local(instant, offset_minutes).date()


def weekday_index(day: date) -> int:
    """Day of week with Sunday as 0 and Saturday as 6."""
    return (day.weekday() + 1) % 7


def local_weekday(instant: datetime, offset_minutes: int) -> int:
    return weekday_index(local_date(instant, offset_minutes))


def intervals_overlap(start_a, end_a, start_b, end_b) -> bool:  # type: ignore[no-untyped-def]
    """Half-open overlap test; intervals that only touch do not overlap."""
    return start_a < end_b and end_a > start_b


def plus_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def week_window(week_start: date, offset_minutes: int) -> tuple[datetime, datetime]:
    start = local_midnight(week_start, offset_minutes)
    return start, plus_days(start, 7)


def duration_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)
