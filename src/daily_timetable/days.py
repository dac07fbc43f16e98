from __future__ import annotations

from datetime import date, datetime, time, timedelta


def as_day(value: date | datetime) -> date:
    """Calendar day of a date or timestamp; the one normalization used everywhere."""
    if isinstance(value, datetime):
        return value.date()
    return value


def day_key(value: date | datetime) -> str:
    return as_day(value).isoformat()


def at(day: date | datetime, clock: time | datetime) -> datetime:
    """Timestamp on `day` at the hour and minute of `clock`."""
    return datetime.combine(as_day(day), time(clock.hour, clock.minute))


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def ceil_to_granule(ts: datetime, minutes: int) -> datetime:
    """
    Drop seconds, then round up to the next multiple of `minutes` past the hour.
    10:07 -> 10:15, 10:15 -> 10:15, 10:52 -> 11:00.
    """
    base = ts.replace(second=0, microsecond=0)
    rem = base.minute % minutes
    if rem == 0:
        return base
    return base + timedelta(minutes=minutes - rem)
