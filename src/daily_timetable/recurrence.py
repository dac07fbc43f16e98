from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta

from .days import as_day, day_key
from .models import RecurrenceType, UnavailableBlock

DAILY_LOOKAHEAD_DAYS = 7
WEEKLY_LOOKAHEAD_WEEKS = 4


def applies(block: UnavailableBlock, day: date | datetime) -> bool:
    """Does the block occupy time on `day`?"""
    d = as_day(day)
    rule = block.recurring
    if rule is None:
        return as_day(block.start_time) == d

    if day_key(d) in rule.exceptions:
        return False
    if rule.type == RecurrenceType.DAILY:
        return True
    if rule.type == RecurrenceType.WEEKLY:
        return d.weekday() in rule.days
    return False


def add_exception(block: UnavailableBlock, day: date | datetime) -> UnavailableBlock:
    """
    Suppress a single occurrence of a recurring block.
    Non-recurring blocks and already excepted days come back as the same object.
    """
    rule = block.recurring
    if rule is None:
        return block
    key = day_key(day)
    if key in rule.exceptions:
        return block
    return replace(block, recurring=replace(rule, exceptions=(*rule.exceptions, key)))


def occurrence_dates(
    block: UnavailableBlock, *, start_day: date | datetime, today: date | datetime
) -> list[date]:
    """
    Days, from `start_day` on, where a newly added block may collide with existing
    placements: 7 days ahead for daily rules, 4 weeks of matching weekdays for weekly.
    Days before `today` are never returned.
    """
    start = as_day(start_day)
    floor = as_day(today)
    rule = block.recurring
    if rule is None:
        return [as_day(block.start_time)]

    candidates = {start}
    if rule.type == RecurrenceType.DAILY:
        candidates.update(start + timedelta(days=i) for i in range(1, DAILY_LOOKAHEAD_DAYS + 1))
    elif rule.type == RecurrenceType.WEEKLY:
        for week in range(WEEKLY_LOOKAHEAD_WEEKS):
            for weekday in rule.days:
                offset = (weekday - start.weekday()) % 7
                candidates.add(start + timedelta(days=week * 7 + offset))

    return sorted(d for d in candidates if d >= floor and applies(block, d))
