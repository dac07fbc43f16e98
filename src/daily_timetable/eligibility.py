from __future__ import annotations

from datetime import date, datetime
from typing import Sequence

from .availability import is_stale
from .days import as_day
from .models import Task


def needs_placement(task: Task, *, day: date, today: date, now: datetime) -> bool:
    if task.completed:
        return False
    if day < today:
        return False

    if task.scheduled_time is not None:
        placed_on = as_day(task.scheduled_time)
        if placed_on == day:
            # a still-valid placement stays where it is (it is busy time, not a candidate)
            return day == today and is_stale(task, now)
        # carry forward anything left behind on a past day
        return placed_on < today

    deadline_day = as_day(task.deadline)
    if deadline_day < today:
        # overdue and unplaced: always eligible so it keeps moving forward
        return True
    return deadline_day >= day


def select_for_date(*, day: date | datetime, tasks: Sequence[Task], now: datetime) -> list[Task]:
    """Tasks that must be (re)placed on `day`, in input order."""
    d = as_day(day)
    today = as_day(now)
    return [t for t in tasks if needs_placement(t, day=d, today=today, now=now)]
