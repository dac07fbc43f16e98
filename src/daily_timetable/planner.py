from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from .availability import describe_task
from .config import DEFAULT_CONFIG, SchedulerConfig
from .days import as_day, at, ceil_to_granule, day_key, overlaps
from .models import BlockType, Task, TimeBlock

log = logging.getLogger("daily_timetable.planner")


@dataclass
class Granule:
    start: datetime
    end: datetime
    available: bool = True


def working_window(
    *, day: date, now: datetime, config: SchedulerConfig = DEFAULT_CONFIG
) -> tuple[datetime, datetime]:
    """
    [start, end) of the day's working hours. For today the start moves to
    now + lead, rounded up to the next granule boundary.
    """
    start = at(day, config.day_start)
    end = at(day, config.day_end)
    if day == as_day(now) and now > start:
        start = ceil_to_granule(now + timedelta(minutes=config.lead_minutes), config.granule_minutes)
    return start, end


def _granules(start: datetime, end: datetime, minutes: int) -> list[Granule]:
    step = timedelta(minutes=minutes)
    out: list[Granule] = []
    cur = start
    while cur + step <= end:
        out.append(Granule(start=cur, end=cur + step))
        cur += step
    return out


def find_slot(
    *,
    timetable: Sequence[TimeBlock],
    duration: int,
    day: date,
    now: datetime,
    last_task_end: Optional[datetime] = None,
    continuous_work: int = 0,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> Optional[tuple[datetime, datetime]]:
    """Earliest [start, end) of `duration` minutes that fits between existing blocks."""
    window_start, day_end = working_window(day=day, now=now, config=config)
    granules = _granules(window_start, day_end, config.granule_minutes)

    for block in timetable:
        for g in granules:
            if g.available and overlaps(g.start, g.end, block.start_time, block.end_time):
                g.available = False

    needed = math.ceil(duration / config.granule_minutes)
    length = timedelta(minutes=duration)
    policy = config.breaks

    for i in range(len(granules) - needed + 1):
        run = granules[i : i + needed]
        if not all(g.available for g in run):
            continue
        start = run[0].start
        end = start + length
        if end > day_end:
            continue
        if any(overlaps(start, end, b.start_time, b.end_time) for b in timetable):
            continue

        if last_task_end is not None and continuous_work >= policy.max_continuous_work:
            rest = (
                policy.long_minutes
                if continuous_work >= policy.long_break_after
                else policy.short_minutes
            )
            if start - last_task_end < timedelta(minutes=rest):
                continue

        return start, end
    return None


def place_tasks(
    *,
    timetable: Sequence[TimeBlock],
    tasks: Sequence[Task],
    day: date | datetime,
    now: datetime,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> list[TimeBlock]:
    """
    Greedy planner:
    - Walk tasks in the given (priority) order
    - Put each one into the earliest free run of granules
    - A placed task is never moved to make room for a later one
    Tasks that don't fit are left out of the result.
    """
    d = as_day(day)
    out = list(timetable)
    last_end: Optional[datetime] = None
    continuous = 0

    for task in tasks:
        slot = find_slot(
            timetable=out,
            duration=task.duration,
            day=d,
            now=now,
            last_task_end=last_end,
            continuous_work=continuous,
            config=config,
        )
        if slot is None:
            log.debug("no slot for task %s (%sm) on %s", task.id, task.duration, d)
            continue

        start, end = slot
        out.append(
            TimeBlock(
                id=f"task-{task.id}-{day_key(d)}",
                type=BlockType.TASK,
                start_time=start,
                end_time=end,
                title=task.name,
                description=describe_task(task),
                task=replace(task, scheduled_time=start),
            )
        )
        last_end = end
        continuous += task.duration
        if continuous > config.breaks.max_continuous_work:
            continuous = 0
    return out
