from __future__ import annotations

from datetime import date, datetime
from typing import Sequence

from .days import as_day, at, day_key
from .models import BlockType, Task, TimeBlock, UnavailableBlock
from .recurrence import applies


def describe_task(task: Task) -> str:
    return f"{task.category} • {task.priority} priority • {task.duration}m"


def is_stale(task: Task, now: datetime) -> bool:
    """Placed for today at or before `now` and still not done."""
    if task.scheduled_time is None:
        return False
    return as_day(task.scheduled_time) == as_day(now) and task.scheduled_time <= now


def build_busy_intervals(
    *,
    day: date | datetime,
    tasks: Sequence[Task],
    unavailable_blocks: Sequence[UnavailableBlock],
    now: datetime,
) -> list[TimeBlock]:
    """
    Fixed time for `day`: every applicable unavailable block, then every incomplete
    task already placed on that day (except stale placements, which get re-placed).
    Overlaps among unavailable blocks are kept as given.
    """
    d = as_day(day)
    busy: list[TimeBlock] = []

    for block in unavailable_blocks:
        if not applies(block, d):
            continue
        busy.append(
            TimeBlock(
                id=f"unavailable-{block.id}-{day_key(d)}",
                type=BlockType.UNAVAILABLE,
                start_time=at(d, block.start_time),
                end_time=at(d, block.end_time),
                title=block.title,
                description=block.description,
                is_fixed=True,
            )
        )

    for task in tasks:
        start, end = task.scheduled_time, task.scheduled_end
        if task.completed or start is None or end is None:
            continue
        if as_day(start) != d:
            continue
        if is_stale(task, now):
            continue
        busy.append(
            TimeBlock(
                id=f"scheduled-{task.id}-{day_key(d)}",
                type=BlockType.TASK,
                start_time=start,
                end_time=end,
                title=task.name,
                description=describe_task(task),
                task=task,
            )
        )
    return busy
