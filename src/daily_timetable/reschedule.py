from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG, SchedulerConfig
from .days import as_day, at, overlaps
from .models import Task, TimeBlock

log = logging.getLogger("daily_timetable.reschedule")


class MoveRefusal(StrEnum):
    COMPLETED = "completed"
    IN_PAST = "in_past"
    BEFORE_DAY_START = "before_day_start"
    AFTER_DAY_END = "after_day_end"


def check_move(
    task: Task,
    *,
    new_start: datetime,
    now: datetime,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> Optional[MoveRefusal]:
    """
    Caller-side checks before `reschedule_task`: the moved task must be open,
    start after `now` and fit inside the working hours of its day.
    Returns None when the move may go ahead.
    """
    if task.completed:
        return MoveRefusal.COMPLETED
    if new_start <= now:
        return MoveRefusal.IN_PAST
    day = as_day(new_start)
    if new_start < at(day, config.day_start):
        return MoveRefusal.BEFORE_DAY_START
    if new_start + timedelta(minutes=task.duration) > at(day, config.day_end):
        return MoveRefusal.AFTER_DAY_END
    return None


def _find_task_block(
    timetable: Sequence[TimeBlock], task_id: int
) -> Optional[tuple[int, TimeBlock, Task]]:
    for i, block in enumerate(timetable):
        if block.task is not None and block.task.id == task_id:
            return i, block, block.task
    return None


def reschedule_task(
    *, task_id: int, new_start: datetime, timetable: Sequence[TimeBlock]
) -> Sequence[TimeBlock]:
    """
    Move one task block to `new_start`, keeping its duration.
    Returns the very same `timetable` object when the task isn't there or the new
    interval collides with any other block; otherwise a new list where only that
    block (and its task snapshot) changed. Allocation and breaks are not re-run.
    """
    found = _find_task_block(timetable, task_id)
    if found is None:
        log.debug("reschedule: task %s not in timetable", task_id)
        return timetable

    index, block, task = found
    new_end = new_start + timedelta(minutes=task.duration)

    for i, other in enumerate(timetable):
        if i != index and overlaps(new_start, new_end, other.start_time, other.end_time):
            log.debug("reschedule: task %s collides with %s", task_id, other.id)
            return timetable

    updated = list(timetable)
    updated[index] = replace(
        block,
        start_time=new_start,
        end_time=new_end,
        task=replace(task, scheduled_time=new_start),
    )
    return updated
