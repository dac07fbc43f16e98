"""
Public entry points of the timetable engine.

Every function here is pure: it reads its arguments (tasks, unavailable blocks,
the day and a reference `now`) and returns fresh values. Nothing is cached between
calls and no clock is read, so the same inputs always give the same timetable.
Callers that persist results must write one result before computing the next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Sequence

from .availability import build_busy_intervals
from .breaks import insert_breaks
from .config import DEFAULT_CONFIG, SchedulerConfig
from .days import as_day, at, overlaps
from .eligibility import select_for_date
from .models import Task, TimeBlock, UnavailableBlock
from .planner import place_tasks
from .prioritizer import Prioritizer
from .recurrence import add_exception, occurrence_dates
from .reschedule import reschedule_task

log = logging.getLogger("daily_timetable.engine")

__all__ = [
    "BlockInsertion",
    "add_exception",
    "add_unavailable_block_and_reschedule",
    "generate_timetable",
    "reschedule_task",
]


@dataclass(frozen=True)
class BlockInsertion:
    updated_timetable: list[TimeBlock]
    rescheduled_count: int
    # input tasks with conflicting placements cleared; persist these
    tasks: list[Task]


def generate_timetable(
    *,
    day: date | datetime,
    tasks: Sequence[Task],
    unavailable_blocks: Sequence[UnavailableBlock],
    now: datetime,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> list[TimeBlock]:
    """Full timetable for one day, sorted by start time. Days before today are empty."""
    d = as_day(day)
    if d < as_day(now):
        return []

    busy = build_busy_intervals(day=d, tasks=tasks, unavailable_blocks=unavailable_blocks, now=now)
    eligible = select_for_date(day=d, tasks=tasks, now=now)
    ordered = Prioritizer(config.scoring).order(eligible, now)
    placed = place_tasks(timetable=busy, tasks=ordered, day=d, now=now, config=config)
    with_breaks = insert_breaks(placed, config=config)

    out = [b for b in with_breaks if b.task is None or not b.task.completed]
    out.sort(key=lambda b: b.start_time)
    log.debug(
        "timetable %s: %d fixed, %d eligible, %d placed",
        d,
        len(busy),
        len(eligible),
        len(placed) - len(busy),
    )
    return out


def _clear_conflicts(
    tasks: Sequence[Task], block: UnavailableBlock, days: Sequence[date]
) -> tuple[list[Task], int]:
    out: list[Task] = []
    cleared = 0
    for task in tasks:
        start, end = task.scheduled_time, task.scheduled_end
        if task.completed or start is None or end is None:
            out.append(task)
            continue

        hit = False
        for d in days:
            if as_day(start) != d:
                continue
            if block.recurring is None:
                b_start, b_end = block.start_time, block.end_time
            else:
                b_start, b_end = at(d, block.start_time), at(d, block.end_time)
            if overlaps(start, end, b_start, b_end):
                hit = True
                break

        if hit:
            out.append(replace(task, scheduled_time=None))
            cleared += 1
        else:
            out.append(task)
    return out, cleared


def add_unavailable_block_and_reschedule(
    *,
    block: UnavailableBlock,
    tasks: Sequence[Task],
    unavailable_blocks: Sequence[UnavailableBlock],
    target_day: date | datetime,
    now: datetime,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> BlockInsertion:
    """
    Simulate adding `block`: every placement it collides with (within its recurrence
    lookahead) loses its scheduled time, then `target_day` is regenerated with the
    block in place. Neither input sequence is modified.
    """
    days = occurrence_dates(block, start_day=target_day, today=now)
    cleared_tasks, count = _clear_conflicts(tasks, block, days)
    if count:
        log.debug("block %s clears %d placement(s) over %d day(s)", block.id, count, len(days))

    timetable = generate_timetable(
        day=target_day,
        tasks=cleared_tasks,
        unavailable_blocks=[*unavailable_blocks, block],
        now=now,
        config=config,
    )
    return BlockInsertion(updated_timetable=timetable, rescheduled_count=count, tasks=cleared_tasks)
