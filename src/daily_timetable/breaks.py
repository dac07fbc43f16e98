from __future__ import annotations

from datetime import timedelta
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG, BreakPolicy, SchedulerConfig
from .days import overlaps
from .models import BlockType, Priority, Task, TimeBlock

EXTENDED_BREAK = "Extended Break"
REST_BREAK = "Rest Break"
SHORT_BREAK = "Short Break"

_DESCRIPTIONS = {
    EXTENDED_BREAK: "Extended rest for wellbeing",
    REST_BREAK: "Recovery from intensive work",
    SHORT_BREAK: "Quick refresh",
}


def _duration(block: TimeBlock) -> int:
    return block.task.duration if block.task is not None else 0


def is_intensive(task: Optional[Task], policy: BreakPolicy) -> bool:
    if task is None:
        return False
    return task.priority == Priority.HIGH or task.duration >= policy.intensive_duration


def insert_breaks(
    timetable: Sequence[TimeBlock], *, config: SchedulerConfig = DEFAULT_CONFIG
) -> list[TimeBlock]:
    """
    Look at consecutive task blocks and drop a break into the gap between them when:
    - the earlier task was long enough for a short break, or
    - continuous work reached the limit and the gap fits a long break, or
    - both neighbours are intensive (high priority or long).
    A break starts right where the earlier task ends and must end before the next one;
    one that would run into any other block is skipped.
    """
    policy = config.breaks
    task_blocks = sorted(
        (b for b in timetable if b.type == BlockType.TASK), key=lambda b: b.start_time
    )

    added: list[TimeBlock] = []
    continuous = 0
    for cur, nxt in zip(task_blocks, task_blocks[1:]):
        duration = _duration(cur)
        continuous += duration
        gap = (nxt.start_time - cur.end_time).total_seconds() / 60

        short = duration >= policy.short_break_min_task and gap >= policy.short_minutes
        long = continuous >= policy.max_continuous_work and gap >= policy.long_minutes
        rest = (
            is_intensive(cur.task, policy)
            and is_intensive(nxt.task, policy)
            and gap >= policy.short_minutes
        )

        if long or rest or short:
            if long:
                title, minutes = EXTENDED_BREAK, policy.long_minutes
            elif rest:
                title, minutes = REST_BREAK, policy.short_minutes
            else:
                title, minutes = SHORT_BREAK, policy.short_minutes

            start = cur.end_time
            end = start + timedelta(minutes=minutes)
            fits = end <= nxt.start_time and not any(
                overlaps(start, end, b.start_time, b.end_time) for b in timetable
            )
            if fits:
                added.append(
                    TimeBlock(
                        id=f"break-{cur.id}-{nxt.id}",
                        type=BlockType.BREAK,
                        start_time=start,
                        end_time=end,
                        title=title,
                        description=_DESCRIPTIONS[title],
                    )
                )
                if long:
                    continuous = 0

        if gap >= policy.natural_reset_gap:
            continuous = 0

    return [*timetable, *added]
