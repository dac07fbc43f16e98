from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from daily_timetable.models import (
    Category,
    Priority,
    Recurrence,
    Task,
    UnavailableBlock,
)

# Wednesday
TODAY = date(2026, 1, 14)
NOW = datetime(2026, 1, 14, 8, 0)


def make_task(
    task_id: int = 1,
    *,
    name: Optional[str] = None,
    duration: int = 60,
    deadline: datetime = datetime(2026, 1, 20, 18, 0),
    priority: Priority = Priority.MEDIUM,
    category: Category = Category.WORK,
    completed: bool = False,
    scheduled_time: Optional[datetime] = None,
) -> Task:
    return Task(
        id=task_id,
        name=name or f"Task {task_id}",
        duration=duration,
        deadline=deadline,
        priority=priority,
        category=category,
        completed=completed,
        scheduled_time=scheduled_time,
        created_at=datetime(2026, 1, 10, 12, 0),
    )


def make_block(
    block_id: int = 1,
    *,
    start: datetime,
    end: datetime,
    title: str = "Busy",
    recurring: Optional[Recurrence] = None,
) -> UnavailableBlock:
    return UnavailableBlock(id=block_id, title=title, start_time=start, end_time=end, recurring=recurring)


def assert_no_overlaps(timetable) -> None:
    for i, a in enumerate(timetable):
        for b in timetable[i + 1 :]:
            assert not (a.start_time < b.end_time and a.end_time > b.start_time), (a.id, b.id)
