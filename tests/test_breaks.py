from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from conftest import assert_no_overlaps, make_block, make_task

from daily_timetable.breaks import EXTENDED_BREAK, REST_BREAK, SHORT_BREAK, insert_breaks
from daily_timetable.models import BlockType, Priority, TimeBlock


def _placed(task_id: int, start: datetime, duration: int, priority: Priority = Priority.LOW) -> TimeBlock:
    task = replace(make_task(task_id, duration=duration, priority=priority), scheduled_time=start)
    return TimeBlock(
        id=f"task-{task_id}",
        type=BlockType.TASK,
        start_time=start,
        end_time=start + timedelta(minutes=duration),
        title=task.name,
        task=task,
    )


def _breaks(timetable: list[TimeBlock]) -> list[TimeBlock]:
    return [b for b in timetable if b.type == BlockType.BREAK]


def test_rest_break_between_two_intensive_tasks() -> None:
    first = _placed(1, datetime(2026, 1, 15, 9, 0), 90, Priority.HIGH)
    second = _placed(2, datetime(2026, 1, 15, 10, 50), 90, Priority.HIGH)
    out = insert_breaks([first, second])

    assert len(out) == 3
    (br,) = _breaks(out)
    assert br.title == REST_BREAK
    assert br.start_time == datetime(2026, 1, 15, 10, 30)
    assert br.end_time == datetime(2026, 1, 15, 10, 45)
    assert_no_overlaps(out)


def test_short_break_after_a_long_enough_task() -> None:
    first = _placed(1, datetime(2026, 1, 15, 9, 0), 45)
    second = _placed(2, datetime(2026, 1, 15, 10, 0), 30)
    (br,) = _breaks(insert_breaks([first, second]))
    assert br.title == SHORT_BREAK
    assert br.end_time - br.start_time == timedelta(minutes=15)


def test_extended_break_after_ninety_minutes_of_work() -> None:
    t1 = _placed(1, datetime(2026, 1, 15, 9, 0), 60)
    t2 = _placed(2, datetime(2026, 1, 15, 10, 0), 30)
    t3 = _placed(3, datetime(2026, 1, 15, 11, 0), 30)
    (br,) = _breaks(insert_breaks([t1, t2, t3]))
    assert br.title == EXTENDED_BREAK
    assert br.start_time == datetime(2026, 1, 15, 10, 30)
    assert br.end_time == datetime(2026, 1, 15, 11, 0)


def test_no_break_when_gap_is_too_small() -> None:
    first = _placed(1, datetime(2026, 1, 15, 9, 0), 90, Priority.HIGH)
    second = _placed(2, datetime(2026, 1, 15, 10, 40), 90, Priority.HIGH)
    assert _breaks(insert_breaks([first, second])) == []


def test_natural_gap_resets_continuous_work() -> None:
    t1 = _placed(1, datetime(2026, 1, 15, 9, 0), 60)
    t2 = _placed(2, datetime(2026, 1, 15, 11, 0), 30)
    t3 = _placed(3, datetime(2026, 1, 15, 12, 0), 30)
    breaks = _breaks(insert_breaks([t1, t2, t3]))
    assert [b.title for b in breaks] == [SHORT_BREAK]
    assert breaks[0].start_time == datetime(2026, 1, 15, 10, 0)


def test_break_never_runs_into_a_fixed_block() -> None:
    t1 = _placed(1, datetime(2026, 1, 15, 9, 0), 60)
    t2 = _placed(2, datetime(2026, 1, 15, 11, 0), 30)
    busy = make_block(start=datetime(2026, 1, 15, 10, 0), end=datetime(2026, 1, 15, 10, 30))
    fixed = TimeBlock(
        id="unavailable-1",
        type=BlockType.UNAVAILABLE,
        start_time=busy.start_time,
        end_time=busy.end_time,
        title=busy.title,
        is_fixed=True,
    )
    out = insert_breaks([t1, fixed, t2])
    assert _breaks(out) == []
    assert_no_overlaps(out)


def test_input_order_is_kept_and_breaks_are_appended() -> None:
    t2 = _placed(2, datetime(2026, 1, 15, 10, 0), 30)
    t1 = _placed(1, datetime(2026, 1, 15, 9, 0), 45)
    out = insert_breaks([t2, t1])
    assert out[:2] == [t2, t1]
    assert out[2].id == "break-task-1-task-2"
