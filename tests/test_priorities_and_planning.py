from __future__ import annotations

from datetime import date, datetime, time, timedelta

from conftest import NOW, make_block, make_task

from daily_timetable.availability import build_busy_intervals
from daily_timetable.config import BreakPolicy, SchedulerConfig, ScoringPolicy
from daily_timetable.models import BlockType, Category, Priority
from daily_timetable.planner import place_tasks, working_window
from daily_timetable.prioritizer import Prioritizer, order_tasks

TOMORROW = date(2026, 1, 15)


def test_score_combines_urgency_priority_category_and_length() -> None:
    pr = Prioritizer()
    urgent = make_task(1, deadline=datetime(2026, 1, 14, 18, 0), priority=Priority.HIGH)
    assert pr.score(urgent, NOW) == 80 + 40 + 15

    two_days = make_task(
        2, deadline=datetime(2026, 1, 15, 14, 0), category=Category.STUDY, duration=150
    )
    assert pr.score(two_days, NOW) == 60 + 25 + 12 - 10

    this_week = make_task(
        3,
        deadline=datetime(2026, 1, 18, 12, 0),
        priority=Priority.LOW,
        category=Category.LEISURE,
        duration=200,
    )
    assert pr.score(this_week, NOW) == 40 + 10 + 8 - 15

    far = make_task(4, deadline=datetime(2026, 2, 14, 8, 0))
    assert pr.score(far, NOW) == 15 + 25 + 15


def test_overdue_task_gets_top_urgency() -> None:
    overdue = make_task(1, deadline=datetime(2026, 1, 10, 8, 0))
    assert Prioritizer().deadline_urgency(overdue, NOW) == 80


def test_order_is_descending_and_stable() -> None:
    a = make_task(1, priority=Priority.LOW)
    b = make_task(2, priority=Priority.HIGH)
    c = make_task(3, priority=Priority.LOW)
    d = make_task(4, priority=Priority.HIGH)
    assert [t.id for t in order_tasks([a, b, c, d], now=NOW)] == [2, 4, 1, 3]


def test_scoring_policy_is_tunable() -> None:
    leisure = make_task(1, category=Category.LEISURE)
    work = make_task(2, category=Category.WORK)
    policy = ScoringPolicy(category_weights={Category.WORK: 0, Category.STUDY: 0, Category.LEISURE: 50})
    assert [t.id for t in order_tasks([work, leisure], now=NOW)] == [2, 1]
    assert [t.id for t in order_tasks([work, leisure], now=NOW, policy=policy)] == [1, 2]


def test_window_for_today_starts_after_now() -> None:
    start, end = working_window(day=date(2026, 1, 14), now=datetime(2026, 1, 14, 10, 7))
    assert start == datetime(2026, 1, 14, 10, 30)
    assert end == datetime(2026, 1, 14, 23, 0)

    early, _ = working_window(day=date(2026, 1, 14), now=datetime(2026, 1, 14, 5, 0))
    assert early == datetime(2026, 1, 14, 6, 0)

    future, _ = working_window(day=TOMORROW, now=datetime(2026, 1, 14, 10, 7))
    assert future == datetime(2026, 1, 15, 6, 0)


def test_tasks_are_placed_back_to_back_from_day_start() -> None:
    tasks = [make_task(1, duration=60), make_task(2, duration=20), make_task(3, duration=30)]
    out = place_tasks(timetable=[], tasks=tasks, day=TOMORROW, now=NOW)
    starts = [(b.task_id, b.start_time.strftime("%H:%M"), b.end_time.strftime("%H:%M")) for b in out]
    # a 20 minute task still occupies its last granule
    assert starts == [(1, "06:00", "07:00"), (2, "07:00", "07:20"), (3, "07:30", "08:00")]
    assert all(b.type == BlockType.TASK for b in out)
    assert out[0].task is not None and out[0].task.scheduled_time == datetime(2026, 1, 15, 6, 0)
    assert out[0].id == "task-1-2026-01-15"


def test_placement_skips_busy_time_and_keeps_input_untouched() -> None:
    block = make_block(start=datetime(2026, 1, 15, 6, 0), end=datetime(2026, 1, 15, 9, 10))
    busy = build_busy_intervals(day=TOMORROW, tasks=[], unavailable_blocks=[block], now=NOW)
    out = place_tasks(timetable=busy, tasks=[make_task(1, duration=45)], day=TOMORROW, now=NOW)
    assert len(busy) == 1
    assert out[0] is busy[0]
    assert out[1].start_time == datetime(2026, 1, 15, 9, 15)


def test_task_may_end_exactly_at_day_end() -> None:
    block = make_block(start=datetime(2026, 1, 15, 6, 0), end=datetime(2026, 1, 15, 22, 0))
    busy = build_busy_intervals(day=TOMORROW, tasks=[], unavailable_blocks=[block], now=NOW)
    out = place_tasks(timetable=busy, tasks=[make_task(1, duration=60)], day=TOMORROW, now=NOW)
    assert out[-1].start_time == datetime(2026, 1, 15, 22, 0)
    assert out[-1].end_time == datetime(2026, 1, 15, 23, 0)


def test_task_that_does_not_fit_is_left_out() -> None:
    block = make_block(start=datetime(2026, 1, 15, 6, 0), end=datetime(2026, 1, 15, 22, 30))
    busy = build_busy_intervals(day=TOMORROW, tasks=[], unavailable_blocks=[block], now=NOW)
    tasks = [make_task(1, duration=60), make_task(2, duration=30)]
    out = place_tasks(timetable=busy, tasks=tasks, day=TOMORROW, now=NOW)
    assert [b.task_id for b in out if b.type == BlockType.TASK] == [2]


def test_ninety_minutes_of_work_forces_a_gap() -> None:
    tasks = [make_task(1, duration=60), make_task(2, duration=30), make_task(3, duration=30)]
    out = place_tasks(timetable=[], tasks=tasks, day=TOMORROW, now=NOW)
    assert [b.start_time.strftime("%H:%M") for b in out] == ["06:00", "07:00", "07:45"]


def test_two_hours_of_work_forces_a_longer_gap() -> None:
    config = SchedulerConfig(breaks=BreakPolicy(max_continuous_work=120, long_break_after=120))
    tasks = [make_task(1, duration=60), make_task(2, duration=60), make_task(3, duration=30)]
    out = place_tasks(timetable=[], tasks=tasks, day=TOMORROW, now=NOW, config=config)
    assert [b.start_time.strftime("%H:%M") for b in out] == ["06:00", "07:00", "08:30"]
    # 30 minutes after the second task, not the 15 a shorter streak gets
    assert out[2].start_time - out[1].end_time == timedelta(minutes=30)


def test_custom_working_hours() -> None:
    config = SchedulerConfig(day_start=time(9, 0), day_end=time(10, 0))
    tasks = [make_task(1, duration=45), make_task(2, duration=30)]
    out = place_tasks(timetable=[], tasks=tasks, day=TOMORROW, now=NOW, config=config)
    assert [b.task_id for b in out] == [1]
    assert out[0].start_time == datetime(2026, 1, 15, 9, 0)
