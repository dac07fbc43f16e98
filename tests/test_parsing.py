from __future__ import annotations

from datetime import date, datetime, time

from daily_timetable.models import Category, Priority, RecurrenceType
from daily_timetable.parsing import parse_block_line, parse_clock, parse_day, parse_task_line

TODAY = date(2026, 10, 17)


def test_parse_task_line_full() -> None:
    p = parse_task_line("Отчёт 2h !high #study @2026-10-20 18:00", today=TODAY)
    assert p is not None
    assert p.name == "Отчёт"
    assert p.duration == 120
    assert p.priority == Priority.HIGH
    assert p.category == Category.STUDY
    assert p.deadline == datetime(2026, 10, 20, 18, 0)


def test_parse_task_line_deadline_time_only_means_today() -> None:
    p = parse_task_line("Почта 20m @17:00", today=TODAY)
    assert p is not None
    assert (p.name, p.duration, p.deadline) == ("Почта", 20, datetime(2026, 10, 17, 17, 0))
    assert p.priority == Priority.MEDIUM
    assert p.category == Category.WORK


def test_parse_task_line_defaults() -> None:
    p = parse_task_line("Прочитать статью", today=TODAY)
    assert p is not None
    assert p.duration == 30
    assert p.deadline == datetime(2026, 10, 17, 23, 59)


def test_parse_task_line_rejects_garbage() -> None:
    assert parse_task_line("   ", today=TODAY) is None
    assert parse_task_line("2h !high", today=TODAY) is None
    assert parse_task_line("Звонок @25:00", today=TODAY) is None


def test_parse_block_line_recurrence() -> None:
    daily = parse_block_line("Спортзал 18:00-19:30 daily")
    assert daily is not None
    assert daily.title == "Спортзал"
    assert (daily.start, daily.end) == (time(18, 0), time(19, 30))
    assert daily.recurring is not None and daily.recurring.type == RecurrenceType.DAILY

    weekly = parse_block_line("Пары 09:00-12:00 weekly mon,wed,пт")
    assert weekly is not None and weekly.recurring is not None
    assert weekly.recurring.type == RecurrenceType.WEEKLY
    assert weekly.recurring.days == frozenset({0, 2, 4})
    assert weekly.title == "Пары"


def test_parse_block_line_one_off() -> None:
    dated = parse_block_line("Врач 14:00-15:00 2026-10-20")
    assert dated is not None
    assert dated.day == date(2026, 10, 20)
    assert dated.recurring is None

    undated = parse_block_line("Обед 13:00-14:00")
    assert undated is not None
    assert undated.day is None and undated.recurring is None


def test_parse_block_line_rejects_bad_input() -> None:
    assert parse_block_line("Сон 23:00-07:00 daily") is None
    assert parse_block_line("Пары 09:00-10:00 weekly xyz") is None
    assert parse_block_line("18:00-19:00 daily") is None
    assert parse_block_line("Спортзал вечером") is None


def test_parse_clock_and_day() -> None:
    assert parse_clock("9:05") == time(9, 5)
    assert parse_clock("24:00") is None
    assert parse_clock("noon") is None
    assert parse_day("2026-10-20") == date(2026, 10, 20)
    assert parse_day("20.10.2026") is None
