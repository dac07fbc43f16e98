from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from .models import Category, Priority, Recurrence, RecurrenceType


@dataclass(frozen=True)
class ParsedTaskInput:
    name: str
    duration: int
    deadline: datetime
    priority: Priority
    category: Category


@dataclass(frozen=True)
class ParsedBlockInput:
    title: str
    start: time
    end: time
    day: Optional[date]
    recurring: Optional[Recurrence]


_RE_MINUTES = re.compile(r"(?i)\b(\d+)\s*(m|min|мин)\b")
_RE_HOURS = re.compile(r"(?i)\b(\d+)\s*(h|hr|час|ч)\b")
_RE_DEADLINE = re.compile(r"(?:^|\s)@(?:(\d{4}-\d{2}-\d{2}))?\s*(?:(\d{1,2}):(\d{2}))?(?=\s|$)")
_RE_PRIORITY = re.compile(r"(?i)(?:^|\s)!(low|medium|high)\b")
_RE_CATEGORY = re.compile(r"(?i)(?:^|\s)#(work|study|leisure)\b")
_RE_RANGE = re.compile(r"\b(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\b")
_RE_DAY = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_RE_DAILY = re.compile(r"(?i)(?:^|\s)(daily|ежедневно)\b")
_RE_WEEKLY = re.compile(r"(?i)(?:^|\s)(?:weekly|еженедельно)\s+([^\s]+)")

_WEEKDAYS = {
    "mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6,
    "пн": 0, "вт": 1, "ср": 2, "чт": 3, "пт": 4, "сб": 5, "вс": 6,
}

END_OF_DAY = time(23, 59)


def parse_clock(raw: str) -> Optional[time]:
    m = re.fullmatch(r"\s*(\d{1,2}):(\d{2})\s*", raw)
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if not (0 <= hh <= 23 and 0 <= mm <= 59):
        return None
    return time(hour=hh, minute=mm)


def parse_day(raw: str) -> Optional[date]:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        return None


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip(" -\t")


def parse_task_line(line: str, *, today: date) -> Optional[ParsedTaskInput]:
    """
    Accepts lines like:
    - "Отчёт 2h !high #work @2026-10-20 18:00"
    - "Почта 20m @17:00"
    - "Прочитать статью"
    Defaults: 30 minutes, medium priority, work, deadline today 23:59.
    """
    raw = line.strip()
    if not raw:
        return None

    deadline = datetime.combine(today, END_OF_DAY)
    due = _RE_DEADLINE.search(raw)
    if due and (due.group(1) or due.group(2)):
        day = parse_day(due.group(1)) if due.group(1) else today
        clock = parse_clock(f"{due.group(2)}:{due.group(3)}") if due.group(2) else END_OF_DAY
        if day is None or clock is None:
            return None
        deadline = datetime.combine(day, clock)
        raw = _RE_DEADLINE.sub(" ", raw, count=1)

    priority = Priority.MEDIUM
    m = _RE_PRIORITY.search(raw)
    if m:
        priority = Priority(m.group(1).lower())
        raw = _RE_PRIORITY.sub(" ", raw)

    category = Category.WORK
    m = _RE_CATEGORY.search(raw)
    if m:
        category = Category(m.group(1).lower())
        raw = _RE_CATEGORY.sub(" ", raw)

    minutes = 0
    for m in _RE_MINUTES.finditer(raw):
        minutes += int(m.group(1))
    for h in _RE_HOURS.finditer(raw):
        minutes += int(h.group(1)) * 60

    name = _RE_MINUTES.sub(" ", raw)
    name = _squash(_RE_HOURS.sub(" ", name))
    if not name:
        return None
    if minutes <= 0:
        minutes = 30

    return ParsedTaskInput(
        name=name, duration=minutes, deadline=deadline, priority=priority, category=category
    )


def parse_block_line(line: str) -> Optional[ParsedBlockInput]:
    """
    Accepts lines like:
    - "Спортзал 18:00-19:30 daily"
    - "Пары 09:00-12:00 weekly mon,wed,fri"
    - "Врач 14:00-15:00 2026-10-20"
    - "Обед 13:00-14:00" (one-off, for the day it is added)
    """
    raw = line.strip()
    rng = _RE_RANGE.search(raw)
    if not rng:
        return None
    start = parse_clock(f"{rng.group(1)}:{rng.group(2)}")
    end = parse_clock(f"{rng.group(3)}:{rng.group(4)}")
    if start is None or end is None or start >= end:
        return None
    raw = _RE_RANGE.sub(" ", raw, count=1)

    recurring: Optional[Recurrence] = None
    day: Optional[date] = None

    weekly = _RE_WEEKLY.search(raw)
    if weekly:
        names = [x.strip().lower() for x in weekly.group(1).split(",") if x.strip()]
        if not names or any(n not in _WEEKDAYS for n in names):
            return None
        recurring = Recurrence(
            type=RecurrenceType.WEEKLY, days=frozenset(_WEEKDAYS[n] for n in names)
        )
        raw = _RE_WEEKLY.sub(" ", raw)
    elif _RE_DAILY.search(raw):
        recurring = Recurrence(type=RecurrenceType.DAILY)
        raw = _RE_DAILY.sub(" ", raw)
    else:
        m = _RE_DAY.search(raw)
        if m:
            day = parse_day(m.group(1))
            if day is None:
                return None
            raw = _RE_DAY.sub(" ", raw, count=1)

    title = _squash(raw)
    if not title:
        return None
    return ParsedBlockInput(title=title, start=start, end=end, day=day, recurring=recurring)
