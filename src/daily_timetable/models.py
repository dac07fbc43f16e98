from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import StrEnum
from typing import Optional


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Category(StrEnum):
    WORK = "work"
    STUDY = "study"
    LEISURE = "leisure"


class BlockType(StrEnum):
    TASK = "task"
    BREAK = "break"
    UNAVAILABLE = "unavailable"


class RecurrenceType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class User:
    telegram_user_id: int
    timezone: str  # IANA TZ, e.g. "Europe/Moscow"
    morning_plan_time: time  # local time


@dataclass(frozen=True)
class Recurrence:
    type: RecurrenceType
    days: frozenset[int] = frozenset()  # date.weekday(): 0=Mon ... 6=Sun
    exceptions: tuple[str, ...] = ()  # YYYY-MM-DD


@dataclass(frozen=True)
class Task:
    id: int
    name: str
    duration: int  # minutes
    deadline: datetime
    priority: Priority
    category: Category
    completed: bool = False
    scheduled_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def scheduled_end(self) -> Optional[datetime]:
        if self.scheduled_time is None:
            return None
        return self.scheduled_time + timedelta(minutes=self.duration)


@dataclass(frozen=True)
class UnavailableBlock:
    id: int
    title: str
    # only the time of day is reused for recurring blocks
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    recurring: Optional[Recurrence] = None


@dataclass(frozen=True)
class TimeBlock:
    id: str
    type: BlockType
    start_time: datetime
    end_time: datetime
    title: str
    description: Optional[str] = None
    task: Optional[Task] = None
    is_fixed: bool = False

    @property
    def task_id(self) -> Optional[int]:
        return self.task.id if self.task is not None else None
