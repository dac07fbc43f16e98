from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import time

from .models import Category, Priority
from .parsing import parse_clock


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Urgency/priority/category weights used to order tasks before placement.
    This is a tunable policy, not a law: callers may pass their own.
    """

    # (max hours to deadline, points); first matching band wins
    urgency_bands: tuple[tuple[float, int], ...] = ((24, 80), (48, 60), (168, 40))
    urgency_floor: int = 15
    priority_weights: dict[Priority, int] = field(
        default_factory=lambda: {Priority.HIGH: 40, Priority.MEDIUM: 25, Priority.LOW: 10}
    )
    category_weights: dict[Category, int] = field(
        default_factory=lambda: {Category.WORK: 15, Category.STUDY: 12, Category.LEISURE: 8}
    )
    # (duration strictly above, penalty); first matching wins, so keep descending
    length_penalties: tuple[tuple[int, int], ...] = ((180, 15), (120, 10))


@dataclass(frozen=True)
class BreakPolicy:
    short_minutes: int = 15
    long_minutes: int = 30
    max_continuous_work: int = 90
    long_break_after: int = 120
    short_break_min_task: int = 45
    intensive_duration: int = 90
    natural_reset_gap: int = 60


@dataclass(frozen=True)
class SchedulerConfig:
    day_start: time = time(6, 0)
    day_end: time = time(23, 0)
    granule_minutes: int = 15
    # when planning today, nothing starts earlier than now + lead
    lead_minutes: int = 15
    breaks: BreakPolicy = field(default_factory=BreakPolicy)
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)

    def __post_init__(self) -> None:
        if self.day_start >= self.day_end:
            raise ValueError("day_start must be before day_end")
        if self.granule_minutes <= 0:
            raise ValueError("granule_minutes must be positive")


DEFAULT_CONFIG = SchedulerConfig()


def parse_hhmm(value: str) -> time:
    clock = parse_clock(value)
    if clock is None:
        raise ValueError(f"expected HH:MM, got {value!r}")
    return clock


def load_config_from_env() -> SchedulerConfig:
    start = os.getenv("TIMETABLE_DAY_START", "").strip()
    end = os.getenv("TIMETABLE_DAY_END", "").strip()
    granule = os.getenv("TIMETABLE_GRANULE_MINUTES", "").strip()
    return SchedulerConfig(
        day_start=parse_hhmm(start) if start else DEFAULT_CONFIG.day_start,
        day_end=parse_hhmm(end) if end else DEFAULT_CONFIG.day_end,
        granule_minutes=int(granule) if granule else DEFAULT_CONFIG.granule_minutes,
    )
