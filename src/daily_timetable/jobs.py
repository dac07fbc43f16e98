from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from zoneinfo import ZoneInfo

from .models import BlockType, TimeBlock, User


@dataclass(frozen=True)
class MorningPush:
    due: bool
    # local calendar day the timetable is for
    day: date
    # naive wall-clock time in the user's zone, as the engine expects it
    local_now: datetime
    send_at: datetime


@dataclass(frozen=True)
class Reminder:
    task_id: int
    title: str
    kind: str  # "before" | "start"
    when: datetime


def morning_push(
    user: User,
    *,
    now: datetime,
    last_sent_day: Optional[date],
    window_minutes: int = 10,
) -> MorningPush:
    """
    Should `user` get today's timetable right now?

    `now` is any timezone-aware instant; the user's zone decides which calendar
    day it is there. The push is due once per local day, while the local clock is
    within `window_minutes` after `user.morning_plan_time`. A window missed
    entirely (bot down) is not made up later in the day.
    """
    tz = ZoneInfo(user.timezone)
    local = now.astimezone(tz)
    day = local.date()
    send_at = datetime.combine(day, user.morning_plan_time, tzinfo=tz)
    due = last_sent_day != day and send_at <= local <= send_at + timedelta(minutes=window_minutes)
    return MorningPush(due=due, day=day, local_now=local.replace(tzinfo=None), send_at=send_at)


def reminder_times(
    timetable: Sequence[TimeBlock], *, now: datetime, lead_minutes: int = 10
) -> list[Reminder]:
    """Notify `lead_minutes` before and at the start of every upcoming task block."""
    out: list[Reminder] = []
    for b in timetable:
        if b.type != BlockType.TASK or b.task_id is None:
            continue
        for kind, when in (
            ("before", b.start_time - timedelta(minutes=lead_minutes)),
            ("start", b.start_time),
        ):
            if when <= now:
                continue
            out.append(Reminder(task_id=b.task_id, title=b.title, kind=kind, when=when))
    return out
