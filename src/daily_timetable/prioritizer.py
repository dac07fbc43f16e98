from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from .config import ScoringPolicy
from .models import Task


class Prioritizer:
    """
    Deterministic urgency score:
    - deadline urgency: banded by hours left (overdue counts as the most urgent band)
    - plus priority and category weights
    - minus a penalty for long tasks, so they don't crowd out everything else
    Higher score is placed first; ties keep input order.
    """

    def __init__(self, policy: Optional[ScoringPolicy] = None) -> None:
        self.policy = policy or ScoringPolicy()

    def deadline_urgency(self, task: Task, now: datetime) -> int:
        hours_left = (task.deadline - now).total_seconds() / 3600
        for max_hours, points in self.policy.urgency_bands:
            if hours_left <= max_hours:
                return points
        return self.policy.urgency_floor

    def length_penalty(self, task: Task) -> int:
        for above, penalty in self.policy.length_penalties:
            if task.duration > above:
                return penalty
        return 0

    def score(self, task: Task, now: datetime) -> int:
        return (
            self.deadline_urgency(task, now)
            + self.policy.priority_weights[task.priority]
            + self.policy.category_weights[task.category]
            - self.length_penalty(task)
        )

    def order(self, tasks: Sequence[Task], now: datetime) -> list[Task]:
        # sorted() is stable, so equal scores keep their relative order
        return sorted(tasks, key=lambda t: self.score(t, now), reverse=True)


def order_tasks(
    tasks: Sequence[Task], *, now: datetime, policy: Optional[ScoringPolicy] = None
) -> list[Task]:
    return Prioritizer(policy).order(tasks, now)
