from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from .models import (
    BlockType,
    Category,
    Priority,
    Recurrence,
    RecurrenceType,
    Task,
    TimeBlock,
    UnavailableBlock,
    User,
)
from .parsing import ParsedBlockInput, ParsedTaskInput


def _to_iso_dt(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat(timespec="seconds")


def _from_iso_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _to_iso_time(t: time) -> str:
    return t.isoformat(timespec="minutes")


def _days_to_csv(days: Iterable[int]) -> str:
    return ",".join(str(d) for d in sorted(days))


def _days_from_csv(s: Optional[str]) -> frozenset[int]:
    if not s:
        return frozenset()
    return frozenset(int(x) for x in s.split(","))


def _exceptions_from_csv(s: Optional[str]) -> tuple[str, ...]:
    if not s:
        return ()
    return tuple(s.split(","))


class Storage:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        self._init()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                  telegram_user_id INTEGER PRIMARY KEY,
                  timezone TEXT NOT NULL,
                  morning_plan_time TEXT NOT NULL,
                  last_plan_sent_day TEXT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  telegram_user_id INTEGER NOT NULL,
                  name TEXT NOT NULL,
                  duration INTEGER NOT NULL,
                  deadline TEXT NOT NULL,
                  priority TEXT NOT NULL,
                  category TEXT NOT NULL,
                  completed INTEGER NOT NULL DEFAULT 0,
                  scheduled_time TEXT NULL,
                  created_at TEXT NOT NULL,
                  FOREIGN KEY (telegram_user_id) REFERENCES users(telegram_user_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS unavailable_blocks (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  telegram_user_id INTEGER NOT NULL,
                  title TEXT NOT NULL,
                  description TEXT NULL,
                  start_time TEXT NOT NULL,
                  end_time TEXT NOT NULL,
                  recurrence_type TEXT NULL,
                  recurrence_days TEXT NULL,
                  exceptions TEXT NULL,
                  FOREIGN KEY (telegram_user_id) REFERENCES users(telegram_user_id)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(telegram_user_id)"
            )

    # users

    def list_user_ids(self) -> list[int]:
        with self._conn() as conn:
            rows = conn.execute("SELECT telegram_user_id FROM users").fetchall()
        return [int(r["telegram_user_id"]) for r in rows]

    def upsert_user(self, user: User) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO users(telegram_user_id, timezone, morning_plan_time)
                VALUES(?, ?, ?)
                ON CONFLICT(telegram_user_id) DO UPDATE SET
                  timezone=excluded.timezone,
                  morning_plan_time=excluded.morning_plan_time
                """,
                (user.telegram_user_id, user.timezone, _to_iso_time(user.morning_plan_time)),
            )

    def get_user(self, telegram_user_id: int) -> Optional[User]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE telegram_user_id=?",
                (telegram_user_id,),
            ).fetchone()
        if row is None:
            return None
        return User(
            telegram_user_id=int(row["telegram_user_id"]),
            timezone=str(row["timezone"]),
            morning_plan_time=time.fromisoformat(row["morning_plan_time"]),
        )

    def get_last_plan_sent_day(self, telegram_user_id: int) -> Optional[date]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT last_plan_sent_day FROM users WHERE telegram_user_id=?",
                (telegram_user_id,),
            ).fetchone()
        if row is None or row["last_plan_sent_day"] is None:
            return None
        return date.fromisoformat(row["last_plan_sent_day"])

    def set_last_plan_sent_day(self, telegram_user_id: int, day: date) -> None:
        with self._conn() as conn:
            conn.execute(
                "UPDATE users SET last_plan_sent_day=? WHERE telegram_user_id=?",
                (day.isoformat(), telegram_user_id),
            )

    # tasks

    def add_task(self, telegram_user_id: int, parsed: ParsedTaskInput, created_at: datetime) -> int:
        with self._conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks(
                  telegram_user_id, name, duration, deadline,
                  priority, category, completed, scheduled_time, created_at
                )
                VALUES(?, ?, ?, ?, ?, ?, 0, NULL, ?)
                """,
                (
                    telegram_user_id,
                    parsed.name,
                    int(parsed.duration),
                    _to_iso_dt(parsed.deadline),
                    str(parsed.priority),
                    str(parsed.category),
                    _to_iso_dt(created_at),
                ),
            )
            return int(cur.lastrowid)

    def get_task(self, telegram_user_id: int, task_id: int) -> Optional[Task]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE telegram_user_id=? AND id=?",
                (telegram_user_id, task_id),
            ).fetchone()
        return self._row_to_task(row) if row is not None else None

    def list_tasks(self, telegram_user_id: int, include_completed: bool = False) -> list[Task]:
        query = "SELECT * FROM tasks WHERE telegram_user_id=?"
        if not include_completed:
            query += " AND completed=0"
        with self._conn() as conn:
            rows = conn.execute(query + " ORDER BY id ASC", (telegram_user_id,)).fetchall()
        return [self._row_to_task(r) for r in rows]

    def set_task_completed(self, telegram_user_id: int, task_id: int, completed: bool = True) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                "UPDATE tasks SET completed=? WHERE telegram_user_id=? AND id=?",
                (int(completed), telegram_user_id, task_id),
            )
            return cur.rowcount > 0

    def delete_task(self, telegram_user_id: int, task_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE telegram_user_id=? AND id=?",
                (telegram_user_id, task_id),
            )
            return cur.rowcount > 0

    def set_scheduled_time(
        self, telegram_user_id: int, task_id: int, scheduled_time: Optional[datetime]
    ) -> None:
        with self._conn() as conn:
            conn.execute(
                "UPDATE tasks SET scheduled_time=? WHERE telegram_user_id=? AND id=?",
                (_to_iso_dt(scheduled_time), telegram_user_id, task_id),
            )

    def save_scheduled_times(self, telegram_user_id: int, tasks: Sequence[Task]) -> None:
        with self._conn() as conn:
            conn.executemany(
                "UPDATE tasks SET scheduled_time=? WHERE telegram_user_id=? AND id=?",
                [(_to_iso_dt(t.scheduled_time), telegram_user_id, t.id) for t in tasks],
            )

    def save_placements(self, telegram_user_id: int, timetable: Sequence[TimeBlock]) -> int:
        """Persist the start of every task block; returns how many were written."""
        placed = [b.task for b in timetable if b.type == BlockType.TASK and b.task is not None]
        self.save_scheduled_times(telegram_user_id, placed)
        return len(placed)

    # unavailable blocks

    def add_unavailable_block(
        self, telegram_user_id: int, parsed: ParsedBlockInput, day: date
    ) -> UnavailableBlock:
        start = datetime.combine(parsed.day or day, parsed.start)
        end = datetime.combine(parsed.day or day, parsed.end)
        rule = parsed.recurring
        with self._conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO unavailable_blocks(
                  telegram_user_id, title, description, start_time, end_time,
                  recurrence_type, recurrence_days, exceptions
                )
                VALUES(?, ?, NULL, ?, ?, ?, ?, NULL)
                """,
                (
                    telegram_user_id,
                    parsed.title,
                    _to_iso_dt(start),
                    _to_iso_dt(end),
                    str(rule.type) if rule else None,
                    _days_to_csv(rule.days) if rule else None,
                ),
            )
            block_id = int(cur.lastrowid)
        return UnavailableBlock(
            id=block_id, title=parsed.title, start_time=start, end_time=end, recurring=rule
        )

    def get_unavailable_block(self, telegram_user_id: int, block_id: int) -> Optional[UnavailableBlock]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM unavailable_blocks WHERE telegram_user_id=? AND id=?",
                (telegram_user_id, block_id),
            ).fetchone()
        return self._row_to_block(row) if row is not None else None

    def list_unavailable_blocks(self, telegram_user_id: int) -> list[UnavailableBlock]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM unavailable_blocks WHERE telegram_user_id=? ORDER BY id ASC",
                (telegram_user_id,),
            ).fetchall()
        return [self._row_to_block(r) for r in rows]

    def save_exceptions(self, telegram_user_id: int, block: UnavailableBlock) -> None:
        exceptions = ",".join(block.recurring.exceptions) if block.recurring else None
        with self._conn() as conn:
            conn.execute(
                "UPDATE unavailable_blocks SET exceptions=? WHERE telegram_user_id=? AND id=?",
                (exceptions or None, telegram_user_id, block.id),
            )

    def delete_unavailable_block(self, telegram_user_id: int, block_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                "DELETE FROM unavailable_blocks WHERE telegram_user_id=? AND id=?",
                (telegram_user_id, block_id),
            )
            return cur.rowcount > 0

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            name=str(row["name"]),
            duration=int(row["duration"]),
            deadline=datetime.fromisoformat(str(row["deadline"])),
            priority=Priority(str(row["priority"])),
            category=Category(str(row["category"])),
            completed=bool(row["completed"]),
            scheduled_time=_from_iso_dt(row["scheduled_time"]),
            created_at=_from_iso_dt(row["created_at"]),
        )

    @staticmethod
    def _row_to_block(row: sqlite3.Row) -> UnavailableBlock:
        rule: Optional[Recurrence] = None
        if row["recurrence_type"]:
            rule = Recurrence(
                type=RecurrenceType(str(row["recurrence_type"])),
                days=_days_from_csv(row["recurrence_days"]),
                exceptions=_exceptions_from_csv(row["exceptions"]),
            )
        return UnavailableBlock(
            id=int(row["id"]),
            title=str(row["title"]),
            description=row["description"],
            start_time=datetime.fromisoformat(str(row["start_time"])),
            end_time=datetime.fromisoformat(str(row["end_time"])),
            recurring=rule,
        )
