from __future__ import annotations

import logging
import os
from datetime import date, datetime, time
from typing import Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    AIORateLimiter,
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .config import load_config_from_env
from .engine import (
    add_exception,
    add_unavailable_block_and_reschedule,
    generate_timetable,
    reschedule_task,
)
from .jobs import morning_push, reminder_times
from .models import BlockType, Priority, RecurrenceType, TimeBlock, UnavailableBlock, User
from .parsing import parse_block_line, parse_clock, parse_day, parse_task_line
from .reschedule import MoveRefusal, check_move
from .storage import Storage

log = logging.getLogger("daily_timetable")


HELP = (
    "Команды:\n"
    "/start — регистрация\n"
    "/timezone Europe/Moscow — установить часовой пояс\n"
    "/morning 08:00 — когда присылать расписание на день\n"
    "/add — добавить задачи (по одной в строке)\n"
    "/tasks — список невыполненных задач\n"
    "/done <id> — отметить выполненной\n"
    "/delete <id> — удалить задачу\n"
    "/plan [YYYY-MM-DD] — построить расписание\n"
    "/move <id> HH:MM [YYYY-MM-DD] — перенести задачу\n"
    "/block Спортзал 18:00-19:30 daily — занятое время\n"
    "/blocks — список занятых интервалов\n"
    "/unblock <id> — удалить занятый интервал\n"
    "/skipblock <id> [YYYY-MM-DD] — пропустить один повтор\n"
)

_WEEKDAY_NAMES = ["пн", "вт", "ср", "чт", "пт", "сб", "вс"]

_BREAK_TITLES = {
    "Extended Break": "Длинный перерыв",
    "Rest Break": "Перерыв на восстановление",
    "Short Break": "Короткий перерыв",
}

_MOVE_REFUSALS = {
    MoveRefusal.COMPLETED: "Выполненную задачу переносить нельзя.",
    MoveRefusal.IN_PAST: "Это время уже прошло. Выбери время позже текущего.",
    MoveRefusal.BEFORE_DAY_START: "Слишком рано: день начинается в {start}.",
    MoveRefusal.AFTER_DAY_END: "Задача не поместится: день заканчивается в {end}. Выбери время пораньше.",
}


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _format_priority(p: Priority) -> str:
    return {Priority.HIGH: "высокий", Priority.MEDIUM: "средний", Priority.LOW: "низкий"}[p]


def _format_block(b: TimeBlock) -> str:
    span = f"{b.start_time.strftime('%H:%M')}-{b.end_time.strftime('%H:%M')}"
    if b.type == BlockType.BREAK:
        return f"{span} ☕ {_BREAK_TITLES.get(b.title, b.title)}"
    if b.type == BlockType.UNAVAILABLE:
        return f"{span} ⛔ {b.title}"
    assert b.task is not None
    return f"{span} ({_format_priority(b.task.priority)}) {b.title} (id {b.task.id})"


def format_timetable(day: date, timetable: Sequence[TimeBlock]) -> str:
    if not timetable:
        return f"На {day.isoformat()} ничего не запланировано."
    lines = [f"Расписание на {day.isoformat()}:"]
    lines.extend(f"- {_format_block(b)}" for b in timetable)
    return "\n".join(lines)


def _format_unavailable(block: UnavailableBlock) -> str:
    span = f"{block.start_time.strftime('%H:%M')}-{block.end_time.strftime('%H:%M')}"
    rule = block.recurring
    if rule is None:
        when = block.start_time.date().isoformat()
    elif rule.type == RecurrenceType.DAILY:
        when = "каждый день"
    else:
        when = "по " + ",".join(_WEEKDAY_NAMES[d] for d in sorted(rule.days))
    skipped = f" (кроме {', '.join(rule.exceptions)})" if rule and rule.exceptions else ""
    return f"{block.id}. {block.title} {span} {when}{skipped}"


class BotApp:
    def __init__(self, db_path: str) -> None:
        self.storage = Storage(db_path)
        self.config = load_config_from_env()
        self.scheduler = AsyncIOScheduler()

        # in-memory flag: who is currently entering tasks
        self._awaiting_tasks: set[int] = set()

    def user_or_default(self, user_id: int) -> User:
        u = self.storage.get_user(user_id)
        if u:
            return u
        u = User(telegram_user_id=user_id, timezone="UTC", morning_plan_time=time(8, 0))
        self.storage.upsert_user(u)
        return u

    def _tz(self, user_id: int) -> ZoneInfo:
        return ZoneInfo(self.user_or_default(user_id).timezone)

    def _now_local(self, user_id: int) -> tuple[ZoneInfo, datetime]:
        # the engine works on naive wall-clock time in the user's zone
        tz = self._tz(user_id)
        return tz, datetime.now(tz).replace(tzinfo=None)

    def _plan_day(self, user_id: int, day: date, now: datetime) -> list[TimeBlock]:
        timetable = generate_timetable(
            day=day,
            tasks=self.storage.list_tasks(user_id),
            unavailable_blocks=self.storage.list_unavailable_blocks(user_id),
            now=now,
            config=self.config,
        )
        # persist before anything else is planned, so a task is never placed on two days
        self.storage.save_placements(user_id, timetable)
        return timetable

    @staticmethod
    def _arg_id(context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
        if not context.args or not context.args[0].isdigit():
            return None
        return int(context.args[0])

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        self.user_or_default(int(update.effective_user.id))
        await update.message.reply_text(
            "Привет! Я составлю расписание дня из твоих задач.\n\n"
            "1) Укажи часовой пояс командой /timezone Europe/Moscow\n"
            "2) Добавь задачи через /add\n"
            "3) Вызови /plan\n\n"
            + HELP
        )

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message:
            await update.message.reply_text(HELP)

    async def cmd_timezone(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        if not context.args:
            await update.message.reply_text("Укажи IANA-таймзону, например: /timezone Europe/Moscow")
            return
        tz_name = context.args[0].strip()
        try:
            ZoneInfo(tz_name)
        except Exception:
            await update.message.reply_text("Не понял таймзону. Пример: Europe/Moscow, Europe/Kyiv, UTC")
            return

        u = self.user_or_default(user_id)
        self.storage.upsert_user(
            User(telegram_user_id=user_id, timezone=tz_name, morning_plan_time=u.morning_plan_time)
        )
        await update.message.reply_text(f"Ок, таймзона установлена: {tz_name}")

    async def cmd_morning(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        clock = parse_clock(context.args[0]) if context.args else None
        if clock is None:
            await update.message.reply_text("Использование: /morning 08:00")
            return
        u = self.user_or_default(user_id)
        self.storage.upsert_user(
            User(telegram_user_id=user_id, timezone=u.timezone, morning_plan_time=clock)
        )
        await update.message.reply_text(f"Буду присылать расписание в {clock.strftime('%H:%M')}.")

    async def cmd_add(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        self.user_or_default(user_id)
        if context.args:
            await self._add_tasks(update, user_id, [" ".join(context.args)])
            return
        self._awaiting_tasks.add(user_id)
        await update.message.reply_text(
            "Напиши задачи, по одной в строке.\n"
            "Формат (всё необязательно): `30m`/`2h` длительность, `!high`/`!medium`/`!low` "
            "приоритет, `#work`/`#study`/`#leisure` категория, `@2026-10-20 18:00` дедлайн.\n"
            "Пример:\n"
            "Отчёт 2h !high #work @17:00\n"
            "Английский 45m #study\n\n"
            "Отправь одним сообщением.",
            parse_mode=ParseMode.MARKDOWN,
        )

    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        if user_id not in self._awaiting_tasks:
            return
        lines = [x.strip() for x in (update.message.text or "").splitlines()]
        if await self._add_tasks(update, user_id, lines):
            self._awaiting_tasks.discard(user_id)

    async def _add_tasks(self, update: Update, user_id: int, lines: list[str]) -> int:
        assert update.message
        _, now = self._now_local(user_id)
        parsed = [parse_task_line(x, today=now.date()) for x in lines]
        parsed = [p for p in parsed if p is not None]
        if not parsed:
            await update.message.reply_text("Не нашёл задач. Попробуй ещё раз (по одной в строке).")
            return 0

        ids = [self.storage.add_task(user_id, p, created_at=now) for p in parsed]
        log.info("user %s added %d task(s)", user_id, len(ids))
        await update.message.reply_text(
            f"Добавлено задач: {len(ids)} (id {', '.join(map(str, ids))}). /plan чтобы разложить по времени."
        )
        return len(ids)

    async def cmd_tasks(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        tasks = self.storage.list_tasks(user_id)
        if not tasks:
            await update.message.reply_text("Невыполненных задач нет. Используй /add.")
            return
        lines = []
        for t in tasks:
            when = f" ⏰ {t.scheduled_time.strftime('%Y-%m-%d %H:%M')}" if t.scheduled_time else ""
            lines.append(
                f"{t.id}. ({_format_priority(t.priority)}, {t.category}) {t.name} ~{t.duration}m"
                f" до {t.deadline.strftime('%Y-%m-%d %H:%M')}{when}"
            )
        await update.message.reply_text("\n".join(lines))

    async def cmd_done(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        task_id = self._arg_id(context)
        if task_id is None:
            await update.message.reply_text("Использование: /done <id>")
            return
        if self.storage.set_task_completed(int(update.effective_user.id), task_id):
            await update.message.reply_text("Отмечено как выполнено.")
        else:
            await update.message.reply_text("Задача не найдена.")

    async def cmd_delete(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        task_id = self._arg_id(context)
        if task_id is None:
            await update.message.reply_text("Использование: /delete <id>")
            return
        if self.storage.delete_task(int(update.effective_user.id), task_id):
            await update.message.reply_text("Задача удалена.")
        else:
            await update.message.reply_text("Задача не найдена.")

    async def cmd_plan(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        tz, now = self._now_local(user_id)
        day = parse_day(context.args[0]) if context.args else now.date()
        if day is None:
            await update.message.reply_text("Использование: /plan [YYYY-MM-DD]")
            return
        if day < now.date():
            await update.message.reply_text("Прошедшие дни не планирую.")
            return

        timetable = self._plan_day(user_id, day, now)
        log.info("user %s planned %s: %d block(s)", user_id, day, len(timetable))
        await update.message.reply_text(format_timetable(day, timetable))
        if day == now.date():
            self._schedule_reminders(
                telegram_user_id=user_id, tz=tz, timetable=timetable, now=now, app=context.application
            )

    async def cmd_move(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        args = context.args or []
        task_id = self._arg_id(context)
        clock = parse_clock(args[1]) if len(args) > 1 else None
        if task_id is None or clock is None:
            await update.message.reply_text("Использование: /move <id> HH:MM [YYYY-MM-DD]")
            return

        task = self.storage.get_task(user_id, task_id)
        if task is None:
            await update.message.reply_text("Задача не найдена.")
            return

        tz, now = self._now_local(user_id)
        if len(args) > 2:
            day = parse_day(args[2])
        elif task.scheduled_time is not None and task.scheduled_time.date() >= now.date():
            day = task.scheduled_time.date()
        else:
            day = now.date()
        if day is None or day < now.date():
            await update.message.reply_text("Перенести можно только на сегодня или позже.")
            return

        new_start = datetime.combine(day, clock)
        refusal = check_move(task, new_start=new_start, now=now, config=self.config)
        if refusal is not None:
            await update.message.reply_text(
                _MOVE_REFUSALS[refusal].format(
                    start=self.config.day_start.strftime("%H:%M"),
                    end=self.config.day_end.strftime("%H:%M"),
                )
            )
            return

        current = self._plan_day(user_id, day, now)
        moved = reschedule_task(task_id=task_id, new_start=new_start, timetable=current)
        if moved is current:
            await update.message.reply_text(
                "Не получилось: это время занято или задачи нет в расписании на этот день."
            )
            return

        # the rest of the day was already saved by _plan_day
        self.storage.set_scheduled_time(user_id, task_id, new_start)
        log.info("user %s moved task %s to %s %s", user_id, task_id, day, clock)
        await update.message.reply_text("Перенесено.\n\n" + format_timetable(day, moved))
        if day == now.date():
            self._schedule_reminders(
                telegram_user_id=user_id, tz=tz, timetable=moved, now=now, app=context.application
            )

    async def cmd_block(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        self.user_or_default(user_id)
        parsed = parse_block_line(" ".join(context.args or []))
        if parsed is None:
            await update.message.reply_text(
                "Использование: /block Название HH:MM-HH:MM [daily | weekly mon,wed | YYYY-MM-DD]"
            )
            return

        _, now = self._now_local(user_id)
        existing = self.storage.list_unavailable_blocks(user_id)
        tasks = self.storage.list_tasks(user_id)
        block = self.storage.add_unavailable_block(user_id, parsed, day=now.date())

        target_day = max(parsed.day or now.date(), now.date())
        outcome = add_unavailable_block_and_reschedule(
            block=block,
            tasks=tasks,
            unavailable_blocks=existing,
            target_day=target_day,
            now=now,
            config=self.config,
        )
        self.storage.save_scheduled_times(user_id, outcome.tasks)
        self.storage.save_placements(user_id, outcome.updated_timetable)
        log.info("user %s added block %s, %d task(s) moved", user_id, block.id, outcome.rescheduled_count)

        msg = f"Добавлено: {_format_unavailable(block)}"
        if outcome.rescheduled_count:
            msg += f"\nПеренесено задач из-за конфликта: {outcome.rescheduled_count}."
        await update.message.reply_text(msg + "\n\n" + format_timetable(target_day, outcome.updated_timetable))

    async def cmd_blocks(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        blocks = self.storage.list_unavailable_blocks(int(update.effective_user.id))
        if not blocks:
            await update.message.reply_text("Занятых интервалов нет. Используй /block.")
            return
        await update.message.reply_text("\n".join(_format_unavailable(b) for b in blocks))

    async def cmd_unblock(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        block_id = self._arg_id(context)
        if block_id is None:
            await update.message.reply_text("Использование: /unblock <id>")
            return
        if self.storage.delete_unavailable_block(int(update.effective_user.id), block_id):
            await update.message.reply_text("Интервал удалён. /plan чтобы пересобрать расписание.")
        else:
            await update.message.reply_text("Интервал не найден.")

    async def cmd_skipblock(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        assert update.effective_user and update.message
        user_id = int(update.effective_user.id)
        args = context.args or []
        block_id = self._arg_id(context)
        _, now = self._now_local(user_id)
        day = parse_day(args[1]) if len(args) > 1 else now.date()
        if block_id is None or day is None:
            await update.message.reply_text("Использование: /skipblock <id> [YYYY-MM-DD]")
            return

        block = self.storage.get_unavailable_block(user_id, block_id)
        if block is None:
            await update.message.reply_text("Интервал не найден.")
            return
        if block.recurring is None:
            await update.message.reply_text("Это разовый интервал — его можно только удалить: /unblock.")
            return

        updated = add_exception(block, day)
        if updated is not block:
            self.storage.save_exceptions(user_id, updated)
        await update.message.reply_text(
            f"{block.title} пропущен {day.isoformat()}. /plan {day.isoformat()} чтобы пересобрать."
        )

    async def _send_reminder(self, app: Application, chat_id: int, text: str) -> None:
        await app.bot.send_message(chat_id=chat_id, text=text)

    def _schedule_reminders(
        self,
        *,
        telegram_user_id: int,
        tz: ZoneInfo,
        timetable: Sequence[TimeBlock],
        now: datetime,
        app: Application,
    ) -> None:
        # drop whatever was scheduled for this user before
        prefix = f"reminder:{telegram_user_id}:"
        for job in list(self.scheduler.get_jobs()):
            if job.id.startswith(prefix):
                job.remove()

        for r in reminder_times(timetable, now=now):
            text = (
                f"Напоминание ({'через 10 минут' if r.kind == 'before' else 'сейчас'}): "
                f"{r.title} (id {r.task_id})"
            )
            self.scheduler.add_job(
                self._send_reminder,
                trigger="date",
                run_date=r.when.replace(tzinfo=tz),
                args=[app, telegram_user_id, text],
                id=f"{prefix}{r.task_id}:{r.kind}",
                replace_existing=True,
            )

    async def on_startup(self, app: Application) -> None:
        # AsyncIOScheduler binds to the loop the application is already running
        self.scheduler.start()

    def register_recurring_jobs(self, app: Application) -> None:
        self.scheduler.add_job(
            self._morning_tick,
            trigger=CronTrigger(minute="*/5"),
            args=[app],
            id="morning-tick",
            replace_existing=True,
        )

    async def _morning_tick(self, app: Application) -> None:
        # For each user, send today's timetable once, around their morning time.
        instant = datetime.now(ZoneInfo("UTC"))
        for user_id in self.storage.list_user_ids():
            u = self.user_or_default(user_id)
            push = morning_push(
                u, now=instant, last_sent_day=self.storage.get_last_plan_sent_day(user_id)
            )
            if not push.due:
                continue

            timetable = self._plan_day(user_id, push.day, push.local_now)
            await app.bot.send_message(
                chat_id=user_id, text="Доброе утро!\n" + format_timetable(push.day, timetable)
            )
            self.storage.set_last_plan_sent_day(user_id, push.day)
            self._schedule_reminders(
                telegram_user_id=user_id,
                tz=ZoneInfo(u.timezone),
                timetable=timetable,
                now=push.local_now,
                app=app,
            )


def build_application(bot_app: BotApp) -> Application:
    token = _env("TELEGRAM_TOKEN")
    if not token:
        raise RuntimeError("TELEGRAM_TOKEN is required")

    app = (
        Application.builder()
        .token(token)
        .rate_limiter(AIORateLimiter())
        .post_init(bot_app.on_startup)
        .build()
    )

    app.add_handler(CommandHandler("start", bot_app.cmd_start))
    app.add_handler(CommandHandler("help", bot_app.cmd_help))
    app.add_handler(CommandHandler("timezone", bot_app.cmd_timezone))
    app.add_handler(CommandHandler("morning", bot_app.cmd_morning))
    app.add_handler(CommandHandler("add", bot_app.cmd_add))
    app.add_handler(CommandHandler("tasks", bot_app.cmd_tasks))
    app.add_handler(CommandHandler("done", bot_app.cmd_done))
    app.add_handler(CommandHandler("delete", bot_app.cmd_delete))
    app.add_handler(CommandHandler("plan", bot_app.cmd_plan))
    app.add_handler(CommandHandler("move", bot_app.cmd_move))
    app.add_handler(CommandHandler("block", bot_app.cmd_block))
    app.add_handler(CommandHandler("blocks", bot_app.cmd_blocks))
    app.add_handler(CommandHandler("unblock", bot_app.cmd_unblock))
    app.add_handler(CommandHandler("skipblock", bot_app.cmd_skipblock))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, bot_app.on_text))

    bot_app.register_recurring_jobs(app)
    return app


def main() -> None:
    logging.basicConfig(level=_env("LOG_LEVEL", "INFO").upper())
    db_path = _env("DB_PATH", "daily_timetable.sqlite3")
    bot_app = BotApp(db_path=db_path)
    app = build_application(bot_app)
    app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
