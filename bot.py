# bot.py

import functools
import logging

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

from config import AUTHORIZED_USER_IDS, BOT_TOKEN, LOG_LEVEL
from scheduler_logic import (
    ADVANCE_JOB, ANNOUNCEMENT_SYNC_JOB, AdvanceLoop, advance_all_roles, advance_role,
    build_morning_text, send_morning, sync_announcement, sync_announcement_job
)
from shared.bot_instance import set_bot
from shared.database import get_rotation, init_db, save_rotation
from shared.errors import RotationError, SchedulerError
from shared.models import RotationRole
from shared.rotation import RotationRing
from shared.schedule import ScheduleService
from shared.settings import load_announcement_config, save_announcement_config
from shared.utils import format_short_day, format_time_12h, parse_hhmm, parse_iso_date

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Schedule\n"
    "/next [n] - upcoming sessions\n"
    "/cancel YYYY-MM-DD [reason] - cancel an occurrence\n"
    "/move YYYY-MM-DD YYYY-MM-DD [HH:mm] [note] - move an occurrence\n"
    "/clear YYYY-MM-DD - undo cancel/move/note\n"
    "/preview [YYYY-MM-DD] - preview the morning announcement\n"
    "/schedule - show the recurrence rule\n\n"
    "Rotation\n"
    "/who dm|food - whose turn it is\n"
    "/skip dm|food [reason] - swap the current person with the next\n"
    "/advance dm|food|all - advance manually\n"
    "/roster list|add|remove|setcurrent dm|food [member|position]\n\n"
    "Announcements\n"
    "/announcehere [HH:mm] - post morning announcements in this chat\n"
    "/announcetest - send today's announcement without marking it"
)

ROLE_HINT = "Role must be `dm` or `food`."

# How often settings edited through the web API are picked up
SETTINGS_SYNC_SECONDS = 60


# === Helpers ===

def check_auth(func):
    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = update.effective_user.id
        if user_id not in AUTHORIZED_USER_IDS:
            await update.message.reply_text("❌ Access denied.")
            return
        return await func(update, context)
    return wrapper


def caller_name(update: Update) -> str:
    user = update.effective_user
    if user is None:
        return "Unknown"
    return user.full_name or user.username or "Unknown"


def format_session_line(session) -> str:
    start = session.effective_start
    status = "🛑 cancelled" if session.is_cancelled else "✅ on"
    moved = " (moved)" if session.is_moved else ""
    note = f" - {session.note}" if session.note else ""
    return f"• {format_short_day(start)} @ {format_time_12h(start)} - {status}{moved}{note}"


def format_roster(role: RotationRole, ring: RotationRing) -> str:
    lines = [f"{role.label} roster"]
    for i, member in enumerate(ring.members):
        marker = "➡️" if i == ring.position else "   "
        lines.append(f"{marker} {i + 1}. {member}")
    return "\n".join(lines)


# === Schedule commands ===

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(HELP_TEXT)


async def next_sessions(update: Update, context: ContextTypes.DEFAULT_TYPE):
    count = 4
    if context.args and context.args[0].isdigit():
        count = int(context.args[0])
    try:
        sessions = ScheduleService.load().get_next_sessions(count)
    except SchedulerError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    if not sessions:
        await update.message.reply_text("No upcoming sessions found.")
        return
    await update.message.reply_text("\n".join(format_session_line(s) for s in sessions))


async def show_schedule(update: Update, context: ContextTypes.DEFAULT_TYPE):
    rule = ScheduleService.load().rule
    days = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
    text = (
        f"Every {rule.interval} {'week(s)' if rule.frequency == 'Weekly' else 'month(s)'} "
        f"on {days[rule.day_of_week]} at {rule.time_of_day:%H:%M} ({rule.time_zone_id})\n"
        f"Anchor: {rule.anchor_date.isoformat()}"
    )
    if rule.frequency == "Monthly":
        week = "last" if rule.monthly_week == -1 else f"#{rule.monthly_week}"
        text += f"\nWeek of month: {week}"
    await update.message.reply_text(text)


@check_auth
async def cancel_session(update: Update, context: ContextTypes.DEFAULT_TYPE):
    original = parse_iso_date(context.args[0]) if context.args else None
    if original is None:
        await update.message.reply_text("Use: /cancel YYYY-MM-DD [reason]")
        return
    schedule = ScheduleService.load()
    if schedule.get_session_for_original_date(original) is None:
        await update.message.reply_text(f"{original.isoformat()} is not a scheduled date.")
        return
    reason = " ".join(context.args[1:]) or None
    schedule.cancel_occurrence(original, reason, who=caller_name(update))
    await update.message.reply_text(f"🛑 Cancelled occurrence {original.isoformat()}.")


@check_auth
async def move_session(update: Update, context: ContextTypes.DEFAULT_TYPE):
    args = context.args or []
    original = parse_iso_date(args[0]) if len(args) > 0 else None
    new_date = parse_iso_date(args[1]) if len(args) > 1 else None
    if original is None or new_date is None:
        await update.message.reply_text("Use: /move YYYY-MM-DD YYYY-MM-DD [HH:mm] [note]")
        return

    rest = args[2:]
    new_time = parse_hhmm(rest[0]) if rest else None
    if new_time is not None:
        rest = rest[1:]

    schedule = ScheduleService.load()
    if schedule.get_session_for_original_date(original) is None:
        await update.message.reply_text(f"{original.isoformat()} is not a scheduled date.")
        return
    override = schedule.move_occurrence(
        original, new_date, new_time, note=" ".join(rest) or None, who=caller_name(update)
    )
    await update.message.reply_text(
        f"📅 Moved occurrence {original.isoformat()} → "
        f"{override.moved_to.date().isoformat()} {format_time_12h(override.moved_to)}."
    )


@check_auth
async def clear_session(update: Update, context: ContextTypes.DEFAULT_TYPE):
    original = parse_iso_date(context.args[0]) if context.args else None
    if original is None:
        await update.message.reply_text("Use: /clear YYYY-MM-DD")
        return
    if ScheduleService.load().clear_override(original):
        await update.message.reply_text(f"Cleared override for {original.isoformat()}.")
    else:
        await update.message.reply_text(f"No override stored for {original.isoformat()}.")


async def preview(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if context.args:
        day = parse_iso_date(context.args[0])
        if day is None:
            await update.message.reply_text("Date must be YYYY-MM-DD.")
            return
    else:
        day = ScheduleService.load().today()

    ok, text = build_morning_text(day)
    if ok:
        await update.message.reply_markdown_v2(text)
    else:
        await update.message.reply_text(f"⚠️ {text}")


# === Rotation commands ===

async def who(update: Update, context: ContextTypes.DEFAULT_TYPE):
    role = RotationRole.parse(context.args[0]) if context.args else None
    if role is None:
        await update.message.reply_text(ROLE_HINT)
        return
    ring = RotationRing(get_rotation(role))
    try:
        current = ring.require_current()
    except RotationError:
        await update.message.reply_text(f"No roster set for {role.label} yet. Use /roster add {role.value} <member>.")
        return
    await update.message.reply_text(f"{role.emoji} {role.label}: {current} (next: {ring.next()})")


@check_auth
async def skip(update: Update, context: ContextTypes.DEFAULT_TYPE):
    role = RotationRole.parse(context.args[0]) if context.args else None
    if role is None:
        await update.message.reply_text(ROLE_HINT)
        return
    state = get_rotation(role)
    ring = RotationRing(state)
    try:
        ring.swap_current_with_next()
    except RotationError:
        await update.message.reply_text(f"Not enough members to skip {role.label} (need at least 2).")
        return
    save_rotation(role, ring.normalized())

    reason = " ".join(context.args[1:]).strip()
    note = f"\n📝 {reason}" if reason else ""
    await update.message.reply_text(f"Skipped {role.label}. Now up: {ring.current()}.{note}")


@check_auth
async def advance(update: Update, context: ContextTypes.DEFAULT_TYPE):
    arg = context.args[0].lower() if context.args else ""
    if arg == "all":
        advance_all_roles()
        await update.message.reply_text("Advanced DM and Food.")
        return
    role = RotationRole.parse(arg)
    if role is None:
        await update.message.reply_text("Role must be `dm`, `food`, or `all`.")
        return
    state = advance_role(role)
    if not state.members:
        await update.message.reply_text(f"No roster set for {role.label} yet.")
        return
    await update.message.reply_text(f"Advanced {role.label}. Up now: {RotationRing(state).current()}.")


@check_auth
async def roster(update: Update, context: ContextTypes.DEFAULT_TYPE):
    args = context.args or []
    action = args[0].lower() if args else ""
    role = RotationRole.parse(args[1]) if len(args) > 1 else None
    if action not in ("list", "add", "remove", "setcurrent") or role is None:
        await update.message.reply_text("Use: /roster list|add|remove|setcurrent dm|food [member|position]")
        return

    state = get_rotation(role)
    ring = RotationRing(state)

    if action == "list":
        if not ring.members:
            await update.message.reply_text(f"Roster for {role.label} is empty.")
        else:
            await update.message.reply_text(format_roster(role, ring))
        return

    target = args[2] if len(args) > 2 else None
    reply = update.message.reply_to_message
    if target is None and reply is not None and reply.from_user is not None:
        target = str(reply.from_user.id)
    if target is None:
        await update.message.reply_text("Give a member (or reply to their message).")
        return

    try:
        if action == "add":
            ring.add(target)
            message = f"Added {target} to the {role.label} roster."
        elif action == "remove":
            ring.remove(target)
            message = f"Removed {target} from the {role.label} roster."
        else:
            if not target.isdigit():
                await update.message.reply_text("Position must be a number.")
                return
            ring.set_current_by_position(int(target))
            message = f"{role.label} is now on {ring.current()}."
    except RotationError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    save_rotation(role, ring.normalized())
    logger.info(f"Roster {role.value} {action} {target} by {caller_name(update)}")
    await update.message.reply_text(message)


# === Announcements ===

@check_auth
async def announce_here(update: Update, context: ContextTypes.DEFAULT_TYPE):
    config = load_announcement_config()
    hour, minute = config.hour, config.minute
    if context.args:
        at = parse_hhmm(context.args[0])
        if at is None:
            await update.message.reply_text("Time must be HH:mm (24-hour).")
            return
        hour, minute = at.hour, at.minute
    save_announcement_config(update.effective_chat.id, hour, minute)
    try:
        sync_announcement_job(context.job_queue)
    except SchedulerError as e:
        await update.message.reply_text(f"⚠️ Saved, but the announcement cannot be scheduled: {e}")
        return
    await update.message.reply_text(f"📣 Morning announcements will be posted here at {hour:02d}:{minute:02d}.")


@check_auth
async def announce_test(update: Update, context: ContextTypes.DEFAULT_TYPE):
    day = ScheduleService.load().today()
    ok, message = await send_morning(day, dry_run=True)
    await update.message.reply_text(message if ok else f"⚠️ {message}")


# === Scheduler ===

def schedule_all_jobs(job_queue):
    """
    Registers the background jobs on the application's job queue.

    Application.stop() stops the queue and waits for a running job, so a tick
    in progress at shutdown is finished.
    """
    advance_loop = AdvanceLoop()
    job_queue.run_repeating(
        advance_loop.run_job, interval=advance_loop.period_seconds, first=10, name=ADVANCE_JOB
    )
    job_queue.run_repeating(
        sync_announcement, interval=SETTINGS_SYNC_SECONDS, first=SETTINGS_SYNC_SECONDS,
        name=ANNOUNCEMENT_SYNC_JOB
    )
    try:
        sync_announcement_job(job_queue)
    except SchedulerError as e:
        logger.error(f"❌ Cannot schedule the morning announcement: {e}")
    logger.info(f"✅ Jobs scheduled (auto-advance every {advance_loop.period_seconds // 60} min)")


async def on_startup(application: Application):
    set_bot(application.bot)
    schedule_all_jobs(application.job_queue)


def build_application() -> Application:
    app = (
        Application.builder()
        .token(BOT_TOKEN)
        .post_init(on_startup)
        .build()
    )
    app.add_handler(CommandHandler(["start", "help"], help_command))
    app.add_handler(CommandHandler("next", next_sessions))
    app.add_handler(CommandHandler("schedule", show_schedule))
    app.add_handler(CommandHandler("cancel", cancel_session))
    app.add_handler(CommandHandler("move", move_session))
    app.add_handler(CommandHandler("clear", clear_session))
    app.add_handler(CommandHandler("preview", preview))
    app.add_handler(CommandHandler("who", who))
    app.add_handler(CommandHandler("skip", skip))
    app.add_handler(CommandHandler("advance", advance))
    app.add_handler(CommandHandler("roster", roster))
    app.add_handler(CommandHandler("announcehere", announce_here))
    app.add_handler(CommandHandler("announcetest", announce_test))
    return app


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    init_db()
    app = build_application()
    logger.info("🚀 Bot started...")
    app.run_polling()


if __name__ == "__main__":
    main()
