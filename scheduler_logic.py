# scheduler_logic.py
import datetime
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from telegram.constants import ParseMode
from telegram.error import TelegramError

from config import AUTO_ADVANCE_CHECK_MINUTES
from shared.bot_instance import get_bot
from shared.database import get_markers, get_rotation, save_rotation, set_advanced, set_announced
from shared.metrics import (
    ANNOUNCEMENT_FAILURES, ANNOUNCEMENTS_SENT, LOOP_TICK_ERRORS, ROTATIONS_ADVANCED
)
from shared.models import RotationRole, RotationState, Session
from shared.rotation import RotationRing
from shared.schedule import ScheduleService
from shared.settings import (
    get_timezone, load_announcement_config, load_auto_advance_minutes, load_schedule_rule
)
from shared.utils import escape_markdown_v2, format_day, format_time_12h

logger = logging.getLogger(__name__)

SendText = Callable[[int, str], Awaitable[None]]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


async def send_text(chat_id: int, text: str) -> None:
    """
    Sends an already escaped MarkdownV2 message to a chat.

    Telegram errors propagate so that callers can leave the occurrence
    unmarked and retry on their next cycle.
    """
    bot = get_bot()
    message = await bot.send_message(
        chat_id=chat_id,
        text=text,
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    logger.info(f"✅ Message sent to chat {chat_id}, ID: {message.message_id}")


# === Messages ===

def format_member(member_id: Optional[str]) -> str:
    """Mention for a roster member, MarkdownV2 escaped."""
    if not member_id:
        return "_\\(not set\\)_"
    if member_id.lstrip("-").isdigit():
        return f"[{escape_markdown_v2('member ' + member_id)}](tg://user?id={member_id})"
    return escape_markdown_v2(member_id)


def build_session_message(session: Session, event_name: str) -> str:
    start = session.effective_start
    if session.is_cancelled:
        lines = [
            f"🛑 *{escape_markdown_v2(event_name + ' is cancelled today')}*",
            f"⏰ _Was scheduled for_ *{escape_markdown_v2(format_time_12h(start))}*",
        ]
        if session.note and session.note.strip():
            lines.append("")
            lines.append(f"*Reason:* {escape_markdown_v2(session.note.strip())}")
        return "\n".join(lines)

    # holders are read fresh for every message
    dm = RotationRing(get_rotation(RotationRole.DM)).current()
    food = RotationRing(get_rotation(RotationRole.FOOD)).current()

    lines = [
        f"☀️ *{escape_markdown_v2(event_name + ' tonight!')}*",
        f"🗓️ *{escape_markdown_v2(format_day(start))}* at *{escape_markdown_v2(format_time_12h(start))}*",
        "",
        "*Assignments*",
        f"• {RotationRole.DM.emoji} *{RotationRole.DM.label}:* {format_member(dm)}",
        f"• {RotationRole.FOOD.emoji} *{RotationRole.FOOD.label}:* {format_member(food)}",
    ]
    if session.note and session.note.strip():
        lines.append("")
        lines.append(f"📝 *Note:* {escape_markdown_v2(session.note.strip())}")
    return "\n".join(lines)


def build_morning_text(local_date: datetime.date) -> Tuple[bool, str]:
    """What the morning announcement for ``local_date`` would post."""
    schedule = ScheduleService.load()
    config = load_announcement_config()
    sessions = schedule.get_sessions_occurring_on_date(local_date)
    if not sessions:
        return False, "No session occurs on that date."
    return True, "\n\n".join(build_session_message(s, config.event_name) for s in sessions)


async def send_morning(local_date: datetime.date, dry_run: bool = False,
                       send: SendText = send_text) -> Tuple[bool, str]:
    """
    Announces every session occurring on ``local_date``.

    Outside a dry run each occurrence is announced at most once: the marker is
    written only after delivery succeeded. A failed delivery is logged and
    skipped so the remaining sessions still go out.
    """
    config = load_announcement_config()
    if not config.chat_id:
        return False, "Announcement chat is not set."

    schedule = ScheduleService.load()
    sessions = schedule.get_sessions_occurring_on_date(local_date)
    if not sessions and not dry_run:
        return True, "No session occurs on that date (nothing to announce)."

    sent = 0
    failed = 0
    for session in sessions:
        try:
            if not dry_run:
                markers = get_markers(session.occurrence_id)
                if markers and markers.announced:
                    continue

            message = build_session_message(session, config.event_name)
            await send(config.chat_id, message)
            sent += 1

            if not dry_run:
                set_announced(session.occurrence_id, _utcnow())
                ANNOUNCEMENTS_SENT.inc()
        except TelegramError as e:
            failed += 1
            ANNOUNCEMENT_FAILURES.inc()
            logger.error(f"❌ Could not announce {session.occurrence_id}: {e}")
        except Exception as e:
            failed += 1
            ANNOUNCEMENT_FAILURES.inc()
            logger.exception(f"❌ Unexpected error announcing {session.occurrence_id}: {e}")

    if dry_run:
        return failed == 0, f"Test sent {sent} message(s)."
    if failed:
        return False, f"Sent {sent} morning announcement(s), {failed} failed."
    return True, f"Sent {sent} morning announcement(s)."


# === Rotations ===

def advance_role(role: RotationRole) -> RotationState:
    """Re-reads the roster and moves its pointer; an empty roster is left alone."""
    state = get_rotation(role)
    ring = RotationRing(state)
    if not ring.members:
        return state
    ring.advance()
    save_rotation(role, ring.normalized())
    return state


def advance_all_roles():
    for role in RotationRole:
        advance_role(role)


# === Jobs ===

ANNOUNCEMENT_JOB = "morning_announcement"
ANNOUNCEMENT_SYNC_JOB = "announcement_sync"
ADVANCE_JOB = "auto_advance"


class AnnouncementLoop:
    """Morning announcement, fired once a day by the job queue."""

    name = "announcement"

    def __init__(self, send: SendText = send_text):
        self.send = send

    async def tick(self) -> Tuple[bool, str]:
        today = ScheduleService.load().today()
        ok, message = await send_morning(today, dry_run=False, send=self.send)
        if ok:
            logger.info(f"📣 Morning announcement: {message}")
        else:
            logger.warning(f"⚠️ Morning announcement: {message}")
        return ok, message

    async def run_job(self, context):
        try:
            await self.tick()
        except Exception as e:
            LOOP_TICK_ERRORS.labels(self.name).inc()
            logger.exception(f"❌ Morning announcement run failed: {e}")


class AdvanceLoop:
    """Auto-advance of the rotations, polled by the job queue."""

    name = "advance"

    def __init__(self, period_minutes: int = AUTO_ADVANCE_CHECK_MINUTES):
        self.period_seconds = max(1, period_minutes) * 60

    async def tick(self, now_local: Optional[datetime.datetime] = None) -> List[str]:
        """
        Advances the rotations once for every finished, unhandled occurrence.

        Yesterday is scanned too, so an occurrence whose due time passed while
        the process was down still gets its advance.
        """
        schedule = ScheduleService.load()
        now_local = now_local or schedule.local_now()
        cutoff = now_local - datetime.timedelta(minutes=load_auto_advance_minutes())

        today = now_local.date()
        candidates = schedule.get_sessions_occurring_on_date(today)
        candidates += schedule.get_sessions_occurring_on_date(today - datetime.timedelta(days=1))

        eligible = sorted(
            (s for s in candidates if not s.is_cancelled and s.effective_start <= cutoff),
            key=lambda s: s.effective_start
        )

        advanced = []
        for session in eligible:
            try:
                markers = get_markers(session.occurrence_id)
                if markers and markers.advanced:
                    continue

                logger.info(
                    f"🔄 Auto-advance: advancing rotations for {session.occurrence_id} "
                    f"at {session.effective_start.isoformat()}"
                )
                advance_all_roles()
                set_advanced(session.occurrence_id, _utcnow())
                ROTATIONS_ADVANCED.inc()
                advanced.append(session.occurrence_id)
            except Exception as e:
                logger.exception(f"❌ Auto-advance failed for {session.occurrence_id}: {e}")
        return advanced

    async def run_job(self, context):
        try:
            await self.tick()
        except Exception as e:
            LOOP_TICK_ERRORS.labels(self.name).inc()
            logger.exception(f"❌ Auto-advance tick failed: {e}")


def sync_announcement_job(job_queue, send: SendText = send_text) -> bool:
    """
    Registers the daily announcement job, replacing it when the chat, the
    hour:minute or the schedule's time zone changed since it was registered.

    Returns True when the job was (re)registered or removed.
    """
    config = load_announcement_config()
    rule = load_schedule_rule()
    signature = (config.chat_id, config.hour, config.minute, rule.time_zone_id)

    current = job_queue.get_jobs_by_name(ANNOUNCEMENT_JOB)
    if current and all(job.data == signature for job in current):
        return False
    for job in current:
        job.schedule_removal()

    if not config.chat_id:
        if current:
            logger.info("⏰ Morning announcement: chat unset, job removed")
        return bool(current)

    tz = get_timezone(rule.time_zone_id)
    job_queue.run_daily(
        AnnouncementLoop(send).run_job,
        time=datetime.time(config.hour, config.minute, tzinfo=tz),
        name=ANNOUNCEMENT_JOB,
        data=signature
    )
    logger.info(f"⏰ Morning announcement scheduled daily at {config.hour:02d}:{config.minute:02d} ({rule.time_zone_id})")
    return True


async def sync_announcement(context):
    """Picks up settings edited through the web API, which has no job queue."""
    try:
        sync_announcement_job(context.job_queue)
    except Exception as e:
        LOOP_TICK_ERRORS.labels(AnnouncementLoop.name).inc()
        logger.error(f"❌ Cannot schedule the morning announcement: {e}")
