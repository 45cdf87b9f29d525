# shared/settings.py
"""
Runtime settings kept in the ``app_settings`` table.

Everything here is read fresh on each call so that edits made through the bot
or the web API take effect on the next loop tick without a restart.
"""

import datetime
import logging

import pytz

from config import TIMEZONE
from shared.database import get_setting, upsert_setting
from shared.errors import InvalidTimeZone
from shared.models import AnnouncementConfig, ScheduleRule, WEEKLY, MONTHLY, LAST_WEEK
from shared.utils import parse_hhmm, parse_iso_date

logger = logging.getLogger(__name__)

KEY_TIME_ZONE = "schedule.time_zone_id"
KEY_FREQUENCY = "schedule.frequency"
KEY_INTERVAL = "schedule.interval"
KEY_DAY_OF_WEEK = "schedule.day_of_week"
KEY_TIME = "schedule.time"
KEY_MONTHLY_WEEK = "schedule.monthly_week"
KEY_ANCHOR_DATE = "schedule.anchor_date"

KEY_ANNOUNCE_CHAT_ID = "announce.chat_id"
KEY_ANNOUNCE_HOUR = "announce.hour"
KEY_ANNOUNCE_MINUTE = "announce.minute"
KEY_EVENT_NAME = "announce.event_name"

KEY_AUTO_ADVANCE_MINUTES = "auto_advance.minutes_after_start"

DEFAULT_TIME = datetime.time(18, 30)
DEFAULT_DAY_OF_WEEK = 2  # Tuesday
DEFAULT_ANCHOR_DATE = datetime.date(2025, 1, 7)
DEFAULT_ANNOUNCE_HOUR = 9
DEFAULT_ANNOUNCE_MINUTE = 0
DEFAULT_EVENT_NAME = "Game night"
DEFAULT_AUTO_ADVANCE_MINUTES = 180


def _int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clamp_interval(interval: int) -> int:
    return max(1, interval)


def clamp_monthly_week(week: int) -> int:
    if week == LAST_WEEK or week < 0:
        return LAST_WEEK
    return max(1, min(5, week))


def clamp_day_of_week(day_of_week: int) -> int:
    return max(0, min(6, day_of_week))


def normalize_frequency(frequency: str) -> str:
    return MONTHLY if (frequency or "").strip().lower() == "monthly" else WEEKLY


def get_timezone(time_zone_id: str):
    try:
        return pytz.timezone(time_zone_id)
    except pytz.UnknownTimeZoneError:
        raise InvalidTimeZone(time_zone_id)


def local_now(rule: ScheduleRule) -> datetime.datetime:
    """Current wall time in the rule's zone, as a naive datetime."""
    tz = get_timezone(rule.time_zone_id)
    return datetime.datetime.now(pytz.utc).astimezone(tz).replace(tzinfo=None)


def load_schedule_rule() -> ScheduleRule:
    return ScheduleRule(
        time_zone_id=get_setting(KEY_TIME_ZONE) or TIMEZONE,
        frequency=normalize_frequency(get_setting(KEY_FREQUENCY) or WEEKLY),
        interval=clamp_interval(_int(get_setting(KEY_INTERVAL), 1)),
        day_of_week=clamp_day_of_week(_int(get_setting(KEY_DAY_OF_WEEK), DEFAULT_DAY_OF_WEEK)),
        time_of_day=parse_hhmm(get_setting(KEY_TIME) or "") or DEFAULT_TIME,
        monthly_week=clamp_monthly_week(_int(get_setting(KEY_MONTHLY_WEEK), 1)),
        anchor_date=parse_iso_date(get_setting(KEY_ANCHOR_DATE) or "") or DEFAULT_ANCHOR_DATE,
    )


def save_schedule_rule(rule: ScheduleRule) -> ScheduleRule:
    """
    Stores the rule, clamping out-of-range fields instead of rejecting them.

    The time zone is the one field that is validated, since an unknown zone
    would make every tick fail.
    """
    get_timezone(rule.time_zone_id)
    clamped = ScheduleRule(
        time_zone_id=rule.time_zone_id,
        frequency=normalize_frequency(rule.frequency),
        interval=clamp_interval(rule.interval),
        day_of_week=clamp_day_of_week(rule.day_of_week),
        time_of_day=rule.time_of_day,
        monthly_week=clamp_monthly_week(rule.monthly_week),
        anchor_date=rule.anchor_date,
    )
    upsert_setting(KEY_TIME_ZONE, clamped.time_zone_id)
    upsert_setting(KEY_FREQUENCY, clamped.frequency)
    upsert_setting(KEY_INTERVAL, str(clamped.interval))
    upsert_setting(KEY_DAY_OF_WEEK, str(clamped.day_of_week))
    upsert_setting(KEY_TIME, clamped.time_of_day.strftime("%H:%M"))
    upsert_setting(KEY_MONTHLY_WEEK, str(clamped.monthly_week))
    upsert_setting(KEY_ANCHOR_DATE, clamped.anchor_date.isoformat())
    logger.info(f"Schedule rule saved: {clamped}")
    return clamped


def load_announcement_config() -> AnnouncementConfig:
    return AnnouncementConfig(
        chat_id=_int(get_setting(KEY_ANNOUNCE_CHAT_ID), 0),
        hour=max(0, min(23, _int(get_setting(KEY_ANNOUNCE_HOUR), DEFAULT_ANNOUNCE_HOUR))),
        minute=max(0, min(59, _int(get_setting(KEY_ANNOUNCE_MINUTE), DEFAULT_ANNOUNCE_MINUTE))),
        event_name=get_setting(KEY_EVENT_NAME) or DEFAULT_EVENT_NAME,
    )


def save_announcement_config(chat_id: int, hour: int, minute: int, event_name: str = None):
    upsert_setting(KEY_ANNOUNCE_CHAT_ID, str(chat_id))
    upsert_setting(KEY_ANNOUNCE_HOUR, str(max(0, min(23, hour))))
    upsert_setting(KEY_ANNOUNCE_MINUTE, str(max(0, min(59, minute))))
    if event_name:
        upsert_setting(KEY_EVENT_NAME, event_name.strip())


def load_auto_advance_minutes() -> int:
    return max(0, _int(get_setting(KEY_AUTO_ADVANCE_MINUTES), DEFAULT_AUTO_ADVANCE_MINUTES))


def save_auto_advance_minutes(minutes: int):
    upsert_setting(KEY_AUTO_ADVANCE_MINUTES, str(max(0, minutes)))
