# shared/utils.py

import datetime
import re
from typing import Optional

_MARKDOWN_V2_SPECIAL = re.compile(r'([_*\[\]()~`>#+\-=|{}.!\\])')


def escape_markdown_v2(text: str) -> str:
    """Escapes every character Telegram reserves in MarkdownV2."""
    return _MARKDOWN_V2_SPECIAL.sub(r'\\\1', text or "")


def parse_iso_date(text: str) -> Optional[datetime.date]:
    """Parses 'YYYY-MM-DD'; returns None for anything else."""
    if not text or not re.fullmatch(r"\d{4}-\d{2}-\d{2}", text.strip()):
        return None
    try:
        return datetime.date.fromisoformat(text.strip())
    except ValueError:
        return None


def parse_hhmm(text: str) -> Optional[datetime.time]:
    """Parses a 24-hour 'HH:mm' time; returns None for anything else."""
    match = re.fullmatch(r"(\d{1,2}):(\d{2})", (text or "").strip())
    if not match:
        return None
    hour, minute = map(int, match.groups())
    if hour > 23 or minute > 59:
        return None
    return datetime.time(hour, minute)


def prefix_note(who: str, note: Optional[str]) -> str:
    note = (note or "").strip()
    if not note:
        return ""
    # The caller may already have typed "Name: ..."
    if note.lower().startswith(f"{who}:".lower()):
        return note
    return f"{who}: {note}"


def format_time_12h(dt: datetime.datetime) -> str:
    return dt.strftime("%I:%M %p").lstrip("0")


def format_day(dt: datetime.datetime) -> str:
    return f"{dt:%A, %b} {dt.day}"


def format_short_day(dt: datetime.datetime) -> str:
    return f"{dt:%a, %b} {dt.day}"
