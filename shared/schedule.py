# shared/schedule.py

import datetime
import logging
from typing import Dict, List, Optional

from shared import database
from shared.models import ScheduleRule, Session, SessionOverride
from shared.recurrence import is_occurrence
from shared.settings import DEFAULT_TIME, load_schedule_rule, local_now
from shared.utils import prefix_note

logger = logging.getLogger(__name__)

MAX_LOOKAHEAD_DAYS = 366


def occurrence_id_for(original_date: datetime.date) -> str:
    return f"default:{original_date.isoformat()}"


class ScheduleService:
    """
    Resolves concrete sessions from the recurrence rule and stored overrides.

    Build a new instance per tick (``ScheduleService.load()``) so that rule
    edits are picked up; nothing is cached between calls.
    """

    def __init__(self, rule: ScheduleRule):
        self.rule = rule

    @classmethod
    def load(cls) -> "ScheduleService":
        return cls(load_schedule_rule())

    def local_now(self) -> datetime.datetime:
        return local_now(self.rule)

    def today(self) -> datetime.date:
        return self.local_now().date()

    # === Lookups ===

    def get_session_for_original_date(self, original_date: datetime.date) -> Optional[Session]:
        if not is_occurrence(original_date, self.rule):
            return None

        base_start = datetime.datetime.combine(original_date, self.rule.time_of_day)
        override = database.get_override(original_date)

        effective_start = base_start
        is_cancelled = False
        note = None
        if override is not None:
            effective_start = override.moved_to or base_start
            is_cancelled = override.is_cancelled
            note = override.note

        return Session(
            occurrence_id=occurrence_id_for(original_date),
            original_date=original_date,
            effective_start=effective_start,
            is_cancelled=is_cancelled,
            note=note
        )

    def get_sessions_occurring_on_date(self, target: datetime.date) -> List[Session]:
        """Sessions whose effective start falls on ``target``, moves included."""
        found: Dict[str, Session] = {}

        normal = self.get_session_for_original_date(target)
        if normal is not None and normal.effective_date == target:
            found[normal.occurrence_id] = normal

        for override in database.get_overrides_moved_to_date(target):
            session = self.get_session_for_original_date(override.original_date)
            # re-check: the override may have been edited since the scan
            if session is None or session.effective_date != target:
                continue
            found.setdefault(session.occurrence_id, session)

        return sorted(found.values(), key=lambda s: s.effective_start)

    def get_next_sessions(self, count: int = 4, now: Optional[datetime.datetime] = None) -> List[Session]:
        count = max(1, min(12, count))
        now = now or self.local_now()
        start = now.date()

        sessions: List[Session] = []
        for offset in range(MAX_LOOKAHEAD_DAYS):
            day = start + datetime.timedelta(days=offset)
            for session in self.get_sessions_occurring_on_date(day):
                if offset == 0 and session.effective_start < now:
                    continue
                sessions.append(session)
                if len(sessions) >= count:
                    return sessions
        return sessions

    def get_month_grid(self, year: int, month: int) -> Dict[datetime.date, List[Session]]:
        """42 days starting on the Monday on or before the 1st of the month."""
        first = datetime.date(year, month, 1)
        grid_start = first - datetime.timedelta(days=first.weekday())
        return {
            day: self.get_sessions_occurring_on_date(day)
            for day in (grid_start + datetime.timedelta(days=i) for i in range(42))
        }

    # === Override edits ===

    def cancel_occurrence(self, original_date: datetime.date, reason: Optional[str] = None,
                          who: str = "Unknown") -> SessionOverride:
        """Marks an occurrence cancelled, keeping any existing move."""
        existing = database.get_override(original_date)
        note = prefix_note(who, reason) if (reason or "").strip() else (existing.note if existing else None)

        override = SessionOverride(
            original_date=original_date,
            is_cancelled=True,
            moved_to=existing.moved_to if existing else None,
            note=note or None
        )
        database.upsert_override(override)
        return override

    def move_occurrence(self, original_date: datetime.date, new_date: datetime.date,
                        new_time: Optional[datetime.time] = None, note: Optional[str] = None,
                        who: str = "Unknown") -> SessionOverride:
        """Moves an occurrence; without a time the session keeps its current start time."""
        if new_time is None:
            current = self.get_session_for_original_date(original_date)
            new_time = current.effective_start.time() if current else DEFAULT_TIME

        existing = database.get_override(original_date)
        new_note = prefix_note(who, note) if (note or "").strip() else (existing.note if existing else None)

        override = SessionOverride(
            original_date=original_date,
            is_cancelled=existing.is_cancelled if existing else False,
            moved_to=datetime.datetime.combine(new_date, new_time),
            note=new_note or None
        )
        database.upsert_override(override)
        return override

    def clear_override(self, original_date: datetime.date) -> bool:
        return database.delete_override(original_date)
