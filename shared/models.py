# shared/models.py

import datetime
import enum
from dataclasses import dataclass, field
from typing import List, Optional

WEEKLY = "Weekly"
MONTHLY = "Monthly"
LAST_WEEK = -1


class RotationRole(enum.Enum):
    DM = "dm"
    FOOD = "food"

    @property
    def label(self) -> str:
        return "DM" if self is RotationRole.DM else "Food"

    @property
    def emoji(self) -> str:
        return "🧙" if self is RotationRole.DM else "🍕"

    @classmethod
    def parse(cls, text: str) -> Optional["RotationRole"]:
        value = (text or "").strip().lower()
        if value == "dm":
            return cls.DM
        if value in ("food", "cook"):
            return cls.FOOD
        return None


@dataclass(frozen=True)
class ScheduleRule:
    time_zone_id: str
    frequency: str  # 'Weekly' | 'Monthly'
    interval: int
    day_of_week: int  # 0 = Sunday .. 6 = Saturday
    time_of_day: datetime.time
    monthly_week: int  # 1..5, -1 = last
    anchor_date: datetime.date


@dataclass
class SessionOverride:
    original_date: datetime.date
    is_cancelled: bool = False
    moved_to: Optional[datetime.datetime] = None  # local wall time in the rule's zone
    note: Optional[str] = None


@dataclass(frozen=True)
class Session:
    occurrence_id: str  # 'default:YYYY-MM-DD', stays the same when moved
    original_date: datetime.date
    effective_start: datetime.datetime
    is_cancelled: bool
    note: Optional[str]

    @property
    def effective_date(self) -> datetime.date:
        return self.effective_start.date()

    @property
    def is_moved(self) -> bool:
        return self.effective_start.date() != self.original_date


@dataclass
class OccurrenceMarkers:
    occurrence_id: str
    announced: bool = False
    announced_at: Optional[str] = None  # ISO format UTC
    advanced: bool = False
    advanced_at: Optional[str] = None


@dataclass
class RotationState:
    members: List[str] = field(default_factory=list)
    index: int = 0


@dataclass(frozen=True)
class AnnouncementConfig:
    chat_id: int  # 0 = not configured
    hour: int
    minute: int
    event_name: str
