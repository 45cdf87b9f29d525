# web_api.py

import datetime
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Header, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, validator

from config import ADMIN_SECRET, LOG_LEVEL, WEB_API_PORT
from scheduler_logic import advance_role, build_morning_text
from shared.database import get_rotation, init_db, save_rotation
from shared.errors import (
    DuplicateMember, InvalidTimeZone, MemberNotFound, RotationError
)
from shared.models import RotationRole, ScheduleRule, SessionOverride
from shared.rotation import RotationRing
from shared import database
from shared.schedule import ScheduleService
from shared.settings import get_timezone, load_schedule_rule, save_schedule_rule
from shared.utils import parse_hhmm

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Rotation Scheduler API", lifespan=lifespan)


# === Data models ===

class OverrideRequest(BaseModel):
    is_cancelled: bool = False
    moved_to: Optional[datetime.datetime] = None  # local wall time in the schedule's zone
    note: Optional[str] = None

    @validator('note')
    def strip_note(cls, v):
        if v is None:
            return None
        return v.strip() or None


class ScheduleRuleRequest(BaseModel):
    time_zone_id: str
    frequency: str = "Weekly"
    interval: int = 1
    day_of_week: int
    time: str
    monthly_week: int = 1
    anchor_date: datetime.date

    @validator('time')
    def validate_time(cls, v):
        if parse_hhmm(v) is None:
            raise ValueError('Must be HH:mm (24-hour)')
        return v

    @validator('frequency')
    def validate_frequency(cls, v):
        if v not in ("Weekly", "Monthly"):
            raise ValueError('Must be Weekly or Monthly')
        return v


class MemberRequest(BaseModel):
    member_id: str

    @validator('member_id')
    def validate_member(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Must not be empty')
        return v


class PositionRequest(BaseModel):
    position: int


# === Helpers ===

def require_admin(x_admin_secret: Optional[str]):
    if ADMIN_SECRET and x_admin_secret != ADMIN_SECRET:
        raise HTTPException(status_code=403, detail="Admin access required")


def parse_role(role: str) -> RotationRole:
    parsed = RotationRole.parse(role)
    if parsed is None:
        raise HTTPException(status_code=404, detail=f"Unknown role: {role}")
    return parsed


def load_schedule() -> ScheduleService:
    try:
        schedule = ScheduleService.load()
        schedule.local_now()
    except InvalidTimeZone as e:
        raise HTTPException(status_code=500, detail=str(e))
    return schedule


def session_to_dict(session) -> dict:
    return {
        "occurrence_id": session.occurrence_id,
        "original_date": session.original_date.isoformat(),
        "effective_start": session.effective_start.isoformat(),
        "is_cancelled": session.is_cancelled,
        "is_moved": session.is_moved,
        "note": session.note,
    }


def rule_to_dict(rule: ScheduleRule) -> dict:
    return {
        "time_zone_id": rule.time_zone_id,
        "frequency": rule.frequency,
        "interval": rule.interval,
        "day_of_week": rule.day_of_week,
        "time": rule.time_of_day.strftime("%H:%M"),
        "monthly_week": rule.monthly_week,
        "anchor_date": rule.anchor_date.isoformat(),
    }


def roster_to_dict(role: RotationRole, ring: RotationRing) -> dict:
    return {
        "role": role.value,
        "members": list(ring.members),
        "index": ring.position,
        "current": ring.current(),
    }


# === Endpoints ===

@app.get("/health", summary="Health check")
async def health_check():
    try:
        schedule = load_schedule()
        upcoming = schedule.get_next_sessions(1)
        return JSONResponse({
            "status": "ok",
            "next_session": session_to_dict(upcoming[0]) if upcoming else None,
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat()
        })
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            {"status": "error", "detail": str(e)},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


@app.get("/metrics", summary="Prometheus metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/sessions/next", summary="Upcoming sessions")
async def next_sessions(count: int = 4):
    schedule = load_schedule()
    return {"sessions": [session_to_dict(s) for s in schedule.get_next_sessions(count)]}


@app.get("/calendar", summary="Month grid of sessions")
async def calendar(year: Optional[int] = None, month: Optional[int] = None):
    schedule = load_schedule()
    today = schedule.today()
    year = year or today.year
    month = month or today.month
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")

    grid = schedule.get_month_grid(year, month)
    return {
        "year": year,
        "month": month,
        "today": today.isoformat(),
        "days": [
            {
                "date": day.isoformat(),
                "in_month": day.month == month,
                "sessions": [session_to_dict(s) for s in sessions],
            }
            for day, sessions in grid.items()
        ],
    }


@app.put("/overrides/{original_date}", summary="Cancel, move or annotate an occurrence")
async def put_override(original_date: datetime.date, request: OverrideRequest,
                       x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    schedule = load_schedule()
    if schedule.get_session_for_original_date(original_date) is None:
        raise HTTPException(status_code=404, detail=f"{original_date} is not a scheduled date")

    moved_to = request.moved_to
    if moved_to is not None and moved_to.tzinfo is not None:
        # stored as wall time in the schedule's zone
        moved_to = moved_to.astimezone(get_timezone(schedule.rule.time_zone_id)).replace(tzinfo=None)

    database.upsert_override(SessionOverride(
        original_date=original_date,
        is_cancelled=request.is_cancelled,
        moved_to=moved_to,
        note=request.note
    ))
    return session_to_dict(schedule.get_session_for_original_date(original_date))


@app.delete("/overrides/{original_date}", summary="Clear an override")
async def delete_override(original_date: datetime.date, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    return {"ok": True, "deleted": database.delete_override(original_date)}


@app.get("/announcements/preview", summary="Morning announcement text for a date")
async def preview_announcement(date: Optional[datetime.date] = None):
    schedule = load_schedule()
    day = date or schedule.today()
    ok, text = build_morning_text(day)
    if not ok:
        raise HTTPException(status_code=404, detail=text)
    return {"date": day.isoformat(), "text": text}


@app.get("/settings/schedule", summary="Recurrence rule")
async def get_schedule_rule():
    return rule_to_dict(load_schedule_rule())


@app.put("/settings/schedule", summary="Update the recurrence rule")
async def put_schedule_rule(request: ScheduleRuleRequest, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    try:
        saved = save_schedule_rule(ScheduleRule(
            time_zone_id=request.time_zone_id,
            frequency=request.frequency,
            interval=request.interval,
            day_of_week=request.day_of_week,
            time_of_day=parse_hhmm(request.time),
            monthly_week=request.monthly_week,
            anchor_date=request.anchor_date,
        ))
    except InvalidTimeZone as e:
        raise HTTPException(status_code=400, detail=str(e))
    return rule_to_dict(saved)


@app.get("/rosters", summary="All rosters")
async def list_rosters():
    return {
        "rosters": [roster_to_dict(role, RotationRing(get_rotation(role))) for role in RotationRole]
    }


def _apply_roster_change(role: RotationRole, change) -> dict:
    ring = RotationRing(get_rotation(role))
    try:
        change(ring)
    except DuplicateMember as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MemberNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RotationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    save_rotation(role, ring.normalized())
    return roster_to_dict(role, ring)


@app.post("/rosters/{role}/members", summary="Append a member")
async def add_member(role: str, request: MemberRequest, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    return _apply_roster_change(parse_role(role), lambda ring: ring.add(request.member_id))


@app.delete("/rosters/{role}/members/{member_id}", summary="Remove a member")
async def remove_member(role: str, member_id: str, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    return _apply_roster_change(parse_role(role), lambda ring: ring.remove(member_id))


@app.put("/rosters/{role}/current", summary="Set whose turn it is (1-based)")
async def set_current(role: str, request: PositionRequest, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    return _apply_roster_change(
        parse_role(role), lambda ring: ring.set_current_by_position(request.position)
    )


@app.post("/rosters/{role}/skip", summary="Swap the current member with the next")
async def skip_current(role: str, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    return _apply_roster_change(parse_role(role), lambda ring: ring.swap_current_with_next())


@app.post("/rosters/{role}/advance", summary="Advance the turn manually")
async def advance_roster(role: str, x_admin_secret: str = Header(None)):
    require_admin(x_admin_secret)
    parsed = parse_role(role)
    state = advance_role(parsed)
    logger.info(f"🔄 Manual advance of {parsed.value} via web API")
    return roster_to_dict(parsed, RotationRing(state))


# === Server start ===
if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger.info(f"🚀 Starting web API on port {WEB_API_PORT}...")
    uvicorn.run(app, host="0.0.0.0", port=WEB_API_PORT)
