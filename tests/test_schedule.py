import datetime

from shared import database
from shared.models import SessionOverride
from shared.schedule import ScheduleService, occurrence_id_for

D = datetime.date
DT = datetime.datetime


def test_session_for_original_date(monday_rule):
    schedule = ScheduleService(monday_rule)
    session = schedule.get_session_for_original_date(D(2025, 1, 6))
    assert session.occurrence_id == "default:2025-01-06"
    assert session.effective_start == DT(2025, 1, 6, 19, 0)
    assert session.is_cancelled is False
    assert session.note is None
    assert schedule.get_session_for_original_date(D(2025, 1, 7)) is None


def test_moved_session_leaves_original_day(monday_rule):
    database.upsert_override(SessionOverride(
        original_date=D(2025, 1, 6), moved_to=DT(2025, 1, 8, 19, 0)
    ))
    schedule = ScheduleService(monday_rule)

    assert schedule.get_sessions_occurring_on_date(D(2025, 1, 6)) == []

    sessions = schedule.get_sessions_occurring_on_date(D(2025, 1, 8))
    assert len(sessions) == 1
    assert sessions[0].original_date == D(2025, 1, 6)
    assert sessions[0].effective_start == DT(2025, 1, 8, 19, 0)
    assert sessions[0].occurrence_id == occurrence_id_for(D(2025, 1, 6))
    assert sessions[0].is_moved


def test_move_within_same_day_is_not_duplicated(monday_rule):
    database.upsert_override(SessionOverride(
        original_date=D(2025, 1, 6), moved_to=DT(2025, 1, 6, 17, 0)
    ))
    sessions = ScheduleService(monday_rule).get_sessions_occurring_on_date(D(2025, 1, 6))
    assert len(sessions) == 1
    assert sessions[0].effective_start == DT(2025, 1, 6, 17, 0)
    assert not sessions[0].is_moved


def test_several_sessions_on_one_day_sorted(monday_rule):
    database.upsert_override(SessionOverride(
        original_date=D(2025, 1, 13), moved_to=DT(2025, 1, 6, 12, 0)
    ))
    sessions = ScheduleService(monday_rule).get_sessions_occurring_on_date(D(2025, 1, 6))
    assert [s.occurrence_id for s in sessions] == ["default:2025-01-13", "default:2025-01-06"]


def test_override_on_non_occurrence_is_ignored(monday_rule):
    # 2025-01-07 is a Tuesday, not a base occurrence
    database.upsert_override(SessionOverride(
        original_date=D(2025, 1, 7), moved_to=DT(2025, 1, 9, 19, 0)
    ))
    assert ScheduleService(monday_rule).get_sessions_occurring_on_date(D(2025, 1, 9)) == []


def test_cancelled_session_is_still_listed(monday_rule):
    database.upsert_override(SessionOverride(original_date=D(2025, 1, 6), is_cancelled=True, note="sick"))
    sessions = ScheduleService(monday_rule).get_sessions_occurring_on_date(D(2025, 1, 6))
    assert len(sessions) == 1
    assert sessions[0].is_cancelled
    assert sessions[0].note == "sick"


def test_occurrence_id_survives_repeated_moves(monday_rule):
    schedule = ScheduleService(monday_rule)
    schedule.move_occurrence(D(2025, 1, 6), D(2025, 1, 8))
    schedule.move_occurrence(D(2025, 1, 6), D(2025, 1, 10), datetime.time(18, 0))
    session = schedule.get_sessions_occurring_on_date(D(2025, 1, 10))[0]
    assert session.occurrence_id == "default:2025-01-06"
    assert schedule.get_sessions_occurring_on_date(D(2025, 1, 8)) == []


def test_move_without_time_keeps_start_time(monday_rule):
    override = ScheduleService(monday_rule).move_occurrence(D(2025, 1, 6), D(2025, 1, 8))
    assert override.moved_to == DT(2025, 1, 8, 19, 0)


def test_cancel_keeps_existing_move_and_prefixes_reason(monday_rule):
    schedule = ScheduleService(monday_rule)
    schedule.move_occurrence(D(2025, 1, 6), D(2025, 1, 8), note="room booked", who="Ann")
    override = schedule.cancel_occurrence(D(2025, 1, 6), "flu", who="Bob")

    assert override.is_cancelled
    assert override.moved_to == DT(2025, 1, 8, 19, 0)
    assert override.note == "Bob: flu"


def test_cancel_without_reason_keeps_note(monday_rule):
    schedule = ScheduleService(monday_rule)
    schedule.move_occurrence(D(2025, 1, 6), D(2025, 1, 8), note="room booked", who="Ann")
    override = schedule.cancel_occurrence(D(2025, 1, 6))
    assert override.note == "Ann: room booked"


def test_move_keeps_cancelled_flag(monday_rule):
    schedule = ScheduleService(monday_rule)
    schedule.cancel_occurrence(D(2025, 1, 6))
    override = schedule.move_occurrence(D(2025, 1, 6), D(2025, 1, 7))
    assert override.is_cancelled


def test_clear_override(monday_rule):
    schedule = ScheduleService(monday_rule)
    schedule.cancel_occurrence(D(2025, 1, 6))
    assert schedule.clear_override(D(2025, 1, 6))
    assert not schedule.get_session_for_original_date(D(2025, 1, 6)).is_cancelled


def test_next_sessions_skips_already_started(monday_rule):
    schedule = ScheduleService(monday_rule)
    sessions = schedule.get_next_sessions(2, now=DT(2025, 1, 6, 20, 0))
    assert [s.original_date for s in sessions] == [D(2025, 1, 13), D(2025, 1, 20)]

    sessions = schedule.get_next_sessions(1, now=DT(2025, 1, 6, 12, 0))
    assert [s.original_date for s in sessions] == [D(2025, 1, 6)]


def test_next_sessions_count_is_clamped(monday_rule):
    schedule = ScheduleService(monday_rule)
    assert len(schedule.get_next_sessions(50, now=DT(2025, 1, 1))) == 12
    assert len(schedule.get_next_sessions(0, now=DT(2025, 1, 1))) == 1


def test_month_grid(monday_rule):
    grid = ScheduleService(monday_rule).get_month_grid(2025, 1)
    days = list(grid)
    assert len(days) == 42
    assert days[0] == D(2024, 12, 30)
    assert days[0].weekday() == 0
    with_sessions = [d for d, sessions in grid.items() if sessions]
    assert D(2025, 1, 6) in with_sessions
    assert all(d.weekday() == 0 for d in with_sessions)


def test_load_uses_stored_rule(monday_rule):
    assert ScheduleService.load().rule == monday_rule
